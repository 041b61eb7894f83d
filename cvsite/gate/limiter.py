"""Fixed-window rate limiter keyed by client IP and request path.

Client identity trust policy: the first non-empty value among
``CLIENT_IP_HEADERS`` wins, in order. ``x-forwarded-for`` is client-supplied
and spoofable, so this is only meaningful behind a reverse proxy that
overwrites these headers. Reuse of ``client_ip`` elsewhere inherits that
assumption.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from pathlib import Path

from pydantic import TypeAdapter

from cvsite.gate.models import RateLimitDecision, RateLimitEntry, RateLimitStatus
from cvsite.gate.store import InMemoryRateLimitStore, RateLimitStore
from cvsite.models import RateLimitConfig

logger = logging.getLogger(__name__)

CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "x-client-ip")
FALLBACK_CLIENT_IP = "127.0.0.1"

DEFAULT_CONFIGS: dict[str, RateLimitConfig] = {
    "api": RateLimitConfig(window_ms=15 * 60 * 1000, max_requests=100),
    "webhook": RateLimitConfig(window_ms=60 * 1000, max_requests=10),
    "auth": RateLimitConfig(window_ms=15 * 60 * 1000, max_requests=5),
    "strict": RateLimitConfig(window_ms=60 * 1000, max_requests=1),
}

_CONFIGS_ADAPTER = TypeAdapter(dict[str, RateLimitConfig])


def client_ip(headers: Mapping[str, str]) -> str:
    """Derive the client identity from forwarding headers (see module docstring)."""
    for name in CLIENT_IP_HEADERS:
        value = headers.get(name)
        if not value:
            continue
        if name == "x-forwarded-for":
            value = value.split(",")[0]
        value = value.strip()
        if value:
            return value
    return FALLBACK_CLIENT_IP


def rate_limit_key(ip: str, path: str) -> str:
    return f"{ip}:{path}"


def load_rate_limit_configs(path: str) -> dict[str, RateLimitConfig]:
    """Load endpoint-class budgets from JSON, layered over DEFAULT_CONFIGS.

    A missing file yields the defaults. A malformed file raises.
    """
    configs = dict(DEFAULT_CONFIGS)
    config_path = Path(path)
    if not config_path.exists():
        logger.info("Rate limit config %s not found, using defaults", path)
        return configs
    configs.update(_CONFIGS_ADAPTER.validate_python(json.loads(config_path.read_text())))
    return configs


class RateLimiter:
    """Per-key fixed-window counter over an injectable store."""

    def __init__(self, store: RateLimitStore | None = None) -> None:
        self.store = store if store is not None else InMemoryRateLimitStore()

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    def hit(self, key: str, config: RateLimitConfig) -> RateLimitDecision:
        """Count one request against ``key`` and decide whether to admit it.

        A rejected request leaves the stored count untouched.
        """
        now = self._now_ms()
        with self.store.locked():
            self.store.sweep(now)
            entry = self.store.get(key)

            if entry is None or entry.expired(now):
                entry = RateLimitEntry(count=1, reset_time=now + config.window_ms)
                self.store.set(key, entry)
                allowed = True
            elif entry.count < config.max_requests:
                entry.count += 1
                self.store.set(key, entry)
                allowed = True
            else:
                allowed = False

        return RateLimitDecision(
            allowed=allowed,
            limit=config.max_requests,
            remaining=max(0, config.max_requests - entry.count),
            reset_time=entry.reset_time,
            window_ms=config.window_ms,
            now_ms=now,
        )

    def status(self, key: str, config: RateLimitConfig) -> RateLimitStatus:
        """Report what the next request for ``key`` would see, without counting it."""
        now = self._now_ms()
        entry = self.store.get(key)
        if entry is None or entry.expired(now):
            return RateLimitStatus(
                limit=config.max_requests,
                remaining=config.max_requests - 1,
                reset_time=now + config.window_ms,
            )
        return RateLimitStatus(
            limit=config.max_requests,
            remaining=max(0, config.max_requests - entry.count),
            reset_time=entry.reset_time,
        )
