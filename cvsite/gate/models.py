"""Data models for the request gate."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass
class RateLimitEntry:
    """Counter for one (client, endpoint) key. Times are epoch milliseconds."""

    count: int
    reset_time: int

    def expired(self, now_ms: int) -> bool:
        return self.reset_time <= now_ms


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission attempt."""

    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    window_ms: int
    now_ms: int

    @property
    def retry_after(self) -> int:
        """Whole seconds until the window resets, rounded up."""
        return max(0, math.ceil((self.reset_time - self.now_ms) / 1000))

    @property
    def reset_iso(self) -> str:
        reset = datetime.fromtimestamp(self.reset_time / 1000, UTC)
        return reset.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only view of a key's budget; does not consume quota."""

    limit: int
    remaining: int
    reset_time: int
