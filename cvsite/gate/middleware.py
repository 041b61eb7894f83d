"""Request gate: CORS preflight, rate limiting, and CORS stamping.

Route handlers can call ``RequestGate.admit`` directly (return the response
if one comes back, otherwise run and finish with ``add_cors_headers``), or
mount ``GateMiddleware`` to apply the same contract to whole path prefixes.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from cvsite.audit.logger import AuditLogger
from cvsite.gate.cors import CORSPolicy
from cvsite.gate.limiter import RateLimiter, client_ip, rate_limit_key
from cvsite.gate.models import RateLimitDecision
from cvsite.models import AuditEvent, AuditEventType, RateLimitConfig, RiskLevel

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_MESSAGE = "Too many requests"


class RateLimitExceeded(Exception):
    """Raised when a key has used its whole window budget."""

    def __init__(self, decision: RateLimitDecision, message: str | None = None) -> None:
        self.decision = decision
        self.message = message or DEFAULT_REJECTION_MESSAGE
        super().__init__(f"{self.message} (retry after {decision.retry_after}s)")

    def to_response(self) -> JSONResponse:
        d = self.decision
        return JSONResponse(
            {
                "error": self.message,
                "retryAfter": d.retry_after,
                "limit": d.limit,
                "windowMs": d.window_ms,
            },
            status_code=429,
            headers={
                "Retry-After": str(d.retry_after),
                "X-RateLimit-Limit": str(d.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": d.reset_iso,
            },
        )


class RequestGate:
    """Admission control shared by every gated route."""

    def __init__(
        self,
        limiter: RateLimiter | None = None,
        cors: CORSPolicy | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.limiter = limiter or RateLimiter()
        self.cors = cors or CORSPolicy()
        self.audit_logger = audit_logger

    def check(self, request: Request, config: RateLimitConfig) -> RateLimitDecision:
        """Count the request; raise RateLimitExceeded if over budget."""
        ip = client_ip(request.headers)
        decision = self.limiter.hit(rate_limit_key(ip, request.url.path), config)
        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded for %s on %s (limit %d)",
                ip, request.url.path, decision.limit,
            )
            if self.audit_logger:
                self.audit_logger.log(AuditEvent(
                    event_type=AuditEventType.RATE_LIMITED,
                    source_ip=ip,
                    action=f"{request.method} {request.url.path}",
                    result="blocked",
                    risk_level=RiskLevel.LOW,
                    details={"limit": decision.limit, "retry_after": decision.retry_after},
                ))
            raise RateLimitExceeded(decision, config.message)
        return decision

    def admit(self, request: Request, config: RateLimitConfig) -> Response | None:
        """Return a response to send immediately, or None to proceed."""
        preflight = self.cors.preflight(request)
        if preflight is not None:
            return preflight
        try:
            self.check(request, config)
        except RateLimitExceeded as exc:
            return self.add_cors_headers(exc.to_response(), request)
        return None

    def add_cors_headers(self, response: Response, request: Request | None = None) -> Response:
        origin = request.headers.get("origin") if request is not None else None
        return self.cors.apply(response, origin)


class GateMiddleware:
    """ASGI middleware applying ``RequestGate`` by path prefix.

    ``routes`` maps path prefixes to endpoint-class budgets; the longest
    matching prefix wins. Paths matching no prefix are passed through
    untouched.
    """

    def __init__(
        self,
        app: ASGIApp,
        gate: RequestGate,
        routes: Sequence[tuple[str, RateLimitConfig]],
    ) -> None:
        self.app = app
        self.gate = gate
        self._routes = sorted(routes, key=lambda r: len(r[0]), reverse=True)

    def config_for(self, path: str) -> RateLimitConfig | None:
        for prefix, config in self._routes:
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return config
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        config = self.config_for(request.url.path)
        if config is None:
            await self.app(scope, receive, send)
            return

        short_circuit = self.gate.admit(request, config)
        if short_circuit is not None:
            await short_circuit(scope, receive, send)
            return

        cors_headers = self.gate.cors.headers(request.headers.get("origin"))

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in cors_headers.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)
