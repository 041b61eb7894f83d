"""ASGI middleware guarding admin routes with a Bearer token."""

from __future__ import annotations

import hmac

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from cvsite.audit.logger import AuditLogger
from cvsite.gate.limiter import client_ip
from cvsite.models import AuditEvent, AuditEventType, RiskLevel

# Writes to these paths need the admin token
ADMIN_WRITE_PATHS = {"/api/cv"}
WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Every method under these prefixes needs the admin token
ADMIN_PREFIXES = ("/api/config/", "/api/cv/")


def requires_admin(method: str, path: str) -> bool:
    if method == "OPTIONS":
        return False
    if path.startswith(ADMIN_PREFIXES):
        return True
    return method in WRITE_METHODS and path in ADMIN_WRITE_PATHS


class AdminAuthMiddleware:
    """Validates the admin Bearer token using constant-time comparison."""

    def __init__(
        self,
        app: ASGIApp,
        token: str,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.app = app
        self._token = token.encode()
        self.audit_logger = audit_logger

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        if not requires_admin(request.method, request.url.path):
            await self.app(scope, receive, send)
            return

        if not self._token:
            response = JSONResponse({"error": "Admin access is not configured"}, status_code=503)
            await response(scope, receive, send)
            return

        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            self._log_failure(request, "missing_token" if not auth_header else "invalid_format")
            response = JSONResponse({"error": "Authentication required"}, status_code=401)
            await response(scope, receive, send)
            return

        if not hmac.compare_digest(auth_header[7:].encode(), self._token):
            self._log_failure(request, "invalid_token")
            response = JSONResponse({"error": "Access denied"}, status_code=403)
            await response(scope, receive, send)
            return

        if self.audit_logger:
            self.audit_logger.log(AuditEvent(
                event_type=AuditEventType.ADMIN_AUTH_SUCCESS,
                source_ip=client_ip(request.headers),
                action=f"{request.method} {request.url.path}",
                result="success",
                risk_level=RiskLevel.INFO,
            ))

        await self.app(scope, receive, send)

    def _log_failure(self, request: Request, reason: str) -> None:
        if self.audit_logger:
            self.audit_logger.log(AuditEvent(
                event_type=AuditEventType.ADMIN_AUTH_FAILURE,
                source_ip=client_ip(request.headers),
                action=f"{request.method} {request.url.path}",
                result="failure",
                risk_level=RiskLevel.HIGH,
                details={"reason": reason},
            ))
