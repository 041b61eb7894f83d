"""Cross-origin headers stamped on every gated response."""

from __future__ import annotations

from collections.abc import Sequence

from starlette.requests import Request
from starlette.responses import Response

ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization, X-Signature-256, X-Timestamp"
MAX_AGE_SECONDS = 86400


class CORSPolicy:
    """Fixed CORS header set.

    With a single configured origin (or ``*``) that value is sent as-is. With
    several, the request's ``Origin`` is echoed back when it is on the list,
    otherwise the first configured origin is sent.
    """

    def __init__(self, allowed_origins: Sequence[str] = ("*",)) -> None:
        self.allowed_origins = tuple(allowed_origins) or ("*",)

    def allow_origin(self, request_origin: str | None = None) -> str:
        if "*" in self.allowed_origins:
            return "*"
        if request_origin and request_origin in self.allowed_origins:
            return request_origin
        return self.allowed_origins[0]

    def headers(self, request_origin: str | None = None) -> dict[str, str]:
        headers = {
            "Access-Control-Allow-Origin": self.allow_origin(request_origin),
            "Access-Control-Allow-Methods": ALLOW_METHODS,
            "Access-Control-Allow-Headers": ALLOW_HEADERS,
            "Access-Control-Max-Age": str(MAX_AGE_SECONDS),
        }
        if "*" not in self.allowed_origins and len(self.allowed_origins) > 1:
            headers["Vary"] = "Origin"
        return headers

    def preflight(self, request: Request) -> Response | None:
        """Empty 200 for OPTIONS, None for anything else."""
        if request.method != "OPTIONS":
            return None
        return self.apply(Response(status_code=200), request.headers.get("origin"))

    def apply(self, response: Response, request_origin: str | None = None) -> Response:
        for name, value in self.headers(request_origin).items():
            response.headers[name] = value
        return response
