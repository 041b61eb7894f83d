"""HMAC-SHA256 webhook authentication with timestamp replay window.

Signature format is ``sha256=<hex digest>`` computed over the exact raw
request body. The timestamp header carries Unix seconds; requests more than
``tolerance_seconds`` away from the local clock in either direction are
refused. A correctly signed request may still be replayed inside that
window, so receivers must apply updates idempotently.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import time
from collections.abc import Mapping

from starlette.requests import Request

from cvsite.audit.logger import AuditLogger
from cvsite.gate.limiter import client_ip
from cvsite.models import AuditEvent, AuditEventType, RiskLevel
from cvsite.webhook.models import AuthFailure, AuthResult, WebhookHeaders

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-signature-256", "x-hub-signature-256")
TIMESTAMP_HEADER = "x-timestamp"
SIGNATURE_PREFIX = "sha256="
DEFAULT_TOLERANCE_SECONDS = 300

_TIMESTAMP_RE = re.compile(r"\d+", re.ASCII)


class WebhookConfigurationError(Exception):
    """Raised when no shared secret is provisioned. Operator error, not caller error."""


def _as_bytes(payload: bytes | str) -> bytes:
    return payload.encode() if isinstance(payload, str) else payload


def sign(payload: bytes | str, secret: str) -> str:
    """Return the signature header value for ``payload``."""
    digest = hmac.new(secret.encode(), _as_bytes(payload), hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(payload: bytes | str, signature: str, secret: str) -> bool:
    """Constant-time check of ``signature`` against the expected value."""
    expected = sign(payload, secret)
    return hmac.compare_digest(signature.encode(), expected.encode())


def validate_timestamp(
    timestamp: str, tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
) -> bool:
    """True if ``timestamp`` is decimal Unix seconds within tolerance of now."""
    value = timestamp.strip()
    if not _TIMESTAMP_RE.fullmatch(value):
        return False
    return abs(int(time.time()) - int(value)) <= tolerance_seconds


def extract_headers(headers: Mapping[str, str]) -> WebhookHeaders:
    signature = None
    for name in SIGNATURE_HEADERS:
        signature = headers.get(name)
        if signature:
            break
    return WebhookHeaders(signature=signature or None, timestamp=headers.get(TIMESTAMP_HEADER))


class WebhookAuthenticator:
    """Verifies signed webhook requests against one shared secret."""

    def __init__(
        self,
        secret: str | None,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._secret = secret or ""
        self.tolerance_seconds = tolerance_seconds
        self.audit_logger = audit_logger

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def authenticate(self, headers: Mapping[str, str], body: bytes) -> AuthResult:
        """Check headers, freshness, then signature, in that order.

        Raises WebhookConfigurationError when no secret is set.
        """
        if not self._secret:
            raise WebhookConfigurationError("Webhook secret is not configured")

        try:
            parsed = extract_headers(headers)
            signature, timestamp = parsed.signature, parsed.timestamp
            if not signature or not timestamp:
                return AuthResult.fail(AuthFailure.MISSING_HEADERS)
            if not validate_timestamp(timestamp, self.tolerance_seconds):
                return AuthResult.fail(AuthFailure.STALE_OR_INVALID_TIMESTAMP)
            if not verify_signature(body, signature, self._secret):
                return AuthResult.fail(AuthFailure.SIGNATURE_MISMATCH)
        except (AttributeError, TypeError, UnicodeError, ValueError):
            logger.exception("Webhook header parsing failed")
            return AuthResult.fail(AuthFailure.INTERNAL_ERROR)
        return AuthResult.ok()

    async def authenticate_request(self, request: Request) -> tuple[AuthResult, bytes]:
        """Read the raw body and authenticate it.

        Returns the body too, so callers parse exactly the bytes that were
        verified.
        """
        body = await request.body()
        result = self.authenticate(request.headers, body)
        self._audit(request, result)
        return result, body

    def _audit(self, request: Request, result: AuthResult) -> None:
        reason = result.failure.value if result.failure else None
        if not result.success:
            logger.warning("Webhook authentication failed on %s: %s", request.url.path, reason)
        if not self.audit_logger:
            return
        self.audit_logger.log(AuditEvent(
            event_type=(
                AuditEventType.WEBHOOK_AUTH_SUCCESS if result.success
                else AuditEventType.WEBHOOK_AUTH_FAILURE
            ),
            source_ip=client_ip(request.headers),
            action=f"{request.method} {request.url.path}",
            result="success" if result.success else "failure",
            risk_level=RiskLevel.INFO if result.success else RiskLevel.HIGH,
            details={"reason": reason} if reason else None,
        ))
