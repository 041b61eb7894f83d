"""Data models for webhook authentication."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AuthFailure(str, Enum):
    """Why a webhook was refused. Logged only; the wire always says 401."""

    MISSING_HEADERS = "missing_headers"
    STALE_OR_INVALID_TIMESTAMP = "stale_or_invalid_timestamp"
    SIGNATURE_MISMATCH = "signature_mismatch"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class WebhookHeaders:
    signature: str | None
    timestamp: str | None


@dataclass(frozen=True)
class AuthResult:
    success: bool
    failure: AuthFailure | None = None

    @classmethod
    def ok(cls) -> AuthResult:
        return cls(success=True)

    @classmethod
    def fail(cls, failure: AuthFailure) -> AuthResult:
        return cls(success=False, failure=failure)
