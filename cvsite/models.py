"""Shared Pydantic data models for cv-site."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class AuditEventType(str, Enum):
    RATE_LIMITED = "rate_limited"
    WEBHOOK_AUTH_SUCCESS = "webhook_auth_success"
    WEBHOOK_AUTH_FAILURE = "webhook_auth_failure"
    ADMIN_AUTH_SUCCESS = "admin_auth_success"
    ADMIN_AUTH_FAILURE = "admin_auth_failure"
    CV_UPDATED = "cv_updated"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Gate Models ---


class RateLimitConfig(BaseModel):
    """Admission budget for one endpoint class."""

    model_config = ConfigDict(frozen=True)

    window_ms: int = Field(gt=0)
    max_requests: int = Field(ge=1)
    message: str | None = None

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    user_id: str | None = None
    action: str
    result: str  # "success" | "failure" | "blocked"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
