"""Runtime settings and production-readiness diagnostics."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

REDACTED = "***REDACTED***"
MIN_SECRET_LENGTH = 32
READINESS_THRESHOLD = 85.0


def _split_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    webhook_secret: str = ""
    admin_token: str = ""
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])
    cv_db_path: str = "data/cv.db"
    rate_limits_path: str = "config/rate-limits.json"
    rate_limit_db_path: str | None = None
    audit_log_path: str | None = None
    webhook_tolerance_seconds: int = Field(default=300, gt=0)
    app_env: str = "development"
    public_base_url: str = "http://localhost:8000"

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from environment variables."""
        env = os.environ
        return cls(
            webhook_secret=env.get("WEBHOOK_SECRET", ""),
            admin_token=env.get("ADMIN_TOKEN", ""),
            allowed_origins=_split_csv(env.get("ALLOWED_ORIGINS")) or ["*"],
            cv_db_path=env.get("CV_DB_PATH", "data/cv.db"),
            rate_limits_path=env.get("RATE_LIMITS_PATH", "config/rate-limits.json"),
            rate_limit_db_path=env.get("RATE_LIMIT_DB_PATH") or None,
            audit_log_path=env.get("AUDIT_LOG_PATH") or None,
            webhook_tolerance_seconds=int(env.get("WEBHOOK_TOLERANCE_SECONDS", "300")),
            app_env=env.get("APP_ENV", "development"),
            public_base_url=env.get("PUBLIC_BASE_URL", "http://localhost:8000"),
        )

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def redacted(self) -> dict[str, Any]:
        data = self.model_dump()
        for key in ("webhook_secret", "admin_token"):
            data[key] = REDACTED if data[key] else ""
        return data


# --- Diagnostics ---


def validate_production_config(settings: Settings) -> dict[str, Any]:
    errors: list[str] = []
    warnings: list[str] = []

    if not settings.webhook_secret:
        errors.append("WEBHOOK_SECRET is required")
    elif len(settings.webhook_secret) < MIN_SECRET_LENGTH:
        warnings.append(f"WEBHOOK_SECRET should be at least {MIN_SECRET_LENGTH} characters long")

    if not settings.admin_token:
        errors.append("ADMIN_TOKEN is required")
    elif len(settings.admin_token) < MIN_SECRET_LENGTH:
        warnings.append(f"ADMIN_TOKEN should be at least {MIN_SECRET_LENGTH} characters long")

    if not settings.audit_log_path:
        warnings.append("AUDIT_LOG_PATH not set - gate decisions will not be audited")

    if settings.is_production:
        if "localhost" in settings.public_base_url:
            errors.append("PUBLIC_BASE_URL should not point to localhost in production")
        if "*" in settings.allowed_origins:
            warnings.append("ALLOWED_ORIGINS is '*' - restrict it to the site's origins")
        if settings.rate_limit_db_path is None:
            warnings.append(
                "RATE_LIMIT_DB_PATH not set - rate limits are per process",
            )

    return {"valid": not errors, "errors": errors, "warnings": warnings}


def environment_info(settings: Settings) -> dict[str, Any]:
    return {
        "environment": settings.app_env,
        "isProduction": settings.is_production,
        "isDevelopment": settings.app_env == "development",
        "baseUrl": settings.public_base_url,
        "protocol": settings.public_base_url.split("://", 1)[0],
        "database": {"type": "sqlite", "path": settings.cv_db_path},
    }


def check_production_readiness(settings: Settings) -> dict[str, Any]:
    validation = validate_production_config(settings)
    checks = {
        "environment": settings.is_production,
        "secrets": bool(settings.webhook_secret and settings.admin_token),
        "domain": "localhost" not in settings.public_base_url,
        "ssl": settings.public_base_url.startswith("https"),
        "origins": "*" not in settings.allowed_origins,
        "audit": settings.audit_log_path is not None,
        "sharedRateLimits": settings.rate_limit_db_path is not None,
    }
    score = sum(checks.values()) / len(checks) * 100

    recommendations = []
    if validation["errors"]:
        recommendations.append("Fix configuration errors")
    if validation["warnings"]:
        recommendations.append("Address configuration warnings")
    if not checks["ssl"]:
        recommendations.append("Ensure HTTPS is configured")
    if not checks["origins"]:
        recommendations.append("Restrict allowed origins")

    return {
        "ready": validation["valid"] and score >= READINESS_THRESHOLD,
        "score": round(score, 1),
        "checks": checks,
        "validation": validation,
        "recommendations": recommendations,
    }


def env_template() -> str:
    return """\
# Production environment - cv-site

APP_ENV=production
PUBLIC_BASE_URL=https://cv.example.com

# Shared secrets (32+ characters)
WEBHOOK_SECRET=change-me-webhook-secret-at-least-32-chars
ADMIN_TOKEN=change-me-admin-token-at-least-32-chars

# Comma-separated
ALLOWED_ORIGINS=https://cv.example.com

CV_DB_PATH=data/cv.db
RATE_LIMITS_PATH=config/rate-limits.json
RATE_LIMIT_DB_PATH=data/rate-limits.db
AUDIT_LOG_PATH=data/audit.jsonl
WEBHOOK_TOLERANCE_SECONDS=300
"""
