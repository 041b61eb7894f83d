"""FastAPI application for the CV site backend."""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Mapping

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cvsite import __version__
from cvsite.api.auth_middleware import AdminAuthMiddleware
from cvsite.api.cv_routes import create_cv_router
from cvsite.api.webhook_routes import create_webhook_router
from cvsite.audit.logger import AuditLogger
from cvsite.config import (
    Settings,
    check_production_readiness,
    env_template,
    environment_info,
    validate_production_config,
)
from cvsite.cv.db import CVDatabase
from cvsite.gate.cors import CORSPolicy
from cvsite.gate.limiter import DEFAULT_CONFIGS, RateLimiter, load_rate_limit_configs
from cvsite.gate.middleware import GateMiddleware, RequestGate
from cvsite.gate.store import InMemoryRateLimitStore, RateLimitStore, SQLiteRateLimitStore
from cvsite.models import RateLimitConfig
from cvsite.webhook.auth import WebhookAuthenticator

logger = logging.getLogger(__name__)

# Path prefix -> endpoint class. /api/health is deliberately absent.
GATED_ROUTES = (
    ("/api/cv", "api"),
    ("/api/config", "api"),
    ("/api/webhook", "webhook"),
)


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    settings = Settings.from_env()
    audit_logger = (
        AuditLogger.from_env(settings.audit_log_path) if settings.audit_log_path else None
    )
    store: RateLimitStore = (
        SQLiteRateLimitStore(settings.rate_limit_db_path)
        if settings.rate_limit_db_path
        else InMemoryRateLimitStore()
    )
    return create_app(
        settings,
        rate_limits=load_rate_limit_configs(settings.rate_limits_path),
        store=store,
        audit_logger=audit_logger,
    )


def create_app(
    settings: Settings,
    rate_limits: Mapping[str, RateLimitConfig] | None = None,
    store: RateLimitStore | None = None,
    audit_logger: AuditLogger | None = None,
    db: CVDatabase | None = None,
) -> FastAPI:
    """Create the app with the request gate, admin auth, and CV routes."""
    app = FastAPI(docs_url=None, redoc_url=None)
    started = time.monotonic()
    limits = {**DEFAULT_CONFIGS, **(rate_limits or {})}
    cv_db = db or CVDatabase(settings.cv_db_path)
    authenticator = WebhookAuthenticator(
        settings.webhook_secret,
        tolerance_seconds=settings.webhook_tolerance_seconds,
        audit_logger=audit_logger,
    )
    gate = RequestGate(
        limiter=RateLimiter(store),
        cors=CORSPolicy(settings.allowed_origins),
        audit_logger=audit_logger,
    )
    app.state.gate = gate
    app.state.db = cv_db

    @app.get("/api/health")
    async def health() -> JSONResponse:
        t0 = time.monotonic()
        try:
            cv_db.count()
            db_status, db_error = "connected", None
        except sqlite3.Error as e:
            db_status, db_error = "error", str(e)
        healthy = db_status == "connected"
        elapsed_ms = int((time.monotonic() - t0) * 1000)
        return JSONResponse(
            {
                "status": "healthy" if healthy else "unhealthy",
                "uptime": round(time.monotonic() - started, 3),
                "responseTime": elapsed_ms,
                "version": __version__,
                "environment": settings.app_env,
                "database": {"status": db_status, "provider": "sqlite", "error": db_error},
                "services": {
                    "webhook": bool(settings.webhook_secret),
                    "admin": bool(settings.admin_token),
                    "audit": audit_logger is not None,
                },
            },
            status_code=200 if healthy else 503,
            headers={
                "Cache-Control": "no-cache, no-store, must-revalidate",
                "X-Health-Check": "cv-site",
                "X-Response-Time": f"{elapsed_ms}ms",
            },
        )

    @app.get("/api/config/production")
    async def production_config(request: Request) -> JSONResponse:
        action = request.query_params.get("action", "status")
        if action == "config":
            data, message = settings.redacted(), "Configuration retrieved (secrets redacted)"
        elif action == "validate":
            data, message = validate_production_config(settings), "Validation completed"
        elif action == "environment":
            data, message = environment_info(settings), "Environment retrieved"
        elif action == "readiness":
            data, message = check_production_readiness(settings), "Readiness check completed"
        elif action == "template":
            data, message = {"template": env_template()}, "Environment template generated"
        else:
            validation = validate_production_config(settings)
            readiness = check_production_readiness(settings)
            data = {
                "environment": environment_info(settings),
                "validation": validation,
                "readiness": readiness,
                "summary": {
                    "ready": readiness["ready"],
                    "score": readiness["score"],
                    "environment": settings.app_env,
                    "errors": len(validation["errors"]),
                    "warnings": len(validation["warnings"]),
                },
            }
            message = "Status overview retrieved"
        return JSONResponse({"success": True, "data": data, "message": message})

    app.include_router(create_cv_router(cv_db, audit_logger))
    app.include_router(create_webhook_router(cv_db, authenticator, audit_logger))

    # Admin auth sits inside the gate, so auth failures are still
    # rate limited and carry CORS headers.
    app.add_middleware(
        AdminAuthMiddleware, token=settings.admin_token, audit_logger=audit_logger,
    )
    app.add_middleware(
        GateMiddleware,
        gate=gate,
        routes=[(prefix, limits[endpoint_class]) for prefix, endpoint_class in GATED_ROUTES],
    )

    return app
