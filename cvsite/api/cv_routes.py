"""CV read and admin write endpoints, plus JSON backup and restore."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from cvsite.cv.db import CVNotFoundError
from cvsite.cv.models import Section
from cvsite.cv.validation import SectionValidationError, validate_cv, validate_section
from cvsite.gate.limiter import client_ip
from cvsite.models import AuditEvent, AuditEventType, RiskLevel

if TYPE_CHECKING:
    from cvsite.audit.logger import AuditLogger
    from cvsite.cv.db import CVDatabase

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1


def _fail(error: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


def log_cv_update(
    audit_logger: AuditLogger | None, request: Request, section: str, via: str,
) -> None:
    if audit_logger:
        audit_logger.log(AuditEvent(
            event_type=AuditEventType.CV_UPDATED,
            source_ip=client_ip(request.headers),
            action=f"{request.method} {request.url.path}",
            result="success",
            risk_level=RiskLevel.MEDIUM,
            details={"section": section, "via": via},
        ))


def _sections(record: dict[str, Any]) -> dict[str, Any]:
    return {section.value: record[section.value] for section in Section}


def create_cv_router(db: CVDatabase, audit_logger: AuditLogger | None = None) -> APIRouter:
    router = APIRouter(prefix="/api/cv")

    @router.get("")
    async def get_cv() -> JSONResponse:
        try:
            record = db.get_latest()
        except Exception:
            logger.exception("Failed to read CV")
            return _fail("Internal server error", 500)

        if record is None:
            return _fail("CV data not found", 404)
        return JSONResponse({
            "success": True,
            "data": _sections(record),
            "updatedAt": record["updatedAt"],
            "message": "CV data retrieved successfully",
        })

    @router.post("")
    async def save_cv(request: Request) -> JSONResponse:
        """Create the CV, or replace every section of the existing one."""
        try:
            body: Any = await request.json()
        except ValueError:
            return _fail("Request body must be JSON", 400)

        try:
            cv = validate_cv(body)
        except SectionValidationError as e:
            return _fail(f"Data validation failed: {e.detail}", 400)

        try:
            cv_id, created = db.save(cv)
        except Exception:
            logger.exception("Failed to save CV")
            return _fail("Internal server error", 500)

        log_cv_update(audit_logger, request, "all", "admin")
        return JSONResponse({
            "success": True,
            "data": {"id": cv_id},
            "message": "CV data created successfully" if created else "CV data updated successfully",
        })

    @router.put("")
    async def update_section(request: Request) -> JSONResponse:
        try:
            body: Any = await request.json()
        except ValueError:
            return _fail("Request body must be JSON", 400)

        if not isinstance(body, dict) or not body.get("section") or body.get("data") is None:
            return _fail("Section and data are required", 400)

        try:
            data = validate_section(body["section"], body["data"])
        except SectionValidationError as e:
            return _fail(str(e), 400)

        section = Section(body["section"])
        try:
            cv_id, _ = db.update_section(section, data)
        except CVNotFoundError:
            return _fail("CV data not found", 404)
        except Exception:
            logger.exception("Failed to update CV section %s", section.value)
            return _fail("Internal server error", 500)

        log_cv_update(audit_logger, request, section.value, "admin")
        return JSONResponse({
            "success": True,
            "data": {"id": cv_id},
            "message": f"{section.value} updated successfully",
        })

    @router.get("/backup")
    async def backup_cv() -> JSONResponse:
        """Export the live CV as a restorable JSON document."""
        try:
            record = db.get_latest()
        except Exception:
            logger.exception("Failed to read CV for backup")
            return _fail("Internal server error", 500)

        if record is None:
            return _fail("CV data not found", 404)
        return JSONResponse({
            "success": True,
            "data": {
                "version": BACKUP_VERSION,
                "exportedAt": datetime.now(UTC).isoformat(),
                "updatedAt": record["updatedAt"],
                "cv": _sections(record),
            },
            "message": "CV backup created successfully",
        })

    @router.post("/restore")
    async def restore_cv(request: Request) -> JSONResponse:
        """Replace the CV with a document produced by the backup endpoint.

        Accepts either the backup envelope (``{"version", "cv", ...}``) or a
        bare CV document. The CV is validated like a full POST.
        """
        try:
            body: Any = await request.json()
        except ValueError:
            return _fail("Request body must be JSON", 400)

        if isinstance(body, dict) and "cv" in body:
            if body.get("version", BACKUP_VERSION) != BACKUP_VERSION:
                return _fail(f"Unsupported backup version: {body.get('version')}", 400)
            body = body["cv"]

        try:
            cv = validate_cv(body)
        except SectionValidationError as e:
            return _fail(f"Data validation failed: {e.detail}", 400)

        try:
            cv_id, _ = db.save(cv)
        except Exception:
            logger.exception("Failed to restore CV")
            return _fail("Internal server error", 500)

        log_cv_update(audit_logger, request, "all", "restore")
        return JSONResponse({
            "success": True,
            "data": {"id": cv_id},
            "message": "CV data restored successfully",
        })

    return router
