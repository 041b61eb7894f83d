"""Signed webhook endpoint for CV section updates.

Every authentication failure answers with the same 401 body; the specific
reason goes to the log and the audit trail only.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from cvsite.api.cv_routes import log_cv_update
from cvsite.cv.db import CVNotFoundError
from cvsite.cv.models import CVUpdateRequest
from cvsite.cv.validation import SectionValidationError, validate_section
from cvsite.webhook.auth import WebhookConfigurationError

if TYPE_CHECKING:
    from cvsite.audit.logger import AuditLogger
    from cvsite.cv.db import CVDatabase
    from cvsite.webhook.auth import WebhookAuthenticator

logger = logging.getLogger(__name__)


def create_webhook_router(
    db: CVDatabase,
    authenticator: WebhookAuthenticator,
    audit_logger: AuditLogger | None = None,
) -> APIRouter:
    router = APIRouter(prefix="/api/webhook")

    @router.post("/cv")
    async def receive_cv_update(request: Request) -> JSONResponse:
        try:
            result, body = await authenticator.authenticate_request(request)
        except WebhookConfigurationError:
            logger.error("WEBHOOK_SECRET not configured")
            return JSONResponse({"error": "Server configuration error"}, status_code=500)

        if not result.success:
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

        try:
            update = CVUpdateRequest.model_validate(json.loads(body))
        except (ValueError, ValidationError):
            return JSONResponse({"error": "Invalid update request"}, status_code=400)

        try:
            data = validate_section(update.section, update.data)
        except SectionValidationError as e:
            return JSONResponse({"error": f"Data validation failed: {e}"}, status_code=400)

        try:
            _, updated_at = db.update_section(update.section, data)
        except CVNotFoundError:
            return JSONResponse({"error": "CV not found"}, status_code=404)
        except Exception:
            logger.exception("Webhook CV update failed for section %s", update.section.value)
            return JSONResponse({"error": "Internal server error"}, status_code=500)

        log_cv_update(audit_logger, request, update.section.value, "webhook")
        return JSONResponse({
            "success": True,
            "message": f"CV section '{update.section.value}' updated successfully",
            "updatedAt": updated_at,
        })

    @router.get("/cv")
    async def webhook_status(request: Request) -> JSONResponse:
        """Echo a verification challenge, or report that the endpoint is live."""
        challenge = request.query_params.get("challenge")
        if challenge:
            return JSONResponse({"challenge": challenge})
        return JSONResponse({
            "message": "CV webhook endpoint is active",
            "timestamp": datetime.now(UTC).isoformat(),
        })

    return router
