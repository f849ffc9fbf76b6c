"""
Unified Error Governance

Classifies exceptions raised by API handlers, logs them once with structured
context and renders a uniform JSON error body.
"""

from typing import Any, Dict, Optional
from uuid import uuid4

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from hostpanel.shared.core.config import get_settings
from hostpanel.shared.core.exceptions import HostPanelException

logger = structlog.get_logger()

# Codes whose message and details are safe to show outside development.
SAFE_CODES = {"not_found", "billing_error", "provider_error"}


def handle_exception(
    request: Request, exc: Exception, error_id: Optional[str] = None
) -> JSONResponse:
    """Classifies and records exceptions, returning a standardized JSON response."""
    error_id = error_id or str(uuid4())
    is_prod = get_settings().ENVIRONMENT.lower() in ("production", "staging")

    if isinstance(exc, HostPanelException):
        panel_exc = exc
        if is_prod and panel_exc.code not in SAFE_CODES:
            panel_exc.message = "An error occurred while processing your request"
    elif isinstance(exc, ValueError):
        # Business validation errors are client errors
        panel_exc = HostPanelException(
            message="Invalid request parameters" if is_prod else str(exc),
            code="value_error",
            status_code=400,
        )
        logger.warning(
            "business_validation_error",
            error=str(exc),
            error_id=error_id,
            path=request.url.path,
        )
    else:
        # Always sanitize unhandled exceptions to avoid leaking secrets via message bodies.
        panel_exc = HostPanelException(
            message="An unexpected internal error occurred",
            code="internal_error",
            status_code=500,
        )
        logger.exception(
            "unhandled_raw_exception",
            error=str(exc),
            error_id=error_id,
            path=request.url.path,
        )

    logger.error(
        "api_error",
        error_id=error_id,
        code=panel_exc.code,
        message=panel_exc.message,
        status_code=panel_exc.status_code,
        path=request.url.path,
        details=panel_exc.details,
    )

    response_details: Optional[Dict[str, Any]] = panel_exc.details
    if is_prod and panel_exc.code not in SAFE_CODES:
        response_details = None

    return JSONResponse(
        status_code=panel_exc.status_code,
        content={
            "error": {
                "message": panel_exc.message,
                "code": panel_exc.code,
                "id": error_id,
                "details": response_details if response_details else None,
            }
        },
    )
