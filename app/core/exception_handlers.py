"""Global exception handlers for consistent error responses.

Every failure leaves the API in the same shape::

    {"error": {"code", "reason", "message", "request_id", "details"?}}

Design:
- AppError subclasses → their own ``http_status`` and ``reason``
- Request body/parameter validation → 400 INVALID_INPUT
- Unexpected Exception → generic 500 (safety net, nothing leaked)
"""

from __future__ import annotations

import logging
import math
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import AppError, RateLimitAppError
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int,
    *,
    code: str,
    reason: str,
    message: str,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    error_content: dict[str, Any] = {
        "code": code,
        "reason": reason,
        "message": message,
        "request_id": get_request_id(),
    }
    if details:
        error_content["details"] = details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error with its status, reason and optional details.

    Rate-limit rejections also carry a ``Retry-After`` header (whole seconds,
    rounded up) unless disabled in configuration.
    """
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "reason": exc.reason,
            "status_code": exc.http_status,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )

    # Apps built by create_app carry their own settings; bare apps use the globals
    cfg = getattr(request.app.state, "settings", settings)

    headers: dict[str, str] | None = None
    if isinstance(exc, RateLimitAppError) and cfg.app.rate_limit_include_headers:
        headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))}

    return _error_response(
        exc.http_status,
        code=exc.code,
        reason=exc.reason,
        message=exc.message,
        details=exc.details,
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Map FastAPI's 422 body validation errors onto INVALID_INPUT (400)."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "invalid")}
        for err in exc.errors()
    ]
    logger.warning(
        "request_validation_failed",
        extra={"request_path": request.url.path, "error_count": len(errors)},
    )
    return _error_response(
        400,
        code="invalid_request",
        reason="INVALID_INPUT",
        message="Request body or parameters are invalid.",
        details={"context": {"errors": errors}},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return _error_response(
        500,
        code="internal_server_error",
        reason="INTERNAL_ERROR",
        message="An unexpected error occurred. Please try again later.",
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, general_exception_handler)
