"""
Global exception handlers for FastAPI application.

These handlers catch exceptions raised anywhere in the request lifecycle
(routes, dependencies, middleware) and return consistent JSON responses.

Registration (in main.py):
    from thinktest.exceptions import AppException
    from thinktest.exception_handlers import app_exception_handler, unhandled_exception_handler

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
"""

import logging
from typing import Dict, List

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from thinktest.exceptions import AppException

logger = logging.getLogger(__name__)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle application-level exceptions (AppException and subclasses).

    Logs the error with request context and returns the structured body the
    error kind declares.

    Response format:
        {
            "success": false,
            "message": "Human-readable error message",
            "error_code": "MACHINE_READABLE_CODE",
            "retry_possible": bool,
            ...kind-specific fields (retry_after, hint, location, diagnostic)
        }
    """
    # Use warning level for client errors (4xx), error level for server errors (5xx)
    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"{exc.error_code}: {exc.message}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code,
        },
    )

    headers = None
    retry_after = getattr(exc, "retry_after", None)
    if exc.status_code == 429 and retry_after:
        headers = {"Retry-After": str(retry_after)}

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Turn FastAPI body validation failures into field-level 422 responses."""
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "body"
        errors.setdefault(field, []).append(error.get("msg", "Invalid value"))

    logger.warning(
        f"VALIDATION_ERROR: {len(errors)} invalid field(s)",
        extra={"path": request.url.path, "method": request.method},
    )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "The given data was invalid.",
            "error_code": "VALIDATION_ERROR",
            "retry_possible": False,
            "errors": errors,
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unhandled exceptions.

    Logs the full stack trace and returns a generic error response.
    This prevents internal details from leaking to clients.

    Note: HTTPException is handled by FastAPI's default handler,
    so it won't reach here.
    """
    logger.exception(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "error_code": "INTERNAL_ERROR",
            "retry_possible": False,
        },
    )
