"""
Error Handler Utilities

Converts exceptions into the ``{"error": <code>, "message": ...}`` response
shape used across the API.

Usage:
    from src.utils.error_handlers import register_exception_handlers

    # In main.py
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from src.utils.exceptions import ErrorCode, error_body

logger = logging.getLogger(__name__)


def _request_id_headers(request: Request) -> dict[str, str]:
    request_id = getattr(request.state, "request_id", None)
    return {"X-Request-ID": request_id} if request_id else {}


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Return HTTPException details in the standard error shape.

    Details that already carry an ``error`` key are returned as-is; plain
    string details are wrapped.
    """
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = exc.detail
    else:
        code = ErrorCode.INTERNAL_ERROR if exc.status_code >= 500 else ErrorCode.INVALID_REQUEST
        content = error_body(code, str(exc.detail) if exc.detail else "An error occurred")

    headers = {**(exc.headers or {}), **_request_id_headers(request)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Map request body validation errors onto a 400 ``invalid_request``."""
    fields = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        fields.append({"field": ".".join(location) or "body", "message": error.get("msg", "")})

    logger.info("Rejected invalid request to %s: %s", request.url.path, fields)
    return JSONResponse(
        status_code=400,
        content=error_body(ErrorCode.INVALID_REQUEST, "Request validation failed", fields=fields),
        headers=_request_id_headers(request),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log everything, reveal nothing."""
    logger.error(
        "Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=exc
    )
    return JSONResponse(
        status_code=500,
        content=error_body(ErrorCode.INTERNAL_ERROR, "Internal server error"),
        headers=_request_id_headers(request),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
