"""
Request ID Middleware

Tags every request with an id, exposes it on ``request.state.request_id`` and
in the logging context, and echoes it back in the ``X-Request-ID`` header.

Usage:
    from src.middleware.request_id_middleware import RequestIDMiddleware

    app.add_middleware(RequestIDMiddleware)
"""

import logging
import re
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from src.config.logging_config import current_request_id

logger = logging.getLogger(__name__)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")

# Client ids outside this alphabet are replaced, never echoed
_VALID_REQUEST_ID_RE = re.compile(r"^[a-zA-Z0-9._-]{1,128}$")


def _new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def resolve_request_id(raw: str | None) -> str:
    """Accept a client-supplied id if it is safe to log, else mint a new one."""
    if not raw:
        return _new_request_id()

    sanitized = _CONTROL_CHARS_RE.sub("", raw)[:128]
    if not _VALID_REQUEST_ID_RE.match(sanitized):
        logger.debug("Discarded invalid client request id")
        return _new_request_id()
    if not sanitized.startswith("req_"):
        sanitized = f"req_{sanitized}"
    return sanitized


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request id to the request, the log records and the response."""

    async def dispatch(self, request: Request, call_next):
        request_id = resolve_request_id(
            request.headers.get("X-Request-ID") or request.headers.get("X-Correlation-ID")
        )
        request.state.request_id = request_id
        token = current_request_id.set(request_id)

        try:
            logger.debug(f"{request.method} {request.url.path}")
            response = await call_next(request)
        finally:
            current_request_id.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response
