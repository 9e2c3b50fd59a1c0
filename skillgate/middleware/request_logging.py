"""
Request/response logging middleware.

Every request gets a correlation ID (the caller's X-Request-ID, or a fresh
UUID) that is attached to all log records emitted while it is handled and
returned on the response. Bodies are never read: redemption requests carry
access codes and progress updates carry the user's typed text.
"""
import logging
import time
import uuid
from typing import Any, Callable, Dict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from skillgate.core.logging_config import request_id_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
TOKEN_PREVIEW_CHARS = 10


def _user_identifier(request: Request) -> str:
    """Short, non-reversible hint of who is calling, for log correlation."""
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not credentials:
        return "anonymous"
    return f"token:{credentials[:TOKEN_PREVIEW_CHARS]}..."


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line when a request arrives and one when its response leaves."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        context_token = request_id_context.set(request_id)
        started = time.perf_counter()

        fields: Dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "client_host": request.client.host if request.client else "unknown",
            "user_identifier": _user_identifier(request),
        }
        logger.info("Incoming request", extra=fields)

        try:
            response = await call_next(request)

            response.headers[REQUEST_ID_HEADER] = request_id
            fields["status_code"] = response.status_code
            fields["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)

            if response.status_code >= 500:
                logger.error("Server error response", extra=fields)
            elif response.status_code >= 400:
                logger.warning("Client error response", extra=fields)
            else:
                logger.info("Request completed", extra=fields)
            return response
        finally:
            request_id_context.reset(context_token)
