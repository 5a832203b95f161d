"""
RequestContext Middleware - Adds request tracking to all requests.

This middleware adds the following to every request:
- request_id: Unique ID for request tracing
- ip_address: Client IP address

Both are stored in request.state and bound to the structlog context vars,
so every log line emitted while serving the request carries them.
"""

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from whatsup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Add request context to all incoming requests.

    Also adds X-Request-ID header to responses for client-side tracing.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        ip_address = request.client.host if request.client else None
        request.state.ip_address = ip_address

        structlog.contextvars.bind_contextvars(request_id=request_id, ip_address=ip_address)
        try:
            logger.debug("Request started", method=request.method, path=request.url.path)
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "ip_address")

        response.headers["X-Request-ID"] = request_id
        return response
