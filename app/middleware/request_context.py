"""
RequestContext Middleware - tags every request with a request id.

The id is taken from an incoming X-Request-ID header when present, stored on
request.state.request_id, bound into the structlog context for the duration
of the request and echoed back in the X-Request-ID response header.
"""

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_REQUEST_ID_LENGTH = 64


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = self._incoming_request_id(request) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            logger.debug(
                "Request started",
                method=request.method,
                path=request.url.path,
                client_ip=request.client.host if request.client else None,
            )
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers["X-Request-ID"] = request_id
        return response

    @staticmethod
    def _incoming_request_id(request: Request) -> str | None:
        value = (request.headers.get("x-request-id") or "").strip()
        if not value or len(value) > MAX_REQUEST_ID_LENGTH or not value.isprintable():
            return None
        return value
