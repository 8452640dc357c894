"""Request ID middleware — unique ID per request for tracing.

Learn: Every request gets an id, either from the incoming X-Request-ID
header (the relay forwards its webhook id) or generated here. The id is
bound to structlog's contextvars, so a worker's ask, the speech event that
answers it and the dispatch decision can be lined up in the log.
"""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a request ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
