"""
TenantNotes Backend — Request ID Middleware
============================================

What:  Assigns each request an ID and returns it in X-Request-ID.
Why:   Every log line of a request (access log, guard denial, error
       handler) carries the same ID, and clients can quote it in support
       requests; error responses include it as `request_id`.
How:   Uses the client's X-Request-ID if sent, otherwise a short UUID;
       stored in a ContextVar for loggers and in request.state for handlers.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client-supplied IDs longer than this are replaced; they end up in every log line
MAX_REQUEST_ID_LENGTH = 64


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware that assigns a unique ID to each request for tracing."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID", "")
        if not rid or len(rid) > MAX_REQUEST_ID_LENGTH:
            # 8 chars is enough to correlate within a log window
            rid = str(uuid.uuid4())[:8]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)

        response.headers["X-Request-ID"] = rid
        return response
