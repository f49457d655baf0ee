"""
TenantNotes Backend — Request Logging Middleware
=================================================

What:  One structured access-log line per HTTP request.
Why:   Enables monitoring, debugging and alerting; 403s show up at WARNING
       next to the guard's own denial line for the same request ID.
How:   Logs after the response is produced, with duration, status, the
       request ID and, for authenticated requests, the caller's tenant.

Log Format:
    2024-01-15T12:00:00 [INFO] tenantnotes.access: GET /api/notes 200 12.3ms [a1b2c3d4] tenant=… from 10.0.0.7

What we log vs what we DON'T log (privacy):
    Log: method, path, status, duration, IP, request ID, tenant ID
    Don't log: request bodies (note content), Authorization headers
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from tenantnotes.middleware.request_id import request_id_var

logger = logging.getLogger("tenantnotes.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, path, status, duration and tenant for each request.

    Level by status: 5xx → ERROR, 4xx → WARNING, otherwise INFO.
    /health is skipped; probes hit it every few seconds.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        path = request.url.path
        rid = request_id_var.get("")

        if path == "/health":
            return await call_next(request)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        # Set by security.get_current_principal once the token is verified
        tenant_id = getattr(request.state, "tenant_id", None)
        tenant = str(tenant_id) if tenant_id is not None else "-"

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] tenant=%s from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            tenant,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "tenant_id": tenant,
            },
        )

        return response
