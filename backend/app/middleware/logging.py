"""
Snapcheck Backend — Access Log Middleware
===========================================

What:  One log line per API request on the `snapcheck.access` logger.
How:   Measures the time spent in the rest of the chain and logs at a level
       derived from the status code.

Example:
    2026-01-15T12:00:00 [INFO] snapcheck.access: GET /api/accounts/acme 200 12.4ms [1f0c2a9b] from 10.0.0.7

Structured fields (request_id, method, path, status, duration_ms, client_ip)
are also passed as `extra` for handlers that emit JSON.

Never logged: request bodies, Authorization headers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("snapcheck.access")

# Probed every few seconds by the orchestrator
QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log: 5xx → ERROR, 4xx → WARNING, everything else → INFO."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
