"""
ERP Gateway - Request Logging Middleware
=========================================

What:  One access log line per HTTP request: method, path, status, duration.
Who:   Runs inside RequestIDMiddleware, so the line carries the request ID
       (added by RequestIDLogFilter).

Not logged: query strings, bodies and cookies. Query strings may carry date
ranges only, but the session cookie identifies a caller and stays out.

Level by status:
    5xx → ERROR, 4xx → WARNING, otherwise INFO. A 502/503 here usually means
    the vendor failed; the matching vendor call line has the same request ID.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("erp_gateway.access")

_QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in _QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        client_ip = request.client.host if request.client else "unknown"
        logger.log(
            level,
            "%s %s %d %.1fms from %s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            client_ip,
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
