"""
ShutterBox Backend — Access Logging Middleware
================================================

What:  One access-log line per request on the "shutterbox.access" logger.
       Probe endpoints are skipped.

Line format:
    GET /images/Xy3_a9Qk0bM -> 200 (12.4ms, 48213 bytes) client=10.0.0.7

Level by status: 5xx → ERROR, 4xx → WARNING, otherwise INFO. A request
that raised before producing a response is logged as 500 and re-raised.
Request bodies (passwords, photo bytes) are never logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

access_logger = logging.getLogger("shutterbox.access")

QUIET_PATHS = frozenset({"/health"})


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


def _log_access(request: Request, status: int, started: float, size: str) -> None:
    elapsed_ms = (time.perf_counter() - started) * 1000
    client = request.client.host if request.client else "unknown"
    access_logger.log(
        _level_for(status),
        "%s %s -> %d (%.1fms, %s bytes) client=%s",
        request.method,
        request.url.path,
        status,
        elapsed_ms,
        size,
        client,
        extra={"status": status, "elapsed_ms": round(elapsed_ms, 2)},
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            _log_access(request, 500, started, "-")
            raise

        _log_access(request, response.status_code, started, response.headers.get("content-length", "-"))
        return response
