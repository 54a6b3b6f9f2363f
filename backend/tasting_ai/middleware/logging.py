"""
Tasting AI — Request Logging Middleware
========================================

What:  One access-log line per HTTP request.
Why:   Pipeline runs take seconds; the duration on POST /api/pipeline/runs
       is the first thing to look at when captures feel slow, so requests
       over `slow_request_ms` are raised to WARNING even when they succeed.

Typical durations:
    GET  /api/pipeline/stats:  10-50ms (session log aggregate)
    POST /api/pipeline/runs:   2000-15000ms (provider calls dominate)

Not logged: request bodies (capture text is personal), media contents,
and /health probes.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from tasting_ai.middleware.request_id import current_request_id

logger = logging.getLogger("tasting_ai.access")

QUIET_PATHS = frozenset({"/health"})


def access_log_level(status: int, duration_ms: float, slow_request_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400 or duration_ms >= slow_request_ms:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, slow_request_ms: float = 20_000) -> None:
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        status = response.status_code
        logger.log(
            access_log_level(status, duration_ms, self.slow_request_ms),
            "[%s] %s %s → %d in %.0fms%s",
            current_request_id(),
            request.method,
            path,
            status,
            duration_ms,
            " (slow)" if duration_ms >= self.slow_request_ms else "",
        )
        return response
