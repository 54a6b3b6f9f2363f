"""
Tasting AI — Request ID Middleware
===================================

What:  Gives every request a correlation id and echoes it back.
Why:   A single pipeline run logs from the orchestrator, three adapters and
       the Gemini client; the id ties those lines to one HTTP request and
       is what the mobile app quotes in bug reports.
How:   A client-supplied X-Request-ID is kept only if it looks like an id
       (letters, digits, dash, underscore; at most 64 chars). Anything
       else is replaced with a fresh 8-char UUID prefix so log lines can't
       be forged through the header.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

HEADER = "X-Request-ID"
_VALID_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def current_request_id() -> str:
    """Request id of the request being served, or "" outside a request."""
    return request_id_var.get()


def _accept_or_generate(candidate: Optional[str]) -> str:
    if candidate and _VALID_ID.match(candidate):
        return candidate
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = _accept_or_generate(request.headers.get(HEADER))
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)

        response.headers[HEADER] = rid
        return response
