"""
ERP Gateway - Request ID Middleware
====================================

What:  Assigns a correlation ID to each request and returns it in `X-Request-ID`.
How:   The ID lives in a ContextVar for the duration of the request; a logging
       filter copies it onto every log record, so vendor call logs and error
       handler logs of one request share it.

Client-supplied IDs are accepted when they are short and plain (letters,
digits, dashes); anything else is replaced by a generated ID so a caller
cannot inject text into the logs.
"""

import logging
import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9-]{1,64}$")


def new_request_id() -> str:
    return str(uuid.uuid4())[:8]


class RequestIDLogFilter(logging.Filter):
    """Adds `request_id` to every record ("-" outside of a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get("X-Request-ID", "")
        rid = supplied if _VALID_REQUEST_ID.match(supplied) else new_request_id()

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
