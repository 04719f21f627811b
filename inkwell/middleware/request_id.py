"""
Inkwell Backend — Request ID Middleware
=========================================

What:  Assigns a correlation id to each request, echoes it in the
       X-Request-ID response header and exposes it to log records.
How:   The id lives in a ContextVar, so every coroutine serving the request
       (services, ledger, gateway) logs with the same id. `RequestIDLogFilter`
       copies it onto each LogRecord as `record.request_id`.
Who:   Applied to every request; error handlers read it for response bodies.
"""

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests in one thread each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDLogFilter(logging.Filter):
    """Attach the current request id ("-" outside a request) to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Use the client's X-Request-ID when sent, otherwise generate a short one.

    The id is stored in the ContextVar and on request.state, and returned
    in the response headers.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
