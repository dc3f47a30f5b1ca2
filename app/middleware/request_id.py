"""
Request ID middleware.

Reads `X-Request-ID` from the incoming request (or generates one), makes it
available to log records through a context variable, and echoes it back on
the response together with the processing time.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def generate_id() -> str:
    """Short unique ID suitable for logging."""
    return str(uuid.uuid4())[:12]


def get_request_id() -> str:
    return request_id_ctx.get() or "-"


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_id()
        token = request_id_ctx.set(request_id)
        request.state.request_id = request_id

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{(time.perf_counter() - start_time) * 1000:.1f}ms"
        return response


class RequestIdLogFilter(logging.Filter):
    """
    Injects the current request ID into log records.

    Usage:
        handler.addFilter(RequestIdLogFilter())
        handler.setFormatter(logging.Formatter('%(asctime)s [%(request_id)s] %(message)s'))
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True
