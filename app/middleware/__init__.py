"""
Middleware modules for the push audience API.

- Request ID tracking and response timing
"""

from .request_id import RequestIdLogFilter, RequestIdMiddleware, get_request_id, request_id_ctx

__all__ = [
    "RequestIdMiddleware",
    "RequestIdLogFilter",
    "get_request_id",
    "request_id_ctx",
]
