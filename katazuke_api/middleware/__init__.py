"""
Middleware package for the API.
"""
from katazuke_api.middleware.logging_middleware import (
    RequestLoggerAdapter,
    RequestLoggingMiddleware,
    get_logger,
    get_request_id,
)

__all__ = [
    "RequestLoggingMiddleware",
    "RequestLoggerAdapter",
    "get_logger",
    "get_request_id",
]
