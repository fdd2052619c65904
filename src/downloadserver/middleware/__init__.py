"""
=============================================================================
MIDDLEWARE PACKAGE
=============================================================================

Chain of Responsibility around the router:

    Request → LoggingMiddleware → router.handle → Response

Middleware:
    LoggingMiddleware   access log line per request, X-Request-ID header

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "LoggingMiddleware",
    "RequestLog",
]
