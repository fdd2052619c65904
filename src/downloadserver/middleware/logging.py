"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per request, with timing and a correlation ID.

    TEXT (Apache-like):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 10.0.0.7 - - [18/Oct/2026:10:55:36 +0000] "GET /download/ab12" 200  │
    │ 734003200 1.84ms                                                    │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"request_id": "a1b2c3d4", "method": "GET", "status_code": 304, ...}│
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHAT THE DURATION MEANS FOR A DOWNLOAD
=============================================================================

The pipeline returns as soon as the response head is decided; the body
is streamed afterwards by the connection. duration_ms is therefore the
time to decide (lookup, validators, 304/301/200), not the transfer
time. content_length is the declared Content-Length, which for a
streamed 200 is the file size.

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

# Configure separately from the rest of the server, e.g.
#   logging.getLogger("downloadserver.access").addHandler(file_handler)
logger = logging.getLogger("downloadserver.access")


@dataclass
class RequestLog:
    """Structured log entry for a request."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "query": self.query,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


def declared_length(response: HTTPResponse) -> int:
    """The Content-Length a response announces, or its buffered body size."""
    value = response.headers.get("Content-Length")
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return len(response.body)


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Add it FIRST so it sees every request and its timing covers the
    whole pipeline:

        pipeline.add(LoggingMiddleware(log_format="json"))
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        """
        Args:
            log_format: "text" (Apache-like) or "json".
            include_request_id: Add an X-Request-ID header to responses.
            log_level: Level the access lines are logged at.
            skip_paths: Paths never logged.
        """
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = request.get_header("X-Request-ID") or str(uuid.uuid4())[:8]
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if self.include_request_id:
            response.set_header("X-Request-ID", request_id)

        if request.path in self.skip_paths:
            return response

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=str(request.query_params) if request.query_params else "",
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=declared_length(response),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())

        return response
