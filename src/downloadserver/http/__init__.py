"""
=============================================================================
HTTP PROTOCOL PACKAGE
=============================================================================

The HTTP/1.1 message layer of the download server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py      bytes → HTTPRequest (lowercased headers)            │
    │ response.py     HTTPResponse / ResponseBuilder → head bytes,        │
    │                 optional streamed body; HTTP date helpers           │
    │ router.py       path patterns (:id, *name) → handler                │
    │ status_codes.py HTTPStatus with reason phrases                      │
    │ mime_types.py   file extension → Content-Type (or None)             │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
HTTP MESSAGE FORMAT (RFC 7230)
=============================================================================

    REQUEST:                          RESPONSE:
    ─────────                         ──────────
    GET /path HTTP/1.1\\r\\n            HTTP/1.1 200 OK\\r\\n
    Header: Value\\r\\n                 Header: Value\\r\\n
    \\r\\n                              \\r\\n
                                      [body]

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    parse_http_date,
    redirect,               # 301/302 Redirect
    bad_request,            # 400 Bad Request
    not_found,              # 404 Not Found
    method_not_allowed,     # 405 Method Not Allowed
    internal_error,         # 500 Internal Server Error
    service_unavailable,    # 503 Service Unavailable
)
from .router import Router, Route
from .status_codes import HTTPStatus
from .mime_types import guess_mime_type, get_content_type

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "parse_http_date",

    "redirect",
    "bad_request",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "service_unavailable",

    "Router",
    "Route",

    "HTTPStatus",

    "guess_mime_type",
    "get_content_type",
]
