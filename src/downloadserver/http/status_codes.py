"""
=============================================================================
HTTP STATUS CODES (RFC 7231 / RFC 7232)
=============================================================================

Status codes the download server emits, with their reason phrases.

=============================================================================
STATUS CODES IN A DOWNLOAD SERVER
=============================================================================

    ┌────────────────────────────────────────────────────────────────────┐
    │                  WHAT A DOWNLOAD CAN ANSWER                        │
    ├────────┬───────────────────────────────────────────────────────────┤
    │  200   │ OK                - Full body (GET) or headers (HEAD)     │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  301   │ Moved Permanently - /download/{id} → /download/{id}/{name}│
    │  304   │ Not Modified      - Client copy is still valid            │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  400   │ Bad Request       - Unparseable request                   │
    │  404   │ Not Found         - Unknown file id                       │
    │  405   │ Method Not Allowed- Anything except GET/HEAD              │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  500   │ Internal Error    - Storage could not produce the bytes   │
    │  503   │ Unavailable       - Worker pool is saturated              │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
BODY-LESS STATUSES
=============================================================================

Some responses are defined to never carry a body (RFC 7230 §3.3.3):

    1xx, 204 No Content, 304 Not Modified

For those the server must not send Content-Length framing of its own:
a 304 that says "Content-Length: 0" would tell a cache the resource is
now empty.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    This enum extends IntEnum, so status codes can be used as integers:

        >>> HTTPStatus.NOT_MODIFIED == 304
        True
        >>> HTTPStatus.NOT_MODIFIED.phrase
        'Not Modified'
    """

    # 1xx INFORMATIONAL
    CONTINUE = 100

    # 2xx SUCCESS
    OK = 200
    CREATED = 201
    NO_CONTENT = 204
    PARTIAL_CONTENT = 206         # Not produced: ranges are out of scope

    # 3xx REDIRECTION
    MOVED_PERMANENTLY = 301       # Canonical by-id-and-name URL
    FOUND = 302
    NOT_MODIFIED = 304            # Conditional request hit

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413
    TOO_MANY_REQUESTS = 429

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.1 304 Not Modified
                     ─── ────────────
                      │       │
                      │       └── Reason phrase
                      └────────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        """Check if this is a 2xx (success) status code."""
        return 200 <= self < 300

    @property
    def is_redirect(self) -> bool:
        """Check if this is a 3xx (redirection) status code."""
        return 300 <= self < 400

    @property
    def is_client_error(self) -> bool:
        """Check if this is a 4xx (client error) status code."""
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        """Check if this is a 5xx (server error) status code."""
        return 500 <= self < 600

    @property
    def is_error(self) -> bool:
        """Check if this is an error status code (4xx or 5xx)."""
        return self >= 400

    @property
    def allows_body(self) -> bool:
        """
        Check whether a response with this status may carry a body.

        False for 1xx, 204 and 304. Responses with these statuses are
        serialized without automatic Content-Length framing.
        """
        return not (self < 200 or self in (HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED))


_STATUS_PHRASES = {
    HTTPStatus.CONTINUE: "Continue",

    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.PARTIAL_CONTENT: "Partial Content",

    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.NOT_MODIFIED: "Not Modified",

    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.TOO_MANY_REQUESTS: "Too Many Requests",

    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
