"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP responses and serializes their head (and small bodies) to
bytes. Large bodies are not held here: a response may instead carry a
byte *stream* that the connection pumps to the socket chunk by chunk.

=============================================================================
THREE SHAPES OF DOWNLOAD RESPONSE
=============================================================================

    ┌──────────────────────────────────────────────────────────────────────┐
    │ 1. SMALL BODY  (errors, redirects)                                   │
    │    HTTP/1.1 404 Not Found                                            │
    │    Content-Length: 0            ← computed from body                 │
    │                                                                       │
    │ 2. STREAMED BODY  (GET of a file)                                    │
    │    HTTP/1.1 200 OK                                                   │
    │    Content-Length: 734003200    ← file size, set by the handler      │
    │    ETag: "9b71d224..."                                               │
    │    \r\n                                                              │
    │    ...bytes pumped from response.stream...                           │
    │                                                                       │
    │ 3. NO BODY AT ALL  (304 Not Modified, any HEAD)                      │
    │    HTTP/1.1 304 Not Modified                                         │
    │    ETag: "9b71d224..."          ← no Content-Length added            │
    └──────────────────────────────────────────────────────────────────────┘

to_bytes() only ever produces the head plus an in-memory body. When a
stream is attached it produces the head alone and the connection takes
over from there.

=============================================================================
INTERVIEW QUESTIONS ABOUT HTTP RESPONSES
=============================================================================

Q: "How does the client know when the response body ends?"
A: "Content-Length gives the exact byte count. For a streamed file we
   know the size up front from the descriptor, so we never need
   chunked transfer encoding."

Q: "Why must a 304 not carry Content-Length: 0?"
A: "Caches merge 304 headers into their stored response. A zero length
   would overwrite the real length of the cached body."

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus
from ..throttling import ByteSource


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

        Handler returns          to_bytes()              Connection
        HTTPResponse    ─────►   serializes    ─────►    sendall(head)
                                 the head                    │
                                                             ▼
                                                  stream? pump chunks
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stream: Optional[ByteSource] = field(default=None, repr=False)
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE"""
        return f"{self.version} {self.status} {self.status.phrase}"

    @property
    def is_streaming(self) -> bool:
        return self.stream is not None

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a response header. Returns self for method chaining."""
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        if isinstance(body, str):
            self.body = body.encode("utf-8")
        else:
            self.body = body
        return self

    def discard_stream(self) -> None:
        """
        Close and drop an attached stream without sending it.

        Used when a response that carries a stream is not going to be
        pumped (HEAD, or the client went away first).
        """
        if self.stream is not None:
            self.stream.close()
            self.stream = None

    def to_bytes(self, server_name: str = "DownloadServer/1.0", head_only: bool = False) -> bytes:
        """
        Serialize the response to bytes.

        =====================================================================
        SERIALIZATION RULES
        =====================================================================

            Content-Length  added from len(body) unless already set,
                            unless a stream is attached and unless the
                            status forbids a body (1xx, 204, 304)
            Date            added (RFC 7231 §7.1.1.2)
            Server          added

        The in-memory body is appended unless head_only is set or a
        stream is attached.

        =====================================================================
        """
        response_headers = dict(self.headers)

        if (
            "Content-Length" not in response_headers
            and self.stream is None
            and self.status.allows_body
        ):
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"

        if head_only or self.stream is not None or not self.status.allows_body:
            return header_bytes
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .header("ETag", descriptor.etag)
            .stream(source, length=descriptor.size)
            .build())

    Each method returns `self`, enabling chaining. build() is terminal.
    """

    def __init__(self, server_name: str = "DownloadServer/1.0"):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._stream: Optional[ByteSource] = None
        self._server_name = server_name

    # =========================================================================
    # STATUS / HEADERS
    # =========================================================================

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    # =========================================================================
    # BODY
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """
        Set a JSON response body.

        Uses ensure_ascii=False so file names with non-ASCII characters
        survive intact.
        """
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def stream(self, source: ByteSource, length: int) -> "ResponseBuilder":
        """
        Attach a byte stream as the body.

        The length must be known in advance: it becomes Content-Length
        and is the number of bytes the connection will pump.
        """
        self._stream = source
        self._body = b""
        self._headers["Content-Length"] = str(length)
        return self

    # =========================================================================
    # REDIRECT
    # =========================================================================

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        """
        301 Moved Permanently when permanent, otherwise 302 Found.

        The canonical download URL never changes for a given id and
        name, so downloads use 301 and let clients remember it.
        """
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        self._headers["Location"] = location
        return self

    # =========================================================================
    # CONNECTION
    # =========================================================================

    def keep_alive(self, timeout: int = 5, max_requests: int = 100) -> "ResponseBuilder":
        self._headers["Connection"] = "keep-alive"
        self._headers["Keep-Alive"] = f"timeout={timeout}, max={max_requests}"
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
            stream=self._stream,
        )

    def to_bytes(self) -> bytes:
        return self.build().to_bytes(self._server_name)


# =============================================================================
# HTTP DATES
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231 IMF-fixdate).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Wed, 01 Jan 2026 12:00:00 GMT

    HTTP dates are ALWAYS in GMT. Aware datetimes are converted to UTC
    first; naive ones are assumed to be UTC already.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)

    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def parse_http_date(value: str) -> Optional[datetime]:
    """
    Parse an HTTP-date into an aware UTC datetime, truncated to seconds.

    Accepts the three formats RFC 7231 §7.1.1.1 requires recipients to
    understand (IMF-fixdate, RFC 850, asctime). Returns None for
    anything unparseable.

        >>> parse_http_date("Sun, 06 Nov 1994 08:49:37 GMT")
        datetime.datetime(1994, 11, 6, 8, 49, 37, tzinfo=datetime.timezone.utc)
        >>> parse_http_date("yesterday") is None
        True
    """
    if not value:
        return None

    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError, OverflowError):
        return None

    if parsed is None:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    else:
        parsed = parsed.astimezone(timezone.utc)

    return parsed.replace(microsecond=0)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def redirect(location: str, permanent: bool = False) -> HTTPResponse:
    return ResponseBuilder().redirect(location, permanent).build()


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.BAD_REQUEST).json({"error": message}).build()


def not_found(message: Optional[str] = "Not Found") -> HTTPResponse:
    """
    Create a 404 Not Found response.

    With message=None the body is empty, which is what an unknown
    download id answers.
    """
    builder = ResponseBuilder().status(HTTPStatus.NOT_FOUND)
    if message is not None:
        builder.json({"error": message})
    return builder.build()


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """
    Create a 405 Method Not Allowed response.

    Includes the Allow header listing valid methods (RFC 7231 §6.5.5).
    """
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .json({"error": "Method Not Allowed", "allowed": allowed_methods})
        .build())


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """
    Create a 500 Internal Server Error response.

    Keep the message generic: it is shown to the client.
    """
    return ResponseBuilder().status(HTTPStatus.INTERNAL_SERVER_ERROR).json({"error": message}).build()


def service_unavailable(message: str = "Service Unavailable") -> HTTPResponse:
    return (ResponseBuilder()
        .status(HTTPStatus.SERVICE_UNAVAILABLE)
        .json({"error": message})
        .close_connection()
        .build())
