"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Wraps a client socket with buffered request reading, response writing
and body streaming, keep-alive accounting and a clean TCP close.

=============================================================================
WRITING A DOWNLOAD
=============================================================================

A download response goes out in two phases:

    ┌─────────────────────────────────────────────────────────────────┐
    │ 1. send_response(head)                                          │
    │      HTTP/1.1 200 OK\r\n ... Content-Length: N\r\n\r\n          │
    │                                                                  │
    │ 2. send_stream(source, N)                                       │
    │      loop:                                                       │
    │        source.readinto(chunk)   ← may sleep in the throttle     │
    │        socket.sendall(chunk)    ← may block on a slow client    │
    │      finally:                                                    │
    │        source.close()           ← file handle released always   │
    └─────────────────────────────────────────────────────────────────┘

Only one chunk is in memory at a time. If the client disconnects the
loop stops at the next sendall() and the source is closed right away.

If the source runs dry before N bytes, the response is already
committed to a length it cannot honour; the connection must be closed
so the client sees a truncated body rather than a desynchronised
keep-alive stream.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► PROCESSING ──────► WRITING ────────┐
     │             │                                    │           ▼
     │             │                                    │      KEEP_ALIVE
     │             ▼                                    │           │
     └──────────► CLOSING ◄─────────────────────────────┴───────────┘
                    │
                    ▼
                  CLOSED

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..throttling import ByteSource

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier for logs.
        state: Current connection state.
        requests_handled: Number of requests read on this connection.
        bytes_streamed: Body bytes sent by send_stream() so far.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0
    bytes_streamed: int = 0

    buffer_size: int = 8192
    timeout: float = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 64 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

            1. Use the keep-alive timeout after the first request
            2. recv() until the buffer holds \\r\\n\\r\\n
            3. Read Content-Length more bytes of body
            4. Return the request, keep any pipelined leftovers

        Returns:
            Complete HTTP request bytes, or None if the client closed
            the connection (or an idle keep-alive timed out).

        Raises:
            TimeoutError: If the first request never arrives.
            ValueError: If the request exceeds max_request_size.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk

                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """Content-Length from raw header bytes, 0 if absent or invalid."""
        header_str = headers.decode("utf-8", errors="replace").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send bytes with sendall().

        Returns:
            True if send succeeded, False if the connection was lost.
        """
        self.state = ConnectionState.WRITING
        self.last_activity = time.time()

        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def send_stream(self, source: ByteSource, length: int, chunk_size: int = 64 * 1024) -> bool:
        """
        Pump exactly `length` bytes from source to the socket.

        The source is closed when this returns, whatever happened.

        Returns:
            True if all `length` bytes were sent, False if the client
            went away or the source ended early. In both cases the
            connection must not be reused.
        """
        self.state = ConnectionState.WRITING
        buffer = bytearray(min(chunk_size, max(length, 1)))
        view = memoryview(buffer)
        sent = 0

        try:
            while sent < length:
                want = min(len(buffer), length - sent)
                count = source.readinto(view[:want])
                if not count:
                    logger.warning(f"[{self.id}] Body source ended after {sent} of {length} bytes")
                    return False

                self.socket.sendall(view[:count])
                sent += count
                self.bytes_streamed += count
                self.last_activity = time.time()

            return True

        except OSError as e:
            logger.warning(f"[{self.id}] Stream aborted after {sent} of {length} bytes: {e}")
            return False

        finally:
            source.close()

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

            1. shutdown(SHUT_WR)  sends FIN
            2. drain              read what the client still sent
            3. close()            release the descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # already disconnected

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
