"""
=============================================================================
DOWNLOAD SERVER
=============================================================================

Ties the components together into a running server.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌──────────────────────────────────────────────────────────────────────┐
    │                        ┌─────────────────┐                           │
    │                        │   HTTPServer    │                           │
    │                        │ (Orchestrator)  │                           │
    │                        └────────┬────────┘                           │
    │            ┌────────────────────┼────────────────────┐               │
    │            ▼                    ▼                    ▼               │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐          │
    │    │ SocketServer │    │  ThreadPool  │    │    Router    │          │
    │    └──────┬───────┘    └──────────────┘    └──────┬───────┘          │
    │           ▼                                       ▼                  │
    │    ┌──────────────┐                       ┌────────────────┐         │
    │    │  Connection  │ ◄── body stream ───── │ DeliveryHandler│         │
    │    └──────────────┘                       └───────┬────────┘         │
    │                                                   ▼                  │
    │                                   FileStorage   ThrottlePolicy       │
    └──────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. SocketServer accepts, the connection is queued in the ThreadPool
    2. Worker reads and parses the request
    3. LoggingMiddleware → Router → DeliveryHandler decides the response
       (404, 304, 301 or 200) and, for a GET 200, attaches a throttled
       stream over the opened file
    4. The head is serialized and sent
    5. A stream, if any, is pumped chunk by chunk; HEAD never sends one
    6. Keep-alive: loop to 2, unless the body could not be completed

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: "Why does the handler return a stream rather than the file bytes?"
A: "A 700 MB file must not be loaded into memory, and the head has to
   go out before any body byte. The response carries an open, throttled
   source and the connection reads it one chunk at a time."

Q: "What if the client disconnects in the middle of a download?"
A: "sendall() fails, send_stream() returns False and closes the
   source, and the worker closes the connection and moves on."

=============================================================================
"""

import logging
from typing import Optional, Callable, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool
from .delivery import DeliveryHandler
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, ResponseBuilder, HTTPStatus,
    Router, internal_error, service_unavailable,
)
from .middleware import MiddlewarePipeline, Middleware, LoggingMiddleware
from .storage import FileStorage, FileSystemStorage
from .throttling import ThrottlePolicy

logger = logging.getLogger(__name__)


class HTTPServer:
    """
    HTTP/1.1 server for GET/HEAD downloads.

        server = HTTPServer(ServerConfig(storage_dir="/srv/files"))
        DeliveryHandler(storage, throttle).register(server.router)
        server.use(LoggingMiddleware())
        server.run()

    create_app() does that wiring from a config.
    """

    def __init__(self, config: Optional[ServerConfig] = None, router: Optional[Router] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._router = router or Router()
        self._middleware = MiddlewarePipeline()
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None
        self._running = False

    def use(self, middleware: Middleware) -> "HTTPServer":
        """Add middleware. The first added runs outermost."""
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self._router

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port), with the real port once listening."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def route(self, path: str, method: Optional[str] = None, **kwargs):
        return self._router.route(path, method, **kwargs)

    def get(self, path: str, **kwargs):
        return self._router.get(path, **kwargs)

    def head(self, path: str, **kwargs):
        return self._router.head(path, **kwargs)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start the server and block until it is stopped (Ctrl+C, SIGTERM
        or stop()).
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._running = True
        self._setup_logging()
        self._handler = self._middleware.wrap(self._router.handle)
        self._thread_pool.start()

        logger.info(f"Starting download server on {self.config.host}:{self.config.port}")
        self._print_startup_banner()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_listening(timeout)

    def stop(self):
        """Ask a running server to stop. run() returns once it has."""
        self._socket_server.shutdown()

    def _setup_logging(self):
        """Configure the root logger from config.log_level."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("downloadserver").setLevel(level)

    def _print_startup_banner(self):
        host, port = self.config.host, self.config.port
        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print(f"║  {self.config.server_name} running")
        print(f"║  http://{host}:{port}")
        print(f"║  Workers: {self.config.min_workers}-{self.config.max_workers} threads")
        print("║  Press Ctrl+C to stop")
        print("╚══════════════════════════════════════════════════════════════╝")
        for route in self._router.routes():
            print(f"  {route.method or '*':<6} {route.path}")
        print()

    def _shutdown(self):
        """
        Graceful shutdown: the accept loop has stopped; let queued
        connections and running downloads finish, bounded by a timeout.
        """
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Queue a connection for a worker, or answer 503 if the pool is full."""
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            timeout=self.config.timeout,
            block=False,
        )

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection: {self._thread_pool.stats}")
            conn.send_response(service_unavailable("Server overloaded").to_bytes(self.config.server_name))
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Keep-alive loop for one connection (runs in a worker thread).

            read → parse → handle → send head → stream body → repeat
        """
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        self._send_error(conn, HTTPStatus(e.status_code), str(e))
                        break

                    conn.state = conn.state.PROCESSING

                    try:
                        response = self._handler(request)
                    except Exception as e:
                        logger.exception(f"[{conn.id}] Handler error: {e}")
                        response = internal_error()

                    keep_alive = request.is_keep_alive and self.config.keep_alive
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive",
                            f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    if not self._send(conn, request, response):
                        break

                    if not keep_alive:
                        break

                    conn.set_keep_alive()

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break

                except ValueError as e:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                    break

                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _send(self, conn: Connection, request: HTTPRequest, response: HTTPResponse) -> bool:
        """
        Write one response: the head, then the body stream if there is
        one and the request is not HEAD.

        Returns:
            False if the connection can no longer be used.
        """
        head = response.to_bytes(self.config.server_name, head_only=request.is_head)

        if not conn.send_response(head):
            response.discard_stream()
            return False

        if not response.is_streaming:
            return True

        if request.is_head:
            response.discard_stream()
            return True

        length = int(response.headers["Content-Length"])
        stream = response.stream
        response.stream = None
        return conn.send_stream(stream, length, chunk_size=self.config.stream_chunk_size)

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str):
        """Error response for failures before a handler ran."""
        response = (ResponseBuilder(self.config.server_name)
            .status(status)
            .text(message)
            .close_connection()
            .build())
        conn.send_response(response.to_bytes(self.config.server_name))


def create_app(
    config: Optional[ServerConfig] = None,
    storage: Optional[FileStorage] = None,
) -> HTTPServer:
    """
    Build a ready-to-run download server.

    Args:
        config: Server configuration; config.storage_dir is used when no
            storage is given.
        storage: Storage to serve from, e.g. a MemoryStorage in tests.

    Raises:
        ValueError: If neither storage nor config.storage_dir is set.
    """
    config = config or ServerConfig()

    if storage is None:
        if not config.storage_dir:
            raise ValueError("No storage configured: set storage_dir")
        storage = FileSystemStorage(config.storage_dir, hash_chunk_size=config.hash_chunk_size)

    server = HTTPServer(config)

    throttle = ThrottlePolicy(config.max_bytes_per_second, scope=config.throttle_scope)
    delivery = DeliveryHandler(storage, throttle=throttle, prefix=config.download_prefix)
    delivery.register(server.router)

    server.use(LoggingMiddleware(log_format=config.log_format))

    logger.info(f"Serving downloads under {delivery.prefix or '/'} ({throttle.describe()})")
    return server
