r"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every setting of the download server in one dataclass, with defaults
for development, environment variable overrides and fail-fast
validation.

=============================================================================
THE 12-FACTOR WAY
=============================================================================

    ┌────────────────────────────────────────────────────────────────────┐
    │  DOWNLOAD_STORAGE_DIR=/srv/files \                                 │
    │  DOWNLOAD_RATE=2097152 \                                           │
    │  DOWNLOAD_THROTTLE_SCOPE=global \                                  │
    │  python -m downloadserver                                          │
    └────────────────────────────────────────────────────────────────────┘

Command line flags (see __main__.py) override the environment.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from .throttling import THROTTLE_SCOPES


ONE_MEBIBYTE = 1024 * 1024


def _env_rate(value: Optional[str], default: Optional[int]) -> Optional[int]:
    """DOWNLOAD_RATE: a byte count, or 0/"off"/"none" for no limit."""
    if value is None:
        return default
    if value.strip().lower() in ("", "0", "off", "none", "unlimited"):
        return None
    return int(value)


@dataclass
class ServerConfig:
    """
    Configuration for the download server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK      host, port, backlog, buffer_size, timeout
    HTTP         keep_alive, keep_alive_timeout, max_request_size
    THREADING    min_workers, max_workers, queue_size
    DOWNLOADS    storage_dir, download_prefix, max_bytes_per_second,
                 throttle_scope, stream_chunk_size, hash_chunk_size
    LOGGING      log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only (development)
    - "0.0.0.0" - All network interfaces (production)
    """

    port: int = 8080
    """Port to listen on. 0 lets the OS pick a free port."""

    backlog: int = 128
    """Maximum number of queued connections."""

    buffer_size: int = 8192
    """Size of each recv() in bytes."""

    timeout: Optional[float] = 30.0
    """
    Socket timeout in seconds, for reading the first request and for
    each send while streaming. A client that stops reading for longer
    than this loses its download.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Allow several requests per TCP connection."""

    keep_alive_timeout: float = 5.0
    """Idle time after which a keep-alive connection is closed."""

    max_request_size: int = 64 * 1024
    """
    Maximum request size in bytes. Downloads are GET/HEAD with no body,
    so this only has to fit the headers.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads created at startup."""

    max_workers: int = 32
    """
    Upper bound on worker threads, which is also the number of
    downloads that can stream at the same time.
    """

    queue_size: int = 100
    """Connections that may wait for a worker before 503 is returned."""

    # ─────────────────────────────────────────────────────────────────────
    # DOWNLOADS
    # ─────────────────────────────────────────────────────────────────────

    storage_dir: Optional[str] = None
    """Directory whose files are served. Required to run the server."""

    download_prefix: str = "/download"
    """URL prefix of the download routes."""

    max_bytes_per_second: Optional[int] = ONE_MEBIBYTE
    """Body throttle rate in bytes per second. None disables throttling."""

    throttle_scope: str = "response"
    """
    'response' - every download gets its own rate budget
    'global'   - all downloads share one budget
    """

    stream_chunk_size: int = 64 * 1024
    """Bytes read from a file and sent per socket write."""

    hash_chunk_size: int = 64 * 1024
    """Bytes read per step while hashing a file for its ETag."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' (Apache-like) or 'json'."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "DownloadServer/1.0"
    """Value of the Server header."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        DOWNLOAD_HOST            Server host (default: 127.0.0.1)
        DOWNLOAD_PORT            Server port (default: 8080)
        DOWNLOAD_WORKERS         Max worker threads (default: 32)
        DOWNLOAD_TIMEOUT         Socket timeout in seconds (default: 30)
        DOWNLOAD_STORAGE_DIR     Directory to serve (default: None)
        DOWNLOAD_PREFIX          URL prefix (default: /download)
        DOWNLOAD_RATE            Bytes per second, 0 = off (default: 1 MiB)
        DOWNLOAD_THROTTLE_SCOPE  response | global (default: response)
        DOWNLOAD_LOG_LEVEL       Logging level (default: INFO)
        DOWNLOAD_LOG_FORMAT      text | json (default: text)

        =====================================================================
        """
        return cls(
            host=os.getenv("DOWNLOAD_HOST", "127.0.0.1"),
            port=int(os.getenv("DOWNLOAD_PORT", "8080")),
            max_workers=int(os.getenv("DOWNLOAD_WORKERS", "32")),
            timeout=float(os.getenv("DOWNLOAD_TIMEOUT", "30")),
            storage_dir=os.getenv("DOWNLOAD_STORAGE_DIR"),
            download_prefix=os.getenv("DOWNLOAD_PREFIX", "/download"),
            max_bytes_per_second=_env_rate(os.getenv("DOWNLOAD_RATE"), ONE_MEBIBYTE),
            throttle_scope=os.getenv("DOWNLOAD_THROTTLE_SCOPE", "response"),
            log_level=os.getenv("DOWNLOAD_LOG_LEVEL", "INFO"),
            log_format=os.getenv("DOWNLOAD_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values at startup (fail fast).

        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.max_bytes_per_second is not None and self.max_bytes_per_second <= 0:
            raise ValueError("max_bytes_per_second must be > 0 (use None to disable throttling)")

        if self.throttle_scope not in THROTTLE_SCOPES:
            raise ValueError(f"throttle_scope must be one of {', '.join(THROTTLE_SCOPES)}")

        if self.stream_chunk_size < 1 or self.hash_chunk_size < 1:
            raise ValueError("chunk sizes must be >= 1")

        if not self.download_prefix.startswith("/"):
            raise ValueError(f"download_prefix must start with '/': {self.download_prefix!r}")

        if self.log_format not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")

        if self.storage_dir is not None and not os.path.isdir(self.storage_dir):
            raise ValueError(f"storage_dir is not a directory: {self.storage_dir}")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Type-safe configuration with dataclass
# 2. Environment variable support (DOWNLOAD_*)
# 3. Validation at startup (fail-fast)
#
# PRODUCTION CHECKLIST:
# □ Point storage_dir at a read-only mount
# □ Size max_workers for the number of concurrent downloads expected
# □ Pick a rate and scope that fit the uplink
# □ Bind to 0.0.0.0 (not 127.0.0.1) for containers
# =============================================================================
