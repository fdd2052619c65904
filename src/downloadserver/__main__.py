"""
=============================================================================
DOWNLOAD SERVER CLI ENTRY POINT
=============================================================================

    # Serve ./files on localhost:8080 at 1 MiB/s per download
    python -m downloadserver --storage ./files

    # All interfaces, 4 MiB/s shared across every download
    python -m downloadserver --storage ./files --host 0.0.0.0 \\
        --rate 4194304 --throttle-scope global

    # No throttling
    python -m downloadserver --storage ./files --no-throttle

Defaults come from the DOWNLOAD_* environment variables (see
config.py); flags override them.

=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .config import ServerConfig
from .server import create_app
from .storage import FileSystemStorage
from .throttling import THROTTLE_SCOPES

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="downloadserver",
        description="Serve files with ETag/Last-Modified validation and throttled downloads",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m downloadserver --storage ./files
  python -m downloadserver --storage ./files --port 3000
  python -m downloadserver --storage ./files --rate 2097152 --throttle-scope global
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", default=None,
                        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for containers)")
    parser.add_argument("--port", "-p", type=int, default=None,
                        help="Port to listen on (default: 8080)")
    parser.add_argument("--workers", "-w", type=int, default=None,
                        help="Maximum concurrent downloads (default: 32)")

    # ─────────────────────────────────────────────────────────────────────
    # DOWNLOAD ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--storage", "-s", default=None,
                        help="Directory of files to serve")
    parser.add_argument("--prefix", default=None,
                        help="URL prefix of the download routes (default: /download)")
    parser.add_argument("--rate", "-r", type=int, default=None,
                        help="Throttle rate in bytes per second (default: 1048576)")
    parser.add_argument("--no-throttle", action="store_true",
                        help="Disable throttling")
    parser.add_argument("--throttle-scope", choices=THROTTLE_SCOPES, default=None,
                        help="'response' = rate per download, 'global' = rate shared by all")

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--log-level", "-l",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], default=None,
                        help="Logging level (default: INFO)")
    parser.add_argument("--log-format", choices=["text", "json"], default=None,
                        help="Access log format (default: text)")
    parser.add_argument("--version", "-v", action="version",
                        version=f"downloadserver {__version__}")

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment defaults, overridden by whatever flags were given."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if args.storage is not None:
        config.storage_dir = args.storage
    if args.prefix is not None:
        config.download_prefix = args.prefix
    if args.rate is not None:
        config.max_bytes_per_second = args.rate
    if args.no_throttle:
        config.max_bytes_per_second = None
    if args.throttle_scope is not None:
        config.throttle_scope = args.throttle_scope
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    return config


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    config = config_from_args(args)

    if not config.storage_dir:
        parser.error("--storage (or DOWNLOAD_STORAGE_DIR) is required")

    try:
        config.validate()
    except ValueError as e:
        parser.error(str(e))

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    storage = FileSystemStorage(config.storage_dir, hash_chunk_size=config.hash_chunk_size)
    server = create_app(config, storage=storage)

    for file_id, relative_path in storage.files():
        logger.info(f"{config.download_prefix.rstrip('/')}/{file_id}  ->  {relative_path}")

    try:
        server.run()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
