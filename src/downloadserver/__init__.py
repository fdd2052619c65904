"""
=============================================================================
DOWNLOADSERVER - Conditional, Throttled File Delivery over HTTP/1.1
=============================================================================

Serves stored files with the HTTP caching contract browsers and download
managers rely on, on top of a from-scratch socket server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /download/:id          → 301 /download/:id/:name  (or 304)    │
    │  GET /download/:id/*name    → 200 + throttled body     (or 304)    │
    │  HEAD (either)              → same headers, never a body           │
    │  unknown id                 → 404, empty body                      │
    └─────────────────────────────────────────────────────────────────────┘

    ETag            "<sha-512 of the contents>"
    Last-Modified   file mtime, whole seconds
    Throttle        1 MiB/s per download by default

=============================================================================
QUICK START
=============================================================================

    python -m downloadserver --storage ./files

or, embedded:

    from downloadserver import ServerConfig, create_app
    from downloadserver.storage import MemoryStorage

    storage = MemoryStorage()
    storage.add("42", "report.pdf", pdf_bytes)
    create_app(ServerConfig(port=8080), storage=storage).run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer, create_app
from .config import ServerConfig

__all__ = ["HTTPServer", "ServerConfig", "create_app", "__version__"]
