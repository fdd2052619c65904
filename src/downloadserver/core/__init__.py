"""
=============================================================================
CORE SERVER PACKAGE
=============================================================================

Low-level networking for the download server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SocketServer  ── accept() ──►  Connection  ── submit() ──► ThreadPool │
    │  (listening      one per        (read request,              (one     │
    │   socket)        client)         send head,                  worker  │
    │                                  stream body)                per     │
    │                                                              download)│
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",     # Main TCP server - accepts connections
    "Connection",       # Wrapper for client socket - handles I/O
    "ConnectionState",  # Enum for connection lifecycle states
    "ThreadPool",       # Manages worker threads for concurrency
]
