"""
=============================================================================
CORE NETWORKING LAYER
=============================================================================

Transport-level building blocks, independent of the Gemini protocol:

    SocketServer   → listening socket and accept loop
    Connection     → one client: TLS handshake, bounded read, write, close
    ThreadPool     → bounded set of workers that run connections

    ┌───────────────┐   Connection   ┌────────────┐   worker   ┌──────────┐
    │ SocketServer  │ ─────────────► │ ThreadPool │ ─────────► │ handler  │
    └───────────────┘                └────────────┘            └──────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",     # Accepts connections
    "Connection",       # Wrapper for client socket - handles I/O
    "ConnectionState",  # Enum for connection lifecycle states
    "ThreadPool",       # Manages worker threads for concurrency
]
