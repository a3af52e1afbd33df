"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing underneath the translation endpoint:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SocketServer       bind (explicit or ephemeral port), accept loop  │
    │  Connection         one client socket: receive, send, close, cancel │
    │  ConnectionRegistry open connections + live count                   │
    │  ServerStats        shared counter block behind one lock            │
    │  ReadinessMonitor   selector thread; hands readable sockets to pool │
    │  ThreadPool         workers that read and dispatch requests         │
    └─────────────────────────────────────────────────────────────────────┘

Nothing in here knows about HTTP or translation.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .readiness import ReadinessMonitor
from .registry import ConnectionRegistry
from .stats import ServerStats
from .thread_pool import ThreadPool

# from translation_server.core import *
__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ConnectionRegistry",
    "ReadinessMonitor",
    "ServerStats",
    "ThreadPool",
]
