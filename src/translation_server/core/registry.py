"""
=============================================================================
CONNECTION REGISTRY
=============================================================================

Tracks every open client connection.

    accept thread ──register()──►  ┌──────────────────────┐
                                   │  id → Connection     │ ──► count()
    worker thread ─unregister()──► │  (under stats.lock)  │ ──► close_all()
                                   └──────────────────────┘

Membership changes and the mirrored ``connected_clients`` counter are
updated inside the same critical section, so a reader of ServerStats
never sees a count that disagrees with the registry.

=============================================================================
"""

import logging
from typing import Dict, List, Optional

from .connection import Connection
from .stats import ServerStats


logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Thread-safe set of open connections with a live count.

    Usage:
        registry = ConnectionRegistry(stats)
        registry.register(conn)      # accept path
        registry.unregister(conn)    # teardown path, idempotent
        registry.count()
        registry.close_all()         # server stop
    """

    def __init__(self, stats: Optional[ServerStats] = None):
        self._stats = stats or ServerStats()
        self._connections: Dict[str, Connection] = {}

    def register(self, conn: Connection):
        with self._stats.lock:
            self._connections[conn.id] = conn
            self._stats.connected_clients = len(self._connections)
        logger.debug(f"[{conn.id}] Registered connection from {conn.client_ip}:{conn.client_port}")

    def unregister(self, conn: Connection) -> bool:
        """
        Remove a connection.

        Returns:
            True if it was registered, False if it was already gone
            (teardown and stop() may both try).
        """
        with self._stats.lock:
            removed = self._connections.pop(conn.id, None) is not None
            self._stats.connected_clients = len(self._connections)
        if removed:
            logger.debug(f"[{conn.id}] Unregistered connection")
        return removed

    def count(self) -> int:
        with self._stats.lock:
            return len(self._connections)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, conn: Connection) -> bool:
        with self._stats.lock:
            return conn.id in self._connections

    def connections(self) -> List[Connection]:
        """Snapshot of the registered connections."""
        with self._stats.lock:
            return list(self._connections.values())

    def close_all(self) -> int:
        """
        Cancel and drop every registered connection, in no particular order.

        Returns:
            How many connections were closed.
        """
        with self._stats.lock:
            victims = list(self._connections.values())
            self._connections.clear()
            self._stats.connected_clients = 0

        for conn in victims:
            conn.cancel()

        if victims:
            logger.info(f"Closed {len(victims)} open connection(s)")
        return len(victims)
