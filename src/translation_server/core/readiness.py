"""
=============================================================================
READINESS MONITOR
=============================================================================

Keeps idle keep-alive connections off the worker pool.

A connection that is waiting for its next request is "watched": its
socket sits in a selector on one monitor thread, and no worker is tied
up. Only when bytes (or EOF) arrive is the connection handed to the
pool, so a worker never waits in recv() on a silent client.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   watch(conn) ──► [ pending ] ──wake──► selector.select()           │
    │                                              │                       │
    │                         readable ◄───────────┤                       │
    │                            │                 └──► idle too long      │
    │                            ▼                          │              │
    │                  unregister, on_ready(conn)      unregister,         │
    │                  (submit receive task)           on_idle(conn)       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A connection is watched for one readiness event at a time. After the
worker has dispatched what it read, the connection is watched again
(or, when parked on a translation, once the answer is written).

Other threads never touch the selector: watch() queues the connection
and writes a byte to a wake-up socket pair so select() returns and the
monitor thread registers it itself.

=============================================================================
"""

import logging
import selectors
import socket
import threading
from typing import Callable, List, Optional

from .connection import Connection


logger = logging.getLogger(__name__)


ConnectionCallback = Callable[[Connection], object]


class ReadinessMonitor:
    """
    Selector thread that hands readable connections to a callback.

    Usage:
        monitor = ReadinessMonitor(on_ready=submit_to_pool, on_idle=drop)
        monitor.start()
        monitor.watch(conn)
        ...
        monitor.stop()

    Args:
        on_ready: Called on the monitor thread when a watched connection
            becomes readable. Must not block.
        on_idle: Called when a watched connection has been silent for
            longer than its idle_timeout. Default: cancel it.
        poll_interval: Longest select() wait; bounds idle-sweep latency.
    """

    def __init__(
        self,
        on_ready: ConnectionCallback,
        on_idle: Optional[ConnectionCallback] = None,
        poll_interval: float = 0.25,
    ):
        self.on_ready = on_ready
        self.on_idle = on_idle or (lambda conn: conn.cancel())
        self.poll_interval = poll_interval

        self._lock = threading.Lock()  # Protects _pending and _running
        self._pending: List[Connection] = []
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._selector: Optional[selectors.BaseSelector] = None
        self._wake_r: Optional[socket.socket] = None
        self._wake_w: Optional[socket.socket] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def watching(self) -> int:
        """Connections waiting for input (registered or about to be)."""
        with self._lock:
            pending = len(self._pending)
        selector = self._selector
        if selector is None:
            return pending
        try:
            registered = sum(1 for key in selector.get_map().values() if key.data is not None)
        except (RuntimeError, ValueError, AttributeError):
            registered = 0  # Map changed under us, or selector closed
        return pending + registered

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self):
        """Create the selector and start the monitor thread. Idempotent."""
        with self._lock:
            if self._running:
                return
            self._selector = selectors.DefaultSelector()
            self._wake_r, self._wake_w = socket.socketpair()
            self._wake_r.setblocking(False)
            self._wake_w.setblocking(False)
            self._selector.register(self._wake_r, selectors.EVENT_READ, data=None)
            self._running = True

        self._thread = threading.Thread(
            target=self._run, name="ReadinessMonitor", daemon=True
        )
        self._thread.start()
        logger.debug("Readiness monitor started")

    def stop(self, timeout: float = 2.0):
        """
        Stop the monitor thread. Watched connections are forgotten, not
        closed; the connection registry closes them.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._pending.clear()

        self._wake()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"Readiness monitor did not stop within {timeout}s")
        self._thread = None
        logger.debug("Readiness monitor stopped")

    # =========================================================================
    # WATCHING
    # =========================================================================

    def watch(self, conn: Connection) -> bool:
        """
        Wait for the next request on ``conn`` without holding a worker.

        Returns:
            False if the monitor is not running.
        """
        with self._lock:
            if not self._running:
                return False
            self._pending.append(conn)
        self._wake()
        return True

    def _wake(self):
        try:
            self._wake_w.send(b"\0")
        except (OSError, AttributeError):
            pass  # Wake byte already queued, or monitor shut down

    # =========================================================================
    # MONITOR THREAD
    # =========================================================================

    def _run(self):
        selector = self._selector
        try:
            while self._running:
                self._purge_closed(selector)
                self._register_pending(selector)

                try:
                    events = selector.select(timeout=self.poll_interval)
                except OSError as e:
                    # A watched socket was closed from another thread
                    logger.debug(f"select() failed ({e}), purging closed sockets")
                    continue

                for key, mask in events:
                    if key.data is None:
                        self._drain_wakeups()
                        continue
                    self._release(selector, key.data, self.on_ready)

                self._sweep_idle(selector)
        finally:
            selector.close()
            for sock in (self._wake_r, self._wake_w):
                try:
                    sock.close()
                except OSError:
                    pass
            self._selector = None

    def _register_pending(self, selector: selectors.BaseSelector):
        with self._lock:
            pending, self._pending = self._pending, []

        for conn in pending:
            if not conn.is_open:
                continue
            try:
                selector.register(conn.socket, selectors.EVENT_READ, data=conn)
            except (KeyError, ValueError, OSError) as e:
                logger.warning(f"[{conn.id}] Cannot watch connection: {e}")
                conn.cancel()

    def _purge_closed(self, selector: selectors.BaseSelector):
        """Drop registrations of connections closed by another thread."""
        for key in list(selector.get_map().values()):
            conn = key.data
            if conn is not None and not conn.is_open:
                self._unregister(selector, conn)

    def _sweep_idle(self, selector: selectors.BaseSelector):
        for key in list(selector.get_map().values()):
            conn = key.data
            if conn is None or conn.idle_timeout is None:
                continue
            if conn.idle_time >= conn.idle_timeout:
                logger.debug(f"[{conn.id}] Idle for {conn.idle_time:.1f}s")
                self._release(selector, conn, self.on_idle)

    def _release(self, selector: selectors.BaseSelector, conn: Connection, callback: ConnectionCallback):
        self._unregister(selector, conn)
        try:
            callback(conn)
        except Exception as e:
            logger.exception(f"[{conn.id}] Readiness callback failed: {e}")
            conn.cancel()

    @staticmethod
    def _unregister(selector: selectors.BaseSelector, conn: Connection):
        try:
            selector.unregister(conn.socket)
        except (KeyError, ValueError):
            pass

    def _drain_wakeups(self):
        try:
            while self._wake_r.recv(1024):
                pass
        except OSError:
            pass
