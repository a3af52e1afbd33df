"""
=============================================================================
TRANSLATION SERVER
=============================================================================

Wires the pieces together and owns the server lifecycle.

=============================================================================
REQUEST FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │  1. SocketServer accepts ──► Connection                             │
    │  2. ConnectionRegistry.register(conn)                               │
    │  3. ReadinessMonitor watches conn; once bytes arrive the            │
    │     ThreadPool runs _serve_connection(conn):                        │
    │         receive() ──► Dispatcher.dispatch()                         │
    │              │              │                                        │
    │              │              ├── error/404 answered, back to monitor  │
    │              │              └── POST /translate: bridge.submit()     │
    │              │                  loop RETURNS (connection parked)     │
    │              │                                                       │
    │  4. EngineRunner (own thread) sees the job on the JobChannel,        │
    │     runs the capability, calls bridge.complete(job_id, outcome)     │
    │  5. bridge writes 200/500 and calls _resume(conn)                   │
    │  6. _resume hands conn back to the ReadinessMonitor                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

    STOPPED ──start()──► STARTING ──bind ok──► RUNNING(port) ──stop()──► STOPPED
                             │
                             └──bind error──► FAILED(reason)

start() binds synchronously and returns the resulting state; it never
raises for a port problem and never retries. stop() closes every open
connection, discards pending translation work without answering it and
resets the counters.

=============================================================================
"""

import errno
import logging
import signal
import threading
from enum import Enum
from typing import Any, Dict, Optional

from .config import ServerConfig
from .core.connection import Connection
from .core.readiness import ReadinessMonitor
from .core.registry import ConnectionRegistry
from .core.socket_server import SocketServer
from .core.stats import ServerStats
from .core.thread_pool import ThreadPool
from .http.dispatcher import Dispatcher
from .http.response import ResponseWriter
from .translation.bridge import AdmissionPolicy, TranslationBridge
from .translation.channel import JobChannel
from .translation.engines import TranslationCapability, create_capability
from .translation.runner import EngineRunner


logger = logging.getLogger(__name__)


class ServerState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


def setup_logging(level: str = "INFO"):
    """Configure the root logger the way the CLI runs the server."""
    numeric = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("translation_server").setLevel(numeric)


def describe_bind_error(host: str, port: int, error: BaseException) -> str:
    """Human-readable reason for a failed bind."""
    code = getattr(error, "errno", None)
    if code == errno.EADDRINUSE:
        return f"port {port} is already in use"
    if code == errno.EACCES:
        return f"permission denied binding {host}:{port}"
    if code == errno.EADDRNOTAVAIL:
        return f"address {host} is not available"
    return f"cannot bind {host}:{port}: {error}"


class TranslationServer:
    """
    HTTP front end for a single-session translation engine.

    Usage:
        server = TranslationServer(ServerConfig(port=0))
        if server.start() is ServerState.RUNNING:
            print(server.port)
        ...
        server.stop()

    Args:
        config: Server configuration; validated here.
        capability: Translation engine; built from config.engine if None.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        capability: Optional[TranslationCapability] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        self.stats = ServerStats()
        self.registry = ConnectionRegistry(self.stats)
        self.writer = ResponseWriter()
        self.channel = JobChannel()
        self.capability = capability or create_capability(self.config)

        self.bridge = TranslationBridge(
            writer=self.writer,
            resume=self._resume,
            stats=self.stats,
            channel=self.channel,
            policy=AdmissionPolicy(self.config.admission),
            max_queued_jobs=self.config.max_queued_jobs,
        )
        self.dispatcher = Dispatcher(self.bridge, writer=self.writer, stats=self.stats)

        self._socket_server: Optional[SocketServer] = None
        self._thread_pool: Optional[ThreadPool] = None
        self._monitor: Optional[ReadinessMonitor] = None
        self._runner: Optional[EngineRunner] = None

        self._lock = threading.Lock()  # Serializes start() and stop()
        self._state = ServerState.STOPPED
        self._port = 0
        self._error_message: Optional[str] = None
        self._stopped = threading.Event()
        self._stopped.set()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def port(self) -> int:
        """The bound port while RUNNING, otherwise 0."""
        return self._port

    @property
    def error_message(self) -> Optional[str]:
        """Why the last start() failed, if it did."""
        return self._error_message

    @property
    def is_running(self) -> bool:
        return self._state is ServerState.RUNNING

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, port: Optional[int] = None) -> ServerState:
        """
        Bind and start serving.

        Args:
            port: Port to bind; 0 = any free port; None = config.port.

        Returns:
            ServerState.RUNNING (see ``port``) or ServerState.FAILED (see
            ``error_message``). Already running: returns RUNNING unchanged.
        """
        with self._lock:
            if self._state is ServerState.RUNNING:
                return self._state

            requested = self.config.port if port is None else port
            self._state = ServerState.STARTING
            self._error_message = None

            if isinstance(requested, bool) or not isinstance(requested, int) or not 0 <= requested <= 65535:
                return self._fail(f"invalid port {requested!r}: must be 0-65535")

            socket_server = SocketServer(
                backlog=self.config.backlog,
                accept_timeout=self.config.accept_timeout,
                connection_factory=self._make_connection,
            )
            try:
                actual_port = socket_server.bind(self.config.host, requested)
            except (OSError, OverflowError) as e:
                return self._fail(describe_bind_error(self.config.host, requested, e))

            self._thread_pool = ThreadPool(
                min_workers=self.config.min_workers,
                max_workers=self.config.max_workers,
            )
            self._thread_pool.start()

            self._monitor = ReadinessMonitor(
                on_ready=self._dispatch_ready,
                on_idle=self._expire_idle,
            )
            self._monitor.start()

            self.channel.reopen()
            self._runner = EngineRunner(self.channel, self.capability, self.bridge.complete)
            self._runner.start()

            self._socket_server = socket_server
            self._port = actual_port
            self._state = ServerState.RUNNING
            self._stopped.clear()
            socket_server.serve_in_background(self._handle_connection)

        logger.info(
            f"Translation server running on {self.config.host}:{actual_port} "
            f"(engine={self.capability.name}, admission={self.bridge.policy.value})"
        )
        return ServerState.RUNNING

    def _fail(self, reason: str) -> ServerState:
        logger.error(f"Server failed to start: {reason}")
        self._state = ServerState.FAILED
        self._error_message = reason
        self._port = 0
        return self._state

    def stop(self):
        """
        Stop serving. Idempotent.

            1. Close the listener (no new connections)
            2. Stop watching idle connections
            3. Cancel every open connection, parked ones included
            4. Stop the engine runner, release the engine, stop the workers
            5. Discard pending/queued jobs without answering them
            6. Reset counters
        """
        with self._lock:
            was_running = self._state is ServerState.RUNNING
            if was_running:
                logger.info("Shutting down translation server...")

            if self._socket_server is not None:
                self._socket_server.shutdown()
                self._socket_server = None

            if self._monitor is not None:
                self._monitor.stop()
                self._monitor = None

            self.registry.close_all()

            if self._runner is not None:
                self._runner.stop()
                self._runner = None
                self.capability.close()

            if self._thread_pool is not None:
                self._thread_pool.shutdown()
                self._thread_pool = None

            self.bridge.reset()
            self.stats.reset()

            self._state = ServerState.STOPPED
            self._port = 0
            self._stopped.set()

        if was_running:
            logger.info("Translation server stopped")

    def serve_forever(self, port: Optional[int] = None) -> ServerState:
        """
        Start (if needed) and block until stop() or SIGINT/SIGTERM.

        Signal handlers can only be installed from the main thread; from
        any other thread this just blocks until stop().

        Returns:
            The state start() produced, so callers can tell a failed bind.
        """
        state = self.start(port)
        if state is not ServerState.RUNNING:
            return state

        previous = {}
        if threading.current_thread() is threading.main_thread():
            for sig in (signal.SIGINT, signal.SIGTERM):
                previous[sig] = signal.signal(sig, self._signal_handler)

        try:
            # Short waits keep the main thread responsive to signals
            while not self._stopped.wait(0.5):
                pass
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            self.stop()
        return state

    def _signal_handler(self, signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
        # stop() joins threads; do it off the signal frame
        threading.Thread(target=self.stop, name="Shutdown", daemon=True).start()

    def status(self) -> Dict[str, Any]:
        """Snapshot for a status display."""
        pending = self.bridge.pending
        return {
            "state": self._state.value,
            "host": self.config.host,
            "port": self._port,
            "error": self._error_message,
            "engine": self.capability.name,
            "admission": self.bridge.policy.value,
            "pending_job": pending.job_id if pending else None,
            "queued_jobs": len(self.bridge.queued),
            **self.stats.snapshot(),
        }

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _make_connection(self, sock, address) -> Connection:
        return Connection(
            socket=sock,
            address=address,
            buffer_size=self.config.buffer_size,
            idle_timeout=self.config.idle_timeout,
            single_read=self.config.single_read,
        )

    def _handle_connection(self, conn: Connection):
        """Called by the accept thread for every new connection."""
        self.registry.register(conn)
        self._await_request(conn)

    def _await_request(self, conn: Connection):
        """
        Wait for the next request on ``conn`` without holding a worker.

        Leftover pipelined bytes are served right away; otherwise the
        readiness monitor watches the socket.
        """
        if conn.has_buffered_data:
            self._dispatch_ready(conn)
            return

        monitor = self._monitor
        if monitor is None or not monitor.watch(conn):
            logger.debug(f"[{conn.id}] Server stopping, closing connection")
            self._teardown(conn, graceful=False)

    def _resume(self, conn: Connection):
        """Called by the bridge once a parked connection's answer is written."""
        self._await_request(conn)

    def _dispatch_ready(self, conn: Connection):
        """Hand a connection with input waiting to a worker."""
        pool = self._thread_pool
        if pool is None or not pool.submit(self._serve_connection, args=(conn,)):
            logger.warning(f"[{conn.id}] Thread pool full, closing connection")
            self._teardown(conn, graceful=False)

    def _expire_idle(self, conn: Connection):
        logger.debug(f"[{conn.id}] Idle timeout after {conn.idle_timeout}s, closing")
        self._teardown(conn, graceful=False)

    def _serve_connection(self, conn: Connection):
        """
        Read and dispatch the requests waiting on one connection (runs on
        a worker).

        Returns the connection to the readiness monitor once nothing more
        is buffered, or returns without touching it when a request parked
        it on the translation bridge.
        """
        try:
            while conn.is_open:
                try:
                    raw = conn.receive()
                except ValueError as e:
                    logger.warning(f"[{conn.id}] {e}, closing connection")
                    break

                if raw is None:
                    break

                if not self.dispatcher.dispatch(raw, conn):
                    return

                if not conn.has_buffered_data:
                    self._await_request(conn)
                    return
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")

        self._teardown(conn)

    def _teardown(self, conn: Connection, graceful: bool = True):
        self.registry.unregister(conn)
        if graceful:
            conn.close()
        else:
            conn.cancel()
