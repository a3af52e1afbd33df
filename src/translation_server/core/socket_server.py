"""
=============================================================================
LISTENER (LOW-LEVEL TCP SOCKET SERVER)
=============================================================================

Binds the listening socket and runs the accept loop.

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    1. socket()    Create a TCP socket
    2. bind()      Reserve host:port          ← may fail: port in use,
                                                 permission denied
    3. listen()    Start queueing connections
    4. accept()    One new socket per client  ← loops until shutdown()
    5. close()     Release the port

bind() and listen() happen in bind(), synchronously, so the caller learns
right away whether the server is up and which port it got. The accept
loop then runs on its own thread (serve_in_background()).

=============================================================================
EPHEMERAL PORTS
=============================================================================

    bind(("127.0.0.1", 0))        ← "any free port"
    getsockname() → ("127.0.0.1", 54123)

Port 0 is never the port we end up on: the kernel picks one from its
ephemeral range and getsockname() tells us which.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
    Lets a restarted server rebind while the old socket sits in
    TIME_WAIT. It does NOT let two live listeners share a port on Linux.

SO_REUSEPORT:
    Deliberately NOT set: it would let a second server bind a port that
    is already being listened on, and that must fail.

TCP_NODELAY on accepted sockets:
    Responses go out as soon as sendall() returns.

=============================================================================
"""

import socket
import logging
import threading
from typing import Callable, Optional, Tuple

from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP listener.

        bind(host, port)                  → actual port (raises OSError)
        serve_in_background(on_accept)    → accept thread
        shutdown()                        → close listener, join thread

    Each accepted socket is wrapped in a Connection and passed to the
    on_accept callback, which registers it and hands it to the readiness monitor.
    """

    def __init__(
        self,
        backlog: int = 128,
        accept_timeout: float = 0.5,
        connection_factory: Optional[Callable[[socket.socket, Tuple[str, int]], Connection]] = None,
    ):
        self.backlog = backlog
        self.accept_timeout = accept_timeout
        self._connection_factory = connection_factory or (
            lambda sock, addr: Connection(socket=sock, address=addr)
        )

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._address: Tuple[str, int] = ("", 0)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port), valid after bind()."""
        return self._address

    @property
    def port(self) -> int:
        return self._address[1]

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        # accept() wakes up periodically so shutdown() is noticed
        sock.settimeout(self.accept_timeout)
        return sock

    def bind(self, host: str, port: int) -> int:
        """
        Create, bind and listen.

        Args:
            host: Interface to bind.
            port: Port to bind, 0 for an ephemeral port.

        Returns:
            The port actually bound.

        Raises:
            OSError: If the socket cannot be bound (address in use,
                permission denied, bad address).
            OverflowError: If port is outside 0-65535.
        """
        sock = self._create_socket()
        try:
            sock.bind((host, port))
            sock.listen(self.backlog)
        except (OSError, OverflowError) as e:
            sock.close()
            logger.error(f"Failed to bind to {host}:{port}: {e}")
            raise

        self._socket = sock
        self._address = sock.getsockname()[:2]
        logger.info(f"Listening on {self._address[0]}:{self._address[1]}")
        return self._address[1]

    def serve_in_background(self, on_accept: Callable[[Connection], None]) -> threading.Thread:
        """Start the accept loop on a daemon thread."""
        if self._socket is None:
            raise RuntimeError("bind() must succeed before serving")

        self._running = True
        self._thread = threading.Thread(
            target=self._accept_loop,
            args=(on_accept,),
            name=f"Accept-{self.port}",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def _accept_loop(self, on_accept: Callable[[Connection], None]):
        """
        Accept until shutdown().

            while running:
                accept()              blocks ≤ accept_timeout
                Connection(...)       wrap client socket
                on_accept(conn)       register + watch for input
        """
        listener = self._socket
        while self._running and listener is not None:
            try:
                client_socket, client_address = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            try:
                client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                conn = self._connection_factory(client_socket, client_address)
            except OSError as e:
                logger.warning(f"Dropping connection from {client_address[0]}: {e}")
                client_socket.close()
                continue

            try:
                on_accept(conn)
            except Exception as e:
                logger.exception(f"[{conn.id}] Accept handler failed: {e}")
                conn.cancel()

        logger.debug("Accept loop stopped")

    def shutdown(self, timeout: Optional[float] = None):
        """
        Stop accepting and release the port. Idempotent.

        Args:
            timeout: How long to wait for the accept thread; defaults to
                a little more than one accept_timeout.
        """
        self._running = False

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout if timeout is not None else self.accept_timeout * 4)
        self._thread = None
        self._address = ("", 0)
