"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with the operations the receive loop
needs: receive a request, send a response, close.

=============================================================================
TWO WAYS TO RECEIVE A REQUEST
=============================================================================

TCP is a byte stream. One send() on the client does not mean one recv()
on the server:

    Client sends:  "POST /translate HTTP/1.1\r\n...\r\n\r\n{...}"

    Server might get:
        recv() → "POST /translate HTTP/1.1\r\nContent-Length: 62\r\n"
        recv() → "\r\n{\"text\": \"Hello\", ...}"

We support both answers to that problem:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SINGLE READ (single_read=True, default)                            │
    │  ─────────────────────────────────────────────────────────────────  │
    │  One recv(buffer_size) = one request. Whatever arrived is parsed.   │
    │  Matches the behavior clients of this service were written for,    │
    │  and mis-parses requests split across segments.                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │  BUFFERED (single_read=False)                                       │
    │  ─────────────────────────────────────────────────────────────────  │
    │  1. recv() until \r\n\r\n is in the buffer                          │
    │  2. read Content-Length from the header block                       │
    │  3. recv() until the whole body is in the buffer                    │
    │  4. cut one request off the front, keep leftovers for next time     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    OPEN ──► READING ──► PROCESSING ──► WRITING ──► (READING again)
                              │
                              ▼
                    AWAITING_TRANSLATION ──(engine done)──► WRITING
                              │
     any state ──────────────►┴──────► CLOSING ──► CLOSED

AWAITING_TRANSLATION is the parked state: no thread reads the socket
until the translation bridge resumes it. Between requests the socket is
not read by a worker either; the readiness monitor watches it and hands
it to one when the next bytes arrive.

=============================================================================
"""

import socket
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    OPEN = "open"                                # Accepted, nothing read yet
    READING = "reading"                          # Waiting for request bytes
    PROCESSING = "processing"                    # Request received, being dispatched
    AWAITING_TRANSLATION = "awaiting_translation"  # Parked on the translation bridge
    WRITING = "writing"                          # Sending a response
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short unique identifier, used in log lines.
        state: Current ConnectionState.
        requests_handled: Requests received on this connection.
        buffer_size: Maximum bytes per recv().
        idle_timeout: Seconds to wait for a request; None = forever.
        single_read: One recv() per request instead of buffering.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.OPEN
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 65536
    idle_timeout: Optional[float] = None
    single_read: bool = True
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.idle_timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def is_open(self) -> bool:
        """True until close() or cancel() starts."""
        return self.state not in (ConnectionState.CLOSING, ConnectionState.CLOSED)

    @property
    def idle_time(self) -> float:
        return time.time() - self.last_activity

    @property
    def has_buffered_data(self) -> bool:
        """Bytes of a pipelined request already read off the socket."""
        return bool(self._buffer)

    # =========================================================================
    # READING
    # =========================================================================

    def receive(self) -> Optional[bytes]:
        """
        Receive the next request using the configured strategy.

        Returns:
            Request bytes, or None if the peer closed the connection, the
            socket was cancelled, or the idle timeout expired.

        Raises:
            ValueError: In buffered mode, if the request exceeds
                max_request_size.
        """
        if not self.is_open:
            return None

        self.state = ConnectionState.READING
        try:
            if self.single_read:
                data = self.receive_once()
            else:
                data = self.read_request()
        except socket.timeout:
            logger.debug(f"[{self.id}] Idle timeout after {self.idle_timeout}s")
            return None

        if data is not None:
            self.requests_handled += 1
            if self.is_open:
                self.state = ConnectionState.PROCESSING
        return data

    def receive_once(self) -> Optional[bytes]:
        """
        One receive operation: whatever the kernel has, up to buffer_size.

        Bytes left over from a previous buffered read are returned first.
        """
        if self._buffer:
            data, self._buffer = self._buffer, b""
            return data

        chunk = self._recv()
        return chunk or None

    def read_request(self) -> Optional[bytes]:
        """
        Read exactly one complete request: headers plus Content-Length body.

        Extra bytes (a pipelined next request) stay in the buffer.
        """
        # STEP 1: headers
        while b"\r\n\r\n" not in self._buffer:
            chunk = self._recv()
            if not chunk:
                if self._buffer:
                    # Peer half-closed after a partial request; hand over
                    # what we have and let the parser reject it.
                    data, self._buffer = self._buffer, b""
                    return data
                return None
            self._buffer += chunk
            self._check_size()

        header_end = self._buffer.find(b"\r\n\r\n")
        body_start = header_end + 4
        content_length = self._parse_content_length(self._buffer[:header_end])

        # STEP 2: body
        while len(self._buffer) - body_start < content_length:
            chunk = self._recv()
            if not chunk:
                break  # Connection closed mid-body
            self._buffer += chunk
            self._check_size()

        # STEP 3: cut one request, keep leftovers
        request_end = body_start + content_length
        request_data = self._buffer[:request_end]
        self._buffer = self._buffer[request_end:]
        return request_data

    def _recv(self) -> bytes:
        """
        socket.recv() that reports a dead socket as b"".

        Timeouts propagate so receive() can tell idle from closed.
        """
        try:
            data = self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise
        except OSError:
            # Reset by peer, or cancelled from another thread
            return b""
        self.last_activity = time.time()
        return data

    def _check_size(self):
        if len(self._buffer) > self.max_request_size:
            raise ValueError(f"Request too large: {len(self._buffer)} bytes")

    def _parse_content_length(self, headers: bytes) -> int:
        """Content-Length from a raw header block, 0 if missing or invalid."""
        header_str = headers.decode("utf-8", errors="replace").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send a full response with sendall().

        Returns:
            True if sent, False if the connection is gone.
        """
        if not self.is_open:
            return False

        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        self.last_activity = time.time()
        return True

    def park(self):
        """Mark the connection as waiting on a translation."""
        if self.is_open:
            self.state = ConnectionState.AWAITING_TRANSLATION

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close gracefully: FIN, drain what the client still sends, release.

        Used when the receive loop ends normally.
        """
        if not self.is_open:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def cancel(self):
        """
        Close immediately, from any thread.

        shutdown(SHUT_RDWR) wakes up a worker blocked in recv() on this
        socket; that worker then sees b"" and ends its receive loop.
        """
        if not self.is_open:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection cancelled")
