"""
pytest configuration and fixtures.
"""

import json
import queue
import socket
import threading
import time
from typing import Callable, Dict, Generator, List, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from translation_server import ServerConfig, ServerState, TranslationServer
from translation_server.translation import TranslationCapability, TranslationError


TRANSLATE_BODY = b'{"text": "Hello, World!", "source_language": "en", "target_language": "zh-Hans"}'


def build_request(method: str, path: str, body: Optional[bytes] = None, host: str = "localhost:5308") -> bytes:
    """Raw HTTP/1.1 request bytes, Content-Length set when there is a body."""
    head = f"{method} {path} HTTP/1.1\r\nHost: {host}\r\n"
    if body is None:
        return (head + "\r\n").encode()
    head += "Content-Type: application/json\r\n"
    head += f"Content-Length: {len(body)}\r\n\r\n"
    return head.encode() + body


def split_response(data: bytes) -> Tuple[int, List[Tuple[str, str]], bytes]:
    """(status code, ordered headers, body) of one raw response."""
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("utf-8").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = []
    for line in lines[1:]:
        name, value = line.split(": ", 1)
        headers.append((name, value))
    return status, headers, body


# =============================================================================
# RAW REQUESTS
# =============================================================================

@pytest.fixture
def sample_translate_request() -> bytes:
    """POST /translate with a valid JSON body."""
    return build_request("POST", "/translate", TRANSLATE_BODY)


@pytest.fixture
def sample_get_request() -> bytes:
    """GET for a path the server does not serve."""
    return (
        b"GET /foo HTTP/1.1\r\n"
        b"Host: localhost:5308\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


# =============================================================================
# FAKES
# =============================================================================

class FakeConnection:
    """Stands in for core.Connection in unit tests; records what is sent."""

    _ids = iter(range(1, 1_000_000))

    def __init__(self, accept: bool = True):
        self.id = f"fake{next(self._ids):04d}"
        self.sent: List[bytes] = []
        self.parked = False
        self.accept = accept
        self.is_open = True

    def send_response(self, data: bytes) -> bool:
        if not self.accept:
            return False
        self.sent.append(data)
        return True

    def park(self):
        self.parked = True

    def responses(self) -> List[Tuple[int, List[Tuple[str, str]], bytes]]:
        return [split_response(data) for data in self.sent]

    def last_json(self) -> Tuple[int, dict]:
        status, _, body = split_response(self.sent[-1])
        return status, json.loads(body.decode("utf-8")) if body else {}


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def make_fake_conn() -> Callable[..., FakeConnection]:
    return FakeConnection


class GatedCapability(TranslationCapability):
    """
    A capability whose calls block until the test releases them.

        capability.wait_for_calls(1)
        capability.release("你好")          # next call returns this
        capability.release(TranslationError("boom"))   # next call raises
    """

    name = "gated"

    def __init__(self, timeout: float = 10.0):
        self.calls: List[Tuple[str, str, str]] = []
        self._results: "queue.Queue" = queue.Queue()
        self._lock = threading.Lock()
        self.timeout = timeout

    def translate(self, text: str, source_language: str, target_language: str) -> str:
        with self._lock:
            self.calls.append((text, source_language, target_language))
        try:
            result = self._results.get(timeout=self.timeout)
        except queue.Empty:
            raise TranslationError("test never released this call")
        if isinstance(result, Exception):
            raise result
        return result

    def release(self, result):
        self._results.put(result)

    def wait_for_calls(self, count: int, timeout: float = 5.0) -> bool:
        deadline = time.time() + timeout
        while time.time() < deadline:
            with self._lock:
                if len(self.calls) >= count:
                    return True
            time.sleep(0.01)
        return False


@pytest.fixture
def gated_capability() -> GatedCapability:
    capability = GatedCapability()
    yield capability
    # Unblock anything still waiting so the engine thread can exit
    for _ in range(8):
        capability.release(TranslationError("test finished"))


# =============================================================================
# LIVE SERVER
# =============================================================================

@pytest.fixture
def make_server() -> Generator[Callable[..., TranslationServer], None, None]:
    """
    Factory for running servers on ephemeral ports, stopped after the test.

        server = make_server(capability=..., admission="queue")
    """
    servers: List[TranslationServer] = []

    def factory(capability: Optional[TranslationCapability] = None, start: bool = True, **overrides) -> TranslationServer:
        options: Dict = dict(
            host="127.0.0.1",
            port=0,
            min_workers=2,
            max_workers=16,
            accept_timeout=0.1,
            log_level="WARNING",
        )
        options.update(overrides)
        server = TranslationServer(ServerConfig(**options), capability=capability)
        servers.append(server)
        if start:
            assert server.start() is ServerState.RUNNING, server.error_message
        return server

    yield factory

    for server in servers:
        server.stop()


class RawClient:
    """Tiny HTTP client on a plain socket, so tests control every byte."""

    def __init__(self, port: int, timeout: float = 5.0):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=timeout)
        self._buffer = b""

    def send(self, data: bytes):
        self.sock.sendall(data)

    def request(self, method: str, path: str, body: Optional[bytes] = None):
        self.send(build_request(method, path, body))

    def read_response(self, timeout: float = 5.0) -> Tuple[int, List[Tuple[str, str]], bytes]:
        """Read exactly one response, using its Content-Length."""
        self.sock.settimeout(timeout)
        while b"\r\n\r\n" not in self._buffer:
            chunk = self.sock.recv(65536)
            if not chunk:
                raise ConnectionError("server closed the connection")
            self._buffer += chunk

        head, _, rest = self._buffer.partition(b"\r\n\r\n")
        status, headers, _ = split_response(head + b"\r\n\r\n")
        length = int(dict(headers)["Content-Length"])
        while len(rest) < length:
            chunk = self.sock.recv(65536)
            if not chunk:
                raise ConnectionError("server closed the connection mid-body")
            rest += chunk

        body, self._buffer = rest[:length], rest[length:]
        return status, headers, body

    def read_json(self, timeout: float = 5.0) -> Tuple[int, dict]:
        status, _, body = self.read_response(timeout)
        return status, json.loads(body.decode("utf-8"))

    def expect_silence(self, timeout: float = 0.5) -> bool:
        """True if nothing arrives within ``timeout`` seconds."""
        self.sock.settimeout(timeout)
        try:
            self.sock.recv(65536)
        except socket.timeout:
            return True
        return False

    def is_closed_by_server(self, timeout: float = 2.0) -> bool:
        self.sock.settimeout(timeout)
        try:
            return self.sock.recv(65536) == b""
        except ConnectionResetError:
            return True
        except socket.timeout:
            return False

    def close(self):
        self.sock.close()


@pytest.fixture
def connect() -> Generator[Callable[[int], RawClient], None, None]:
    """Open RawClients to a port; all are closed after the test."""
    clients: List[RawClient] = []

    def factory(port: int) -> RawClient:
        client = RawClient(port)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout passes."""
    def wait(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()
    return wait


@pytest.fixture
def make_request() -> Callable[..., bytes]:
    """build_request as a fixture: make_request("POST", "/translate", body)."""
    return build_request
