"""
Shared counter block.

The accept thread, the worker threads and the engine thread all update
these values, and a status display reads them together, so they live
behind ONE lock rather than as independent atomics. The connection
registry takes the same lock when it changes membership so that
``connected_clients`` never disagrees with the registry size.
"""

import threading
from typing import Any, Dict


LAST_REQUEST_PREVIEW = 1000


class ServerStats:
    """
    Counters observed by the reporting layer.

    Attributes:
        request_count:     Requests whose request line parsed. Monotonic
                           until reset().
        connected_clients: Open connections (mirrors ConnectionRegistry).
        last_request:      First 1000 characters of the last request.
        last_response:     Last translation returned to a client.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.request_count = 0
        self.connected_clients = 0
        self.last_request = ""
        self.last_response = ""

    def record_request(self, raw_text: str) -> int:
        """Count a parsed request and remember its preview. Returns the new count."""
        with self.lock:
            self.request_count += 1
            self.last_request = raw_text[:LAST_REQUEST_PREVIEW]
            return self.request_count

    def record_response(self, translated_text: str):
        with self.lock:
            self.last_response = translated_text

    def set_connected(self, count: int):
        with self.lock:
            self.connected_clients = count

    def reset(self):
        """Zero every counter (server stop)."""
        with self.lock:
            self.request_count = 0
            self.connected_clients = 0
            self.last_request = ""
            self.last_response = ""

    def snapshot(self) -> Dict[str, Any]:
        """A consistent copy of all counters."""
        with self.lock:
            return {
                "request_count": self.request_count,
                "connected_clients": self.connected_clients,
                "last_request": self.last_request,
                "last_response": self.last_response,
            }
