"""
=============================================================================
HTTP RESPONSE WRITER
=============================================================================

Every response this server produces has the same shape:

    HTTP/1.1 200 OK\r\n
    Content-Type: application/json\r\n
    Access-Control-Allow-Origin: *\r\n
    Access-Control-Allow-Methods: POST, GET, OPTIONS, HEAD\r\n
    Access-Control-Allow-Headers: *\r\n
    Content-Length: 31\r\n
    \r\n
    {"translated_text":"你好，\n世界！"}

The header set and its order never change. Content-Length is the byte
length of the UTF-8 encoded JSON body, which differs from the character
count as soon as the text is not ASCII.

=============================================================================
ENCODING FAILURES
=============================================================================

JSON serialization can fail even for a dict of strings: a lone surrogate
("\\ud800") survives json.dumps(ensure_ascii=False) but cannot be encoded
as UTF-8. The rules are:

    success payload fails  →  500 {"error": "cannot generate response"}
    error payload fails    →  nothing is sent (logged)

=============================================================================
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from .status_codes import HTTPStatus, reason_phrase


logger = logging.getLogger(__name__)


CORS_HEADERS: Tuple[Tuple[str, str], ...] = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "POST, GET, OPTIONS, HEAD"),
    ("Access-Control-Allow-Headers", "*"),
)

CANNOT_GENERATE_RESPONSE = "cannot generate response"


class ResponseEncodingError(Exception):
    """Raised when a payload cannot be serialized into a response body."""


def encode_json(payload: Any) -> bytes:
    """
    Serialize a payload as compact UTF-8 JSON.

    Raises:
        ResponseEncodingError: If the payload is not serializable or the
            result is not valid UTF-8.
    """
    try:
        text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
        return text.encode("utf-8")
    except (TypeError, ValueError) as e:
        # UnicodeEncodeError is a ValueError
        raise ResponseEncodingError(str(e)) from e


@dataclass
class HTTPResponse:
    """
    A response ready to be serialized onto a connection.

    Headers are not stored: they are derived from the fixed header set
    plus the body length when the response is serialized.
    """

    status: int = HTTPStatus.OK
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """
        Status line, e.g. "HTTP/1.1 404 Not Found".

        Codes outside the phrase table render as "Unknown".
        """
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}"

    @property
    def headers(self) -> List[Tuple[str, str]]:
        """Header list in wire order."""
        return [
            ("Content-Type", "application/json"),
            *CORS_HEADERS,
            ("Content-Length", str(len(self.body))),
        ]

    def to_bytes(self) -> bytes:
        """Serialize to the literal bytes written to the socket."""
        lines = [self.status_line]
        for name, value in self.headers:
            lines.append(f"{name}: {value}")
        lines.append("")
        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + self.body

    @classmethod
    def json(cls, status: int, payload: Any) -> "HTTPResponse":
        """
        Build a JSON response.

        Raises:
            ResponseEncodingError: If the payload cannot be encoded.
        """
        return cls(status=status, body=encode_json(payload))

    @classmethod
    def empty(cls, status: int) -> "HTTPResponse":
        """Build a response with no body (Content-Length: 0)."""
        return cls(status=status, body=b"")


# =============================================================================
# RESPONSE CONSTRUCTORS
# =============================================================================

def translation_response(translated_text: str) -> HTTPResponse:
    """
    200 {"translated_text": ...}, or the generic 500 if it cannot be encoded.
    """
    try:
        return HTTPResponse.json(HTTPStatus.OK, {"translated_text": translated_text})
    except ResponseEncodingError as e:
        logger.error(f"Cannot encode translation response: {e}")
        return HTTPResponse.json(
            HTTPStatus.INTERNAL_SERVER_ERROR, {"error": CANNOT_GENERATE_RESPONSE}
        )


def error_response(status: int, message: str) -> Optional[HTTPResponse]:
    """
    {"error": message} with the given status.

    Returns None when the message itself cannot be encoded; the caller
    then sends nothing.
    """
    try:
        return HTTPResponse.json(status, {"error": message})
    except ResponseEncodingError as e:
        logger.error(f"Cannot encode error response ({int(status)}), dropping it: {e}")
        return None


class ResponseWriter:
    """
    Serializes responses onto connections.

    All methods return True if bytes were handed to the socket, False if
    the response was dropped or the send failed. A failed send is not an
    error for the server: the next read on that connection sees the
    closed socket and tears it down.
    """

    def write(self, conn, response: Optional[HTTPResponse]) -> bool:
        if response is None:
            return False
        logger.debug(f"[{conn.id}] -> {response.status_line}")
        return conn.send_response(response.to_bytes())

    def send_translation(self, conn, translated_text: str) -> bool:
        return self.write(conn, translation_response(translated_text))

    def send_error(self, conn, status: int, message: str) -> bool:
        return self.write(conn, error_response(status, message))

    def send_empty(self, conn, status: int) -> bool:
        return self.write(conn, HTTPResponse.empty(status))
