"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the bytes of ONE receive operation into a ParsedRequest.

=============================================================================
WHAT WE LOOK AT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │    POST /translate HTTP/1.1\r\n          ← request line             │
    │    ──┬─ ─────┬──── ────┬───                                          │
    │      │       │         └── token 3 (must exist, not checked)         │
    │    method   path                                                     │
    │                                                                      │
    │    Host: localhost:5308\r\n              ← headers (informational)   │
    │    Content-Type: application/json\r\n                               │
    │    \r\n                                  ← first blank line          │
    │                                                                      │
    │    {"text": "Hello", ...}                ← body, whitespace-trimmed  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The request line is split on single spaces; fewer than three tokens is a
parse error. Everything after the first \r\n\r\n, trimmed, is the body.
No \r\n\r\n at all means the body is ABSENT (None), which is different
from an empty body (b"").

=============================================================================
KNOWN LIMITATION: SINGLE-READ PARSING
=============================================================================

The parser trusts that the whole request (headers AND body) came in a
single receive operation. It never waits for more bytes. If a client's
request is split across TCP segments:

    recv() #1 → "POST /translate HTTP/1.1\r\nContent-Length: 60\r\n"
    recv() #2 → "\r\n{\"text\": ...}"

then #1 parses with body=None (→ 400 "no body") and #2 is parsed as a
new, malformed request. This is fine for small bodies from localhost
clients. Connection.read_request() (single_read=False) reassembles by
Content-Length before handing bytes to this parser.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Optional


class HTTPParseError(Exception):
    """
    Raised when the received bytes are not a usable HTTP request.

    Carries the HTTP status to answer with. Parse errors never close the
    connection; the receive loop answers and keeps reading.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ParsedRequest:
    """
    A parsed request. Built per receive, consumed immediately.

    Attributes:
        method:  Request method exactly as sent ("POST", "HEAD", ...).
        path:    Request target exactly as sent (query string included).
        body:    Trimmed body bytes, or None if no header/body boundary.
        headers: Header name (lowercase) → value.
        raw:     Decoded request text, used for the "last request" display.
    """

    method: str
    path: str
    body: Optional[bytes] = None
    headers: Dict[str, str] = field(default_factory=dict)
    raw: str = field(default="", repr=False)

    @property
    def has_body(self) -> bool:
        return self.body is not None

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw request bytes into ParsedRequest objects.

        1. Decode as UTF-8            → HTTPParseError("cannot parse request data")
        2. Split on \\r\\n              → HTTPParseError("invalid request") if empty
        3. Split request line on " "  → HTTPParseError("invalid request format")
        4. Parse header lines until the blank line (lenient)
        5. Body = text after first \\r\\n\\r\\n, stripped; None if absent
    """

    LINE_TERMINATOR = "\r\n"
    HEADER_TERMINATOR = "\r\n\r\n"

    def parse(self, data: bytes) -> ParsedRequest:
        """
        Parse one request.

        Args:
            data: Bytes from a single receive (or a buffered full request).

        Returns:
            ParsedRequest.

        Raises:
            HTTPParseError: If the bytes are not decodable or the request
                line is malformed.
        """
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            raise HTTPParseError("cannot parse request data")

        lines = text.split(self.LINE_TERMINATOR)
        request_line = lines[0]
        if not request_line.strip():
            raise HTTPParseError("invalid request")

        # "POST /translate HTTP/1.1" → ["POST", "/translate", "HTTP/1.1"]
        tokens = request_line.split(" ")
        if len(tokens) < 3:
            raise HTTPParseError("invalid request format")

        method, path = tokens[0], tokens[1]

        body: Optional[bytes] = None
        boundary = text.find(self.HEADER_TERMINATOR)
        if boundary != -1:
            header_lines = text[:boundary].split(self.LINE_TERMINATOR)[1:]
            body = text[boundary + len(self.HEADER_TERMINATOR):].strip().encode("utf-8")
        else:
            header_lines = lines[1:]

        return ParsedRequest(
            method=method,
            path=path,
            body=body,
            headers=self._parse_headers(header_lines),
            raw=text,
        )

    def _parse_headers(self, lines: list) -> Dict[str, str]:
        """
        Parse "Name: Value" lines. Malformed lines are skipped; repeated
        names are joined with ", ".
        """
        headers: Dict[str, str] = {}
        for line in lines:
            if not line or ":" not in line:
                continue
            name, value = line.split(":", 1)
            name = name.strip().lower()
            value = value.strip()
            if not name:
                continue
            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value
        return headers


def parse_request(data: bytes) -> ParsedRequest:
    """Convenience wrapper around RequestParser().parse()."""
    return RequestParser().parse(data)
