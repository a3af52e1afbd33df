"""
=============================================================================
REQUEST DISPATCHER
=============================================================================

One call per received request:

    raw bytes
        │
        ▼
    RequestParser.parse() ──HTTPParseError──► 400 {"error": <parser message>}
        │
        ▼
    stats.record_request()
        │
        ├── HEAD (any path) ───────────────────► 404, empty body
        │
        ├── POST /translate
        │       body None ─────────────────────► 400 "no body"
        │       not UTF-8 ─────────────────────► 400 "invalid request body encoding"
        │       JSON syntax error ─────────────► 400 "JSON parse error: ..."
        │       missing / non-string fields ───► 400 "invalid JSON data"
        │       bridge full (QUEUE mode) ──────► 429 "translation engine busy"
        │       ok ────────────────────────────► bridge.submit(), connection parked
        │
        └── anything else ─────────────────────► 404 "unsupported endpoint or method"

Only the successful translate path leaves the response to someone else
(the bridge, once the engine finishes). Every other path answers
immediately and the connection keeps reading.

=============================================================================
"""

import json
import logging
from typing import Optional, Tuple

from ..core.connection import Connection
from ..core.stats import ServerStats
from ..translation.bridge import BridgeBusyError, TranslationBridge
from .request import HTTPParseError, ParsedRequest, RequestParser
from .response import ResponseWriter
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)


TRANSLATE_PATH = "/translate"
REQUIRED_FIELDS = ("text", "source_language", "target_language")


class InvalidBodyError(Exception):
    """The /translate body is not a usable translation request."""


def parse_translate_body(body: bytes) -> Tuple[str, str, str]:
    """
    Extract (text, source_language, target_language) from a request body.

    Raises:
        InvalidBodyError: With the client-facing message.
    """
    try:
        body_text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidBodyError("invalid request body encoding")

    try:
        data = json.loads(body_text)
    except json.JSONDecodeError as e:
        raise InvalidBodyError(f"JSON parse error: {e}")

    if not isinstance(data, dict):
        raise InvalidBodyError("invalid JSON data")

    values = [data.get(name) for name in REQUIRED_FIELDS]
    if not all(isinstance(v, str) for v in values):
        raise InvalidBodyError("invalid JSON data")

    text, source_language, target_language = values
    return text, source_language, target_language


class Dispatcher:
    """
    Routes received requests to the translation bridge or an error reply.

    Usage:
        dispatcher = Dispatcher(bridge, stats=stats)
        keep_reading = dispatcher.dispatch(raw_bytes, conn)
    """

    def __init__(
        self,
        bridge: TranslationBridge,
        writer: Optional[ResponseWriter] = None,
        stats: Optional[ServerStats] = None,
        parser: Optional[RequestParser] = None,
    ):
        self.bridge = bridge
        self.writer = writer or bridge.writer
        self.stats = stats or bridge.stats
        self.parser = parser or RequestParser()

    def dispatch(self, raw: bytes, conn: Connection) -> bool:
        """
        Handle one received request.

        Returns:
            True if the connection should keep reading, False if it was
            parked on a translation and must not be read from until the
            bridge resumes it.
        """
        try:
            request = self.parser.parse(raw)
        except HTTPParseError as e:
            logger.info(f"[{conn.id}] Unparseable request -> {e.status_code} ({e})")
            self.writer.send_error(conn, e.status_code, str(e))
            return True

        count = self.stats.record_request(request.raw)
        logger.debug(f"[{conn.id}] Request #{count}: {request.method} {request.path}")

        if request.method == "HEAD":
            self._log(conn, request, HTTPStatus.NOT_FOUND)
            self.writer.send_empty(conn, HTTPStatus.NOT_FOUND)
            return True

        if request.method == "POST" and request.path == TRANSLATE_PATH:
            return self._handle_translate(request, conn)

        self._reject(conn, request, HTTPStatus.NOT_FOUND, "unsupported endpoint or method")
        return True

    def _handle_translate(self, request: ParsedRequest, conn: Connection) -> bool:
        if request.body is None:
            self._reject(conn, request, HTTPStatus.BAD_REQUEST, "no body")
            return True

        try:
            text, source_language, target_language = parse_translate_body(request.body)
        except InvalidBodyError as e:
            self._reject(conn, request, HTTPStatus.BAD_REQUEST, str(e))
            return True

        try:
            job = self.bridge.submit(text, source_language, target_language, conn)
        except BridgeBusyError as e:
            logger.debug(f"[{conn.id}] Bridge busy: {e}")
            self._reject(conn, request, HTTPStatus.TOO_MANY_REQUESTS, "translation engine busy")
            return True

        logger.info(
            f"[{conn.id}] {request.method} {request.path} -> job {job.job_id} "
            f"({source_language} -> {target_language})"
        )
        return False

    def _reject(self, conn: Connection, request: ParsedRequest, status: HTTPStatus, message: str):
        self._log(conn, request, status, message)
        self.writer.send_error(conn, status, message)

    def _log(self, conn: Connection, request: ParsedRequest, status: HTTPStatus, detail: str = ""):
        suffix = f" ({detail})" if detail else ""
        logger.info(f"[{conn.id}] {request.method} {request.path} -> {int(status)}{suffix}")
