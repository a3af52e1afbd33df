"""
HTTP layer: request parsing, response serialization, status codes.

The Dispatcher lives in ``translation_server.http.dispatcher`` and is not
re-exported here, since it depends on the translation package, which in
turn imports from this one.
"""

from .request import HTTPParseError, ParsedRequest, RequestParser, parse_request
from .response import (
    CORS_HEADERS,
    HTTPResponse,
    ResponseEncodingError,
    ResponseWriter,
    error_response,
    translation_response,
)
from .status_codes import HTTPStatus, reason_phrase

# from translation_server.http import *
__all__ = [
    # Request parsing
    "HTTPParseError",
    "ParsedRequest",
    "RequestParser",
    "parse_request",

    # Response building
    "CORS_HEADERS",
    "HTTPResponse",
    "ResponseEncodingError",
    "ResponseWriter",
    "error_response",
    "translation_response",

    # Status codes
    "HTTPStatus",
    "reason_phrase",
]
