"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The translation endpoint only ever answers with a handful of codes:

    200 OK                      Translation succeeded
    400 Bad Request             Unparseable request or invalid JSON body
    404 Not Found               Any route other than POST /translate (and HEAD)
    405 Method Not Allowed      Kept in the phrase table for completeness
    429 Too Many Requests       Queue admission is full
    500 Internal Server Error   Engine failure or unencodable response

Any other code renders with the reason phrase "Unknown".

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes used by the server.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200
    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    TOO_MANY_REQUESTS = 429
    INTERNAL_SERVER_ERROR = 500

    @property
    def phrase(self) -> str:
        """Reason phrase used in the status line."""
        return reason_phrase(self)

    @property
    def is_error(self) -> bool:
        """Check if this is an error status code (4xx or 5xx)."""
        return self >= 400


# =============================================================================
# REASON PHRASES
# =============================================================================
#
# HTTP/1.1 200 OK
#          ─── ──
#           │   │
#           │   └── Reason phrase (from this dict)
#           └────── Status code
#
_STATUS_PHRASES = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    429: "Too Many Requests",
    500: "Internal Server Error",
}


def reason_phrase(status_code: int) -> str:
    """Look up the reason phrase for a status code, "Unknown" if unlisted."""
    return _STATUS_PHRASES.get(int(status_code), "Unknown")
