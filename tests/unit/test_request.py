"""
Unit tests for HTTP request parsing.
"""

import pytest

from translation_server.http.request import (
    ParsedRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_translate_request(self, sample_translate_request: bytes):
        """Method, path and trimmed body are extracted."""
        request = RequestParser().parse(sample_translate_request)

        assert request.method == "POST"
        assert request.path == "/translate"
        assert request.body.startswith(b'{"text": "Hello, World!"')
        assert request.has_body is True

    def test_parse_headers(self, sample_get_request: bytes):
        """Header names are case-insensitive."""
        request = parse_request(sample_get_request)

        assert request.get_header("Host") == "localhost:5308"
        assert request.get_header("user-agent") == "pytest"
        assert request.headers["accept"] == "application/json"
        assert request.get_header("missing", "default") == "default"

    def test_repeated_headers_are_joined(self):
        raw = b"GET / HTTP/1.1\r\nAccept: a\r\nAccept: b\r\n\r\n"
        assert parse_request(raw).get_header("accept") == "a, b"

    def test_malformed_header_lines_are_skipped(self):
        raw = b"GET / HTTP/1.1\r\nnot a header\r\n: empty\r\nHost: x\r\n\r\n"
        assert parse_request(raw).headers == {"host": "x"}

    def test_path_is_kept_verbatim(self):
        """No query splitting or decoding: routing compares the raw target."""
        request = parse_request(b"POST /translate?x=1 HTTP/1.1\r\n\r\n")
        assert request.path == "/translate?x=1"

    def test_get_without_body_has_empty_body(self, sample_get_request: bytes):
        """A blank line with nothing after it is an empty body, not a missing one."""
        request = parse_request(sample_get_request)

        assert request.body == b""
        assert request.has_body is True

    def test_missing_boundary_means_no_body(self):
        """Headers cut off before the blank line: body is absent."""
        raw = b"POST /translate HTTP/1.1\r\nContent-Length: 80\r\n"
        request = parse_request(raw)

        assert request.body is None
        assert request.has_body is False

    def test_body_is_trimmed(self):
        raw = b"POST /translate HTTP/1.1\r\n\r\n  \r\n {\"a\": 1}\n\t "
        assert parse_request(raw).body == b'{"a": 1}'

    def test_body_after_first_boundary_only(self):
        """Everything after the FIRST blank line belongs to the body."""
        raw = b"POST /x HTTP/1.1\r\n\r\nline1\r\n\r\nline2"
        assert parse_request(raw).body == b"line1\r\n\r\nline2"

    def test_non_ascii_body(self):
        body = '{"text": "你好"}'.encode("utf-8")
        request = parse_request(b"POST /translate HTTP/1.1\r\n\r\n" + body)
        assert request.body == body

    def test_unknown_method_is_not_a_parse_error(self):
        """Method validation is the dispatcher's job (404)."""
        request = parse_request(b"BREW /pot HTTP/1.1\r\n\r\n")
        assert request.method == "BREW"

    def test_raw_text_is_kept(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)
        assert request.raw == sample_get_request.decode()


class TestParseErrors:
    """Malformed input raises HTTPParseError with a 400 status."""

    def test_invalid_utf8(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"POST /translate HTTP/1.1\r\n\r\n\xff\xfe")

        assert str(exc_info.value) == "cannot parse request data"
        assert exc_info.value.status_code == 400

    def test_request_line_with_two_tokens(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET /foo\r\nHost: test\r\n\r\n")

        assert str(exc_info.value) == "invalid request format"

    def test_request_line_with_one_token(self):
        with pytest.raises(HTTPParseError, match="invalid request format"):
            parse_request(b"GET\r\nHost: test\r\n\r\n")

    def test_empty_request(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"")

        assert str(exc_info.value) == "invalid request"

    def test_blank_request_line(self):
        with pytest.raises(HTTPParseError, match="invalid request"):
            parse_request(b"\r\nHost: test\r\n\r\n")

    def test_body_fragment_alone(self):
        """The second half of a split request does not parse on its own."""
        with pytest.raises(HTTPParseError, match="invalid request"):
            parse_request(b'\r\n{"text": "Hello", "source_language": "en"}')


class TestParsedRequest:

    def test_defaults(self):
        request = ParsedRequest(method="HEAD", path="/")

        assert request.body is None
        assert request.headers == {}
        assert request.has_body is False
