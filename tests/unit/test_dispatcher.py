"""
Unit tests for request routing and body validation.
"""

import pytest

from translation_server.core.stats import ServerStats
from translation_server.http.dispatcher import Dispatcher, InvalidBodyError, parse_translate_body
from translation_server.http.response import ResponseWriter
from translation_server.translation.bridge import AdmissionPolicy, BridgeState, TranslationBridge


@pytest.fixture
def bridge():
    return TranslationBridge(writer=ResponseWriter(), resume=lambda conn: None, stats=ServerStats())


@pytest.fixture
def dispatcher(bridge):
    return Dispatcher(bridge)


class TestRouting:

    def test_translate_parks_connection(self, dispatcher, bridge, fake_conn, sample_translate_request):
        assert dispatcher.dispatch(sample_translate_request, fake_conn) is False

        assert fake_conn.parked
        assert fake_conn.sent == []
        assert bridge.state == BridgeState.PENDING
        assert bridge.pending.text == "Hello, World!"
        assert bridge.pending.target_language == "zh-Hans"

    def test_head_is_404_with_empty_body(self, dispatcher, fake_conn, make_request):
        assert dispatcher.dispatch(make_request("HEAD", "/translate"), fake_conn) is True

        status, headers, body = fake_conn.responses()[0]
        assert status == 404
        assert body == b""
        assert dict(headers)["Content-Length"] == "0"

    @pytest.mark.parametrize("method,path", [
        ("GET", "/foo"),
        ("GET", "/translate"),
        ("POST", "/other"),
        ("POST", "/translate/"),
        ("OPTIONS", "/translate"),
        ("PUT", "/translate"),
    ])
    def test_unsupported_routes(self, dispatcher, fake_conn, make_request, method, path):
        assert dispatcher.dispatch(make_request(method, path, b"{}"), fake_conn) is True
        assert fake_conn.last_json() == (404, {"error": "unsupported endpoint or method"})

    def test_parse_error_is_400(self, dispatcher, fake_conn):
        assert dispatcher.dispatch(b"GARBAGE\r\n\r\n", fake_conn) is True
        assert fake_conn.last_json() == (400, {"error": "invalid request format"})

    def test_undecodable_request_is_400(self, dispatcher, fake_conn):
        dispatcher.dispatch(b"\xff\xfe\xfd", fake_conn)
        assert fake_conn.last_json() == (400, {"error": "cannot parse request data"})


class TestTranslateBody:

    def test_no_body(self, dispatcher, fake_conn):
        raw = b"POST /translate HTTP/1.1\r\nContent-Length: 80\r\n"
        assert dispatcher.dispatch(raw, fake_conn) is True
        assert fake_conn.last_json() == (400, {"error": "no body"})

    def test_malformed_json(self, dispatcher, fake_conn, make_request):
        dispatcher.dispatch(make_request("POST", "/translate", b"{not json"), fake_conn)

        status, payload = fake_conn.last_json()
        assert status == 400
        assert payload["error"].startswith("JSON parse error: ")

    def test_missing_field(self, dispatcher, fake_conn, make_request):
        body = b'{"text":"hi","source_language":"en"}'
        dispatcher.dispatch(make_request("POST", "/translate", body), fake_conn)
        assert fake_conn.last_json() == (400, {"error": "invalid JSON data"})

    def test_empty_body_is_a_parse_error(self, dispatcher, fake_conn):
        dispatcher.dispatch(b"POST /translate HTTP/1.1\r\n\r\n", fake_conn)

        status, payload = fake_conn.last_json()
        assert status == 400
        assert "JSON parse error" in payload["error"]


class TestRequestCounting:

    def test_parsed_requests_are_counted(self, dispatcher, bridge, fake_conn, sample_get_request, make_request):
        dispatcher.dispatch(sample_get_request, fake_conn)
        dispatcher.dispatch(make_request("HEAD", "/"), fake_conn)

        assert bridge.stats.request_count == 2
        assert bridge.stats.last_request.startswith("HEAD / HTTP/1.1")

    def test_unparseable_requests_are_not_counted(self, dispatcher, bridge, fake_conn):
        dispatcher.dispatch(b"nonsense", fake_conn)
        assert bridge.stats.request_count == 0


class TestQueueAdmission:

    def test_busy_is_429(self, make_fake_conn, sample_translate_request):
        bridge = TranslationBridge(
            writer=ResponseWriter(),
            resume=lambda conn: None,
            policy=AdmissionPolicy.QUEUE,
            max_queued_jobs=0,
        )
        dispatcher = Dispatcher(bridge)
        first, second = make_fake_conn(), make_fake_conn()

        assert dispatcher.dispatch(sample_translate_request, first) is False
        assert dispatcher.dispatch(sample_translate_request, second) is True

        assert second.last_json() == (429, {"error": "translation engine busy"})
        assert not second.parked


class TestParseTranslateBody:

    def test_valid(self):
        body = '{"text": "Grüß", "source_language": "de", "target_language": "en"}'.encode()
        assert parse_translate_body(body) == ("Grüß", "de", "en")

    def test_extra_fields_are_ignored(self):
        body = b'{"text": "a", "source_language": "en", "target_language": "de", "x": 1}'
        assert parse_translate_body(body) == ("a", "en", "de")

    def test_empty_strings_are_accepted(self):
        body = b'{"text": "", "source_language": "", "target_language": ""}'
        assert parse_translate_body(body) == ("", "", "")

    @pytest.mark.parametrize("body", [
        b'{"text": 1, "source_language": "en", "target_language": "de"}',
        b'{"text": "a", "source_language": null, "target_language": "de"}',
        b'{"text": "a", "source_language": "en", "target_language": ["de"]}',
        b'["text", "source_language", "target_language"]',
        b'"just a string"',
        b'{}',
    ])
    def test_invalid_data(self, body):
        with pytest.raises(InvalidBodyError, match="invalid JSON data"):
            parse_translate_body(body)

    def test_bad_encoding(self):
        with pytest.raises(InvalidBodyError, match="invalid request body encoding"):
            parse_translate_body(b'{"text": "\xff"}')

    def test_syntax_error_embeds_decoder_message(self):
        with pytest.raises(InvalidBodyError) as exc_info:
            parse_translate_body(b"{not json")
        assert str(exc_info.value).startswith("JSON parse error: Expecting property name")
