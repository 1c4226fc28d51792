"""Tests for request building, response classification and the Dispatcher."""

import json
import socket
import threading
from unittest.mock import patch

import pytest
import requests
from urllib3.exceptions import ReadTimeoutError

from nexuspy.dispatcher import Dispatcher, Outcome, RequestContext, build_url, classify_response
from nexuspy.exceptions import (
    AmbiguousResultError,
    ErrorKind,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    RemoteError,
    RequestTimeoutError,
    ServiceUnavailableError,
    UncertainOutcomeError,
)
from nexuspy.utils import session_factory

from conftest import FakeSession, make_response

URL = "https://api.example.test/v1/games/skyrim"


@pytest.fixture
def stalled_body_url():
    """Local HTTP server that sends the headers and part of the body, then goes quiet."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    listener.settimeout(5)
    release = threading.Event()

    def serve():
        conn, _ = listener.accept()
        with conn:
            conn.recv(65536)
            conn.sendall(b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
                         b"Content-Length: 100\r\n\r\n{\"partial\": ")
            release.wait(5)

    server = threading.Thread(target=serve, daemon=True)
    server.start()
    yield "http://127.0.0.1:%d/games" % listener.getsockname()[1]
    release.set()
    server.join(timeout=5)
    listener.close()


class TestClassifyResponse:

    def test_success_returns_parsed_json(self):
        outcome = classify_response(200, "OK", '{"id": 110, "name": "Skyrim"}', URL)
        assert outcome.ok
        assert outcome.value == {"id": 110, "name": "Skyrim"}

    def test_empty_body_is_empty_object(self):
        outcome = classify_response(200, "OK", "", URL)
        assert outcome.ok
        assert outcome.value == {}

    def test_521_bad_gateway_is_service_unavailable(self):
        outcome = classify_response(521, "Origin Down", "Bad Gateway", URL)
        assert outcome.kind is ErrorKind.SERVICE_UNAVAILABLE
        assert outcome.error.status == 521
        assert outcome.error.url == URL

    def test_bad_gateway_body_with_other_status(self):
        outcome = classify_response(502, "Bad Gateway", "Bad Gateway", URL)
        assert outcome.kind is ErrorKind.SERVICE_UNAVAILABLE
        assert outcome.error.status == 502

    def test_521_body_is_not_parsed(self):
        with patch("nexuspy.dispatcher.json.loads") as loads:
            outcome = classify_response(521, "", "<html>down</html>", URL)
        loads.assert_not_called()
        assert outcome.kind is ErrorKind.SERVICE_UNAVAILABLE

    def test_429_is_rate_limited_without_parsing(self):
        with patch("nexuspy.dispatcher.json.loads") as loads:
            outcome = classify_response(429, "Too Many Requests", "not json", URL)
        loads.assert_not_called()
        assert outcome.kind is ErrorKind.RATE_LIMITED

    def test_202_is_ambiguous(self):
        outcome = classify_response(202, "Accepted", "{}", URL)
        assert outcome.kind is ErrorKind.AMBIGUOUS
        assert outcome.kind is not ErrorKind.TIMEOUT

    def test_malformed_json_carries_url(self):
        outcome = classify_response(200, "OK", "{", URL)
        assert outcome.kind is ErrorKind.MALFORMED_RESPONSE
        assert URL in outcome.error.message
        assert outcome.error.url == URL

    def test_remote_error_prefers_message(self):
        outcome = classify_response(404, "Not Found", '{"message": "No Mod found", "error": "x"}', URL)
        assert outcome.kind is ErrorKind.REMOTE_ERROR
        assert outcome.error.status == 404
        assert outcome.error.message == "No Mod found"

    def test_remote_error_falls_back_to_error_field(self):
        outcome = classify_response(400, "Bad Request", '{"error": "invalid game"}', URL)
        assert outcome.error.message == "invalid game"

    def test_remote_error_falls_back_to_status_line(self):
        outcome = classify_response(500, "Internal Server Error", "", URL)
        assert outcome.kind is ErrorKind.REMOTE_ERROR
        assert outcome.error.message == "500 Internal Server Error"

    def test_remote_error_with_list_body_uses_status_line(self):
        outcome = classify_response(403, "Forbidden", "[]", URL)
        assert outcome.error.message == "403 Forbidden"

    def test_informational_status_is_remote_error(self):
        outcome = classify_response(199, "", "{}", URL)
        assert outcome.kind is ErrorKind.REMOTE_ERROR

    @pytest.mark.parametrize("status,body", [
        (200, '{"a": 1}'),
        (202, ""),
        (429, ""),
        (521, "Bad Gateway"),
        (200, "{"),
        (418, '{"message": "teapot"}'),
    ])
    def test_classification_is_idempotent(self, status, body):
        first = classify_response(status, "", body, URL)
        second = classify_response(status, "", body, URL)
        assert first.kind is second.kind
        assert first == second


class TestOutcome:

    def test_unwrap_success(self):
        assert Outcome.success([1, 2]).unwrap() == [1, 2]

    @pytest.mark.parametrize("kind,exc_type", [
        (ErrorKind.TIMEOUT, RequestTimeoutError),
        (ErrorKind.AMBIGUOUS, AmbiguousResultError),
        (ErrorKind.SERVICE_UNAVAILABLE, ServiceUnavailableError),
        (ErrorKind.MALFORMED_RESPONSE, InvalidResponseError),
        (ErrorKind.REMOTE_ERROR, RemoteError),
    ])
    def test_unwrap_raises_mapped_exception(self, kind, exc_type):
        outcome = Outcome.failure(kind, "boom", 500, URL)
        with pytest.raises(exc_type) as excinfo:
            outcome.unwrap()
        assert excinfo.value.url == URL
        assert excinfo.value.record is outcome.error

    def test_timeout_and_ambiguous_share_base(self):
        assert issubclass(RequestTimeoutError, UncertainOutcomeError)
        assert issubclass(AmbiguousResultError, UncertainOutcomeError)

    def test_remote_404_maps_to_not_found(self):
        with pytest.raises(NotFoundError):
            Outcome.failure(ErrorKind.REMOTE_ERROR, "gone", 404, URL).unwrap()


class TestRequestContext:

    def test_method_follows_body(self):
        assert RequestContext("http://x/a").method == "GET"
        assert RequestContext("http://x/a", body={"Version": "1.0"}).method == "POST"

    def test_none_entries_are_omitted(self):
        ctx = RequestContext(
            "http://x/{gameId}",
            path_params={"gameId": "skyrim", "modId": None},
            query_params={"key": None},
            headers={"APIKEY": None, "Protocol-Version": "0.15.5"},
        )
        assert dict(ctx.path_params) == {"gameId": "skyrim"}
        assert dict(ctx.query_params) == {}
        assert "APIKEY" not in ctx.headers

    def test_is_immutable(self):
        ctx = RequestContext("http://x/a", headers={"A": "1"})
        with pytest.raises(Exception):
            ctx.body = {"x": 1}
        with pytest.raises(TypeError):
            ctx.headers["B"] = "2"

    def test_body_and_files_are_copied(self):
        body = {"feedback_text": "first"}
        files = {"feedback_file": ("a.zip", b"PK")}
        ctx = RequestContext("http://x/feedbacks", body=body, files=files)
        body["feedback_text"] = "changed"
        files["other"] = ("b.zip", b"PK")
        assert ctx.body == {"feedback_text": "first"}
        assert dict(ctx.files) == {"feedback_file": ("a.zip", b"PK")}
        with pytest.raises(TypeError):
            ctx.files["more"] = ("c.zip", b"")

    def test_build_url_substitutes_and_quotes(self):
        url = build_url("http://x/games/{gameId}/mods/md5_search/{hash}", {"gameId": "fallout 4", "hash": "abc"})
        assert url == "http://x/games/fallout%204/mods/md5_search/abc"

    def test_missing_placeholder_raises_key_error(self):
        with pytest.raises(KeyError):
            build_url("http://x/games/{gameId}", {})


class TestDispatcher:

    def test_get_request(self):
        session = FakeSession(make_response(200, '[{"id": 1}]'))
        ctx = RequestContext(
            "https://api.example.test/v1/games/{gameId}/mods/{modId}/files/{fileId}/download_link",
            path_params={"gameId": "skyrim", "modId": 12, "fileId": 34},
            query_params={"key": "k", "expires": 99},
            headers={"APIKEY": "secret", "Content-Type": "application/json"},
            timeout=3.0,
        )
        outcome = Dispatcher(session).dispatch(ctx)

        assert outcome.value == [{"id": 1}]
        call = session.last
        assert call["method"] == "GET"
        assert call["url"] == "https://api.example.test/v1/games/skyrim/mods/12/files/34/download_link"
        assert call["params"] == {"key": "k", "expires": 99}
        assert call["headers"]["APIKEY"] == "secret"
        assert call["timeout"] == (3.0, 3.0)
        assert "data" not in call

    def test_post_sends_json_body(self):
        session = FakeSession(make_response(200, '{"status": "Endorsed"}'))
        ctx = RequestContext("http://x/endorse", body={"Version": "1.1"},
                             headers={"Content-Type": "application/json"})
        Dispatcher(session).dispatch(ctx)
        call = session.last
        assert call["method"] == "POST"
        assert json.loads(call["data"]) == {"Version": "1.1"}
        assert call["headers"]["Content-Type"] == "application/json"
        assert call["params"] is None

    def test_multipart_drops_json_content_type(self):
        session = FakeSession(make_response(200, "{}"))
        ctx = RequestContext("http://x/feedbacks", body={"feedback_text": "hi"},
                             files={"feedback_file": ("a.zip", b"PK")},
                             headers={"Content-Type": "application/json", "APIKEY": "k"})
        Dispatcher(session).dispatch(ctx)
        call = session.last
        assert "Content-Type" not in call["headers"]
        assert call["data"] == {"feedback_text": "hi"}
        assert call["files"] == {"feedback_file": ("a.zip", b"PK")}

    @pytest.mark.parametrize("exc", [requests.ConnectTimeout("slow"), requests.ReadTimeout("slow")])
    def test_transport_timeout_is_classified(self, exc):
        session = FakeSession(exc)
        outcome = Dispatcher(session).dispatch(RequestContext("http://x/games"))
        assert outcome.kind is ErrorKind.TIMEOUT
        assert outcome.error.url == "http://x/games"

    def test_read_timeout_while_reading_body_is_classified(self):
        # what requests raises when the body read times out
        session = FakeSession(requests.ConnectionError(
            ReadTimeoutError(None, "http://x/games", "Read timed out.")))
        outcome = Dispatcher(session).dispatch(RequestContext("http://x/games"))
        assert outcome.kind is ErrorKind.TIMEOUT
        with pytest.raises(RequestTimeoutError):
            outcome.unwrap()

    def test_stalled_response_body_times_out(self, stalled_body_url):
        session = session_factory()
        session.trust_env = False
        try:
            outcome = Dispatcher(session).dispatch(RequestContext(stalled_body_url, timeout=0.3))
        finally:
            session.close()
        assert outcome.kind is ErrorKind.TIMEOUT
        assert outcome.error.url == stalled_body_url

    def test_other_transport_errors_raise_with_url(self):
        cause = requests.ConnectionError("Name or service not known")
        session = FakeSession(cause)
        with pytest.raises(NetworkError) as excinfo:
            Dispatcher(session).dispatch(RequestContext("http://x/games"))
        assert "(request: http://x/games)" in str(excinfo.value)
        assert excinfo.value.__cause__ is cause

    def test_dispatch_classifies_response(self):
        session = FakeSession(make_response(521, "Bad Gateway", reason="Web Server Is Down"))
        outcome = Dispatcher(session).dispatch(RequestContext("http://x/games"))
        assert outcome.kind is ErrorKind.SERVICE_UNAVAILABLE
        assert outcome.error.status == 521

    def test_dispatch_never_retries(self):
        session = FakeSession(make_response(429, ""), make_response(200, "{}"))
        outcome = Dispatcher(session).dispatch(RequestContext("http://x/games"))
        assert outcome.kind is ErrorKind.RATE_LIMITED
        assert len(session.calls) == 1
