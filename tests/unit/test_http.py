from __future__ import annotations

import pytest
import requests

from dashsync.common.http import HttpClient, HttpRequestError, RetryConfig, RetryableHttpError

NO_WAIT = RetryConfig(read_retries=2, multiplier=0, max_wait=0)


class FakeResponse:
    def __init__(self, status_code: int, payload=None, raises_json: bool = False):
        self.status_code = status_code
        self._payload = payload
        self._raises_json = raises_json
        self.content = b"" if payload is None and not raises_json else b"payload"

    def json(self):
        if self._raises_json:
            raise ValueError("bad json")
        return self._payload


class ScriptedRequest:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def test_http_get_json_success(monkeypatch):
    client = HttpClient("https://example.test/api", retry=NO_WAIT)
    request = ScriptedRequest(FakeResponse(200, [{"id": 1}]))
    monkeypatch.setattr(client.session, "request", request)

    assert client.get_json("/locates/") == [{"id": 1}]
    assert request.calls[0]["url"] == "https://example.test/api/locates/"
    assert request.calls[0]["method"] == "GET"


def test_http_get_is_retried_on_retryable_status(monkeypatch):
    client = HttpClient("https://example.test", retry=NO_WAIT)
    request = ScriptedRequest(FakeResponse(503, {}), FakeResponse(502, {}), FakeResponse(200, {"data": []}))
    monkeypatch.setattr(client.session, "request", request)

    assert client.get_json("/locates/") == {"data": []}
    assert len(request.calls) == 3


def test_http_get_gives_up_after_read_retries(monkeypatch):
    client = HttpClient("https://example.test", retry=NO_WAIT)
    request = ScriptedRequest(FakeResponse(503, {"x": 1}))
    monkeypatch.setattr(client.session, "request", request)

    with pytest.raises(RetryableHttpError):
        client.get_json("/locates/")
    assert len(request.calls) == 3


def test_http_mutations_are_sent_once(monkeypatch):
    client = HttpClient("https://example.test", retry=NO_WAIT)
    request = ScriptedRequest(FakeResponse(503, {}))
    monkeypatch.setattr(client.session, "request", request)

    with pytest.raises(RetryableHttpError):
        client.patch_json("/work-orders-today/1/", {"status": "LOCKED"})
    assert len(request.calls) == 1
    assert request.calls[0]["json"] == {"status": "LOCKED"}


def test_http_error_carries_server_message(monkeypatch):
    client = HttpClient("https://example.test", retry=NO_WAIT)
    monkeypatch.setattr(client.session, "request", ScriptedRequest(FakeResponse(400, {"message": "Report already locked"})))

    with pytest.raises(HttpRequestError) as excinfo:
        client.post_json("/locates/mark-seen/", {"ids": [1]})
    assert excinfo.value.status == 400
    assert excinfo.value.server_message == "Report already locked"


def test_http_no_content_returns_none(monkeypatch):
    client = HttpClient("https://example.test", retry=NO_WAIT)
    monkeypatch.setattr(client.session, "request", ScriptedRequest(FakeResponse(204)))

    assert client.delete("/locates/3/") is None


def test_http_invalid_json_raises(monkeypatch):
    client = HttpClient("https://example.test", retry=NO_WAIT)
    monkeypatch.setattr(client.session, "request", ScriptedRequest(FakeResponse(200, raises_json=True)))

    with pytest.raises(HttpRequestError):
        client.get_json("/locates/")


def test_http_connection_errors_are_retryable(monkeypatch):
    client = HttpClient("https://example.test", retry=RetryConfig(read_retries=0))
    monkeypatch.setattr(client.session, "request", ScriptedRequest(requests.ConnectionError("refused")))

    with pytest.raises(RetryableHttpError):
        client.get_json("/locates/")


def test_http_sends_bearer_token(monkeypatch):
    client = HttpClient("https://example.test", retry=NO_WAIT, token="abc123")
    request = ScriptedRequest(FakeResponse(200, []))
    monkeypatch.setattr(client.session, "request", request)

    client.get_json("/locates/")
    assert request.calls[0]["headers"]["Authorization"] == "Bearer abc123"
