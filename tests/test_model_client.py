import asyncio

import httpx

from pet_advice.core import model_client
from pet_advice.core.errors import error_for_exception, error_for_status
from pet_advice.core.model_client import ModelClient, ModelFailure, ModelSuccess, extract_content


class FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def _fake_client(responder, calls):
    class FakeAsyncClient:
        def __init__(self, timeout=None):
            calls.append({"timeout": timeout})

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def post(self, url, json=None, headers=None):
            calls.append({"url": url, "json": json, "headers": headers})
            return responder()

    return FakeAsyncClient


def _client():
    return ModelClient("http://model.local/v1/", "secret", "test-model", timeout_sec=12)


def test_complete_success_posts_openai_payload(monkeypatch):
    calls = []
    payload = {"choices": [{"message": {"role": "assistant", "content": "Twice a day."}}]}
    monkeypatch.setattr(model_client.httpx, "AsyncClient", _fake_client(lambda: FakeResponse(200, payload), calls))

    messages = [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}]
    result = asyncio.run(_client().complete(messages))

    assert isinstance(result, ModelSuccess)
    assert result.content == "Twice a day."
    assert calls[0] == {"timeout": 12}
    assert calls[1]["url"] == "http://model.local/v1/chat/completions"
    assert calls[1]["json"] == {"model": "test-model", "messages": messages}
    assert calls[1]["headers"]["authorization"] == "Bearer secret"


def test_complete_maps_http_status_to_failure(monkeypatch):
    calls = []
    monkeypatch.setattr(
        model_client.httpx, "AsyncClient", _fake_client(lambda: FakeResponse(429, text="slow down"), calls)
    )
    result = asyncio.run(_client().complete([]))
    assert isinstance(result, ModelFailure)
    assert result.status_code == 429
    assert result.error.error_code == "RATE_LIMITED"
    assert "slow down" not in result.error.message
    assert len(result.error.error_id) == 8


def test_complete_maps_timeout_and_network_errors(monkeypatch):
    calls = []

    def _timeout():
        raise httpx.ReadTimeout("took too long")

    monkeypatch.setattr(model_client.httpx, "AsyncClient", _fake_client(_timeout, calls))
    result = asyncio.run(_client().complete([]))
    assert isinstance(result, ModelFailure)
    assert result.error.error_code == "REQUEST_TIMEOUT"

    def _refused():
        raise httpx.ConnectError("refused")

    monkeypatch.setattr(model_client.httpx, "AsyncClient", _fake_client(_refused, calls))
    result = asyncio.run(_client().complete([]))
    assert result.error.error_code == "NETWORK_ERROR"


def test_complete_invalid_json_is_unknown_failure(monkeypatch):
    calls = []
    monkeypatch.setattr(
        model_client.httpx, "AsyncClient", _fake_client(lambda: FakeResponse(200, ValueError("bad")), calls)
    )
    result = asyncio.run(_client().complete([]))
    assert isinstance(result, ModelFailure)
    assert result.error.error_code == "UNKNOWN_ERROR"


def test_extract_content_handles_missing_choices():
    assert extract_content({}) is None
    assert extract_content({"choices": []}) is None
    assert extract_content({"choices": [{"message": {}}]}) is None
    assert extract_content([]) is None


def test_error_for_status_table():
    assert error_for_status(400).error_code == "BAD_REQUEST"
    assert error_for_status(401).error_code == "AUTH_FAILED"
    assert error_for_status(500).error_code == "SERVER_ERROR"
    assert error_for_status(503).error_code == "MAINTENANCE"
    assert error_for_status(418).error_code == "UNKNOWN_ERROR"


def test_error_for_exception_hides_details():
    response = error_for_exception(RuntimeError("db password is hunter2"))
    assert response.error_code == "UNEXPECTED_ERROR"
    assert "hunter2" not in response.message
    assert error_for_exception(ValueError("x")).error_code == "INVALID_INPUT"
