"""
Unit tests for the OpenAI-compatible LLM client.

The HTTP layer (`_post`) is replaced with in-memory stubs; no network calls.
"""
import httpx
import pytest

from app.core.config import AdviceSettings
from app.services.ai.llm_client import LLMClient, ProviderError, build_llm_client


def _client(monkeypatch, response=None, error=None, api_key="test-key"):
    client = LLMClient(api_base="https://llm.test/v1/", api_key=api_key)
    sent = {}

    async def fake_post(path, json_payload):
        sent["path"] = path
        sent["payload"] = json_payload
        if error is not None:
            raise error
        return response

    monkeypatch.setattr(client, "_post", fake_post)
    return client, sent


@pytest.mark.asyncio
async def test_generate_returns_first_choice_content(monkeypatch):
    response = httpx.Response(200, json={"choices": [{"message": {"content": '{"ok": true}'}}]})
    client, sent = _client(monkeypatch, response=response)

    text = await client.generate("gemini-1.5-flash", "hello")

    assert text == '{"ok": true}'
    assert sent["path"] == "/chat/completions"
    assert sent["payload"]["model"] == "gemini-1.5-flash"
    assert sent["payload"]["messages"] == [{"role": "user", "content": "hello"}]


@pytest.mark.asyncio
async def test_generate_joins_content_parts(monkeypatch):
    response = httpx.Response(200, json={
        "choices": [{"message": {"content": [{"text": "{\"a\""}, {"text": ": 1}"}]}}],
    })
    client, _ = _client(monkeypatch, response=response)

    assert await client.generate("m", "p") == '{"a": 1}'


@pytest.mark.asyncio
async def test_missing_api_key_is_not_transient(monkeypatch):
    client, sent = _client(monkeypatch, api_key=None)

    with pytest.raises(ProviderError) as excinfo:
        await client.generate("m", "p")

    assert excinfo.value.status is None
    assert excinfo.value.transient is False
    assert sent == {}


@pytest.mark.asyncio
async def test_http_error_carries_status(monkeypatch):
    client, _ = _client(monkeypatch, response=httpx.Response(429, text="quota exceeded"))

    with pytest.raises(ProviderError) as excinfo:
        await client.generate("m", "p")

    assert excinfo.value.status == 429
    assert "quota exceeded" in excinfo.value.message


@pytest.mark.asyncio
async def test_timeout_is_transient(monkeypatch):
    client, _ = _client(monkeypatch, error=httpx.ReadTimeout("timed out"))

    with pytest.raises(ProviderError) as excinfo:
        await client.generate("m", "p")

    assert excinfo.value.transient is True


@pytest.mark.asyncio
async def test_malformed_body(monkeypatch):
    client, _ = _client(monkeypatch, response=httpx.Response(200, json={"unexpected": []}))

    with pytest.raises(ProviderError, match="Malformed"):
        await client.generate("m", "p")


def test_build_llm_client_uses_settings():
    settings = AdviceSettings(api_base="https://example.test/", api_key="k", timeout_seconds=5)

    client = build_llm_client(settings)

    assert client.api_base == "https://example.test"
    assert client.api_key == "k"
    assert client.timeout_seconds == 5
