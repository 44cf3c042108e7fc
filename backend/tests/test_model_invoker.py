"""
Unit tests for the retry / fallback-model invoker.

These tests use scripted in-memory providers and a recording sleep; no real
HTTP calls or real delays.
"""
import random

import httpx
import pytest

from app.services.ai.invoker import (
    InvocationExhausted,
    InvocationSuccess,
    ModelInvoker,
    error_status,
    is_retriable,
)
from app.services.ai.llm_client import ProviderError


class ScriptedProvider:
    """Replays a per-model script of results; exceptions are raised."""

    def __init__(self, scripts):
        self.scripts = {model: list(steps) for model, steps in scripts.items()}
        self.calls = []

    async def generate(self, model, prompt):
        self.calls.append(model)
        step = self.scripts[model].pop(0) if self.scripts.get(model) else ProviderError(
            "service unavailable", status=503
        )
        if isinstance(step, Exception):
            raise step
        return step


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _invoker(provider, sleep, jitter_ms=0.0):
    return ModelInvoker(provider, jitter_ms=jitter_ms, sleep=sleep, rng=random.Random(7))


async def _invoke(invoker, max_retries=4, fallback="fallback"):
    return await invoker.invoke(
        "prompt",
        primary_model="primary",
        fallback_model=fallback,
        max_retries=max_retries,
        backoff_base_ms=500,
        backoff_cap_ms=8000,
    )


@pytest.mark.asyncio
async def test_first_attempt_success():
    provider = ScriptedProvider({"primary": ["{}"]})
    sleep = RecordingSleep()

    result = await _invoke(_invoker(provider, sleep))

    assert isinstance(result, InvocationSuccess)
    assert result.text == "{}"
    assert result.model == "primary"
    assert result.used_fallback is False
    assert result.attempts == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_retriable_errors_back_off_exponentially():
    provider = ScriptedProvider({
        "primary": [
            ProviderError("rate limited", status=429),
            ProviderError("bad gateway", status=502),
            "ok",
        ],
    })
    sleep = RecordingSleep()

    result = await _invoke(_invoker(provider, sleep))

    assert isinstance(result, InvocationSuccess)
    assert result.used_fallback is False
    assert result.attempts == 3
    assert sleep.delays == [pytest.approx(0.5), pytest.approx(1.0)]


@pytest.mark.asyncio
async def test_non_retriable_error_moves_straight_to_fallback():
    provider = ScriptedProvider({
        "primary": [ProviderError("invalid request", status=400)],
        "fallback": ["answer"],
    })
    sleep = RecordingSleep()

    result = await _invoke(_invoker(provider, sleep))

    assert isinstance(result, InvocationSuccess)
    assert result.model == "fallback"
    assert result.used_fallback is True
    assert result.attempts == 2
    assert provider.calls == ["primary", "fallback"]
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_structured_error_message_moves_to_fallback():
    error = ProviderError("upstream error")
    error.message = {"code": 400, "detail": "invalid argument"}
    provider = ScriptedProvider({
        "primary": [error],
        "fallback": ["answer"],
    })
    sleep = RecordingSleep()

    result = await _invoke(_invoker(provider, sleep))

    assert isinstance(result, InvocationSuccess)
    assert result.model == "fallback"
    assert provider.calls == ["primary", "fallback"]


@pytest.mark.asyncio
async def test_exhaustion_bounds_total_attempts():
    provider = ScriptedProvider({})  # every call fails with 503
    sleep = RecordingSleep()

    result = await _invoke(_invoker(provider, sleep), max_retries=2)

    assert isinstance(result, InvocationExhausted)
    assert result.attempts == 6
    assert provider.calls == ["primary"] * 3 + ["fallback"] * 3
    assert isinstance(result.error, ProviderError)
    # Two retries per phase
    assert len(sleep.delays) == 4


@pytest.mark.asyncio
async def test_zero_retries_means_one_call_per_model():
    provider = ScriptedProvider({})
    sleep = RecordingSleep()

    result = await _invoke(_invoker(provider, sleep), max_retries=0)

    assert isinstance(result, InvocationExhausted)
    assert provider.calls == ["primary", "fallback"]
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_fallback_equal_to_primary_is_skipped():
    provider = ScriptedProvider({})
    sleep = RecordingSleep()

    result = await _invoke(_invoker(provider, sleep), max_retries=1, fallback="primary")

    assert isinstance(result, InvocationExhausted)
    assert provider.calls == ["primary", "primary"]


@pytest.mark.asyncio
async def test_missing_fallback_model_is_skipped():
    provider = ScriptedProvider({"primary": [ProviderError("forbidden", status=403)]})

    result = await _invoke(_invoker(provider, RecordingSleep()), fallback=None)

    assert isinstance(result, InvocationExhausted)
    assert result.attempts == 1


class TestBackoff:
    """Backoff delay computation."""

    def test_exponential_growth_is_capped(self):
        invoker = ModelInvoker(ScriptedProvider({}), jitter_ms=0)

        delays = [invoker.backoff_delay_ms(attempt, 500, 8000) for attempt in range(6)]

        assert delays == [500, 1000, 2000, 4000, 8000, 8000]

    def test_jitter_stays_within_bounds(self):
        invoker = ModelInvoker(ScriptedProvider({}), jitter_ms=300, rng=random.Random(1))

        for _ in range(50):
            delay = invoker.backoff_delay_ms(0, 500, 8000)
            assert 500 <= delay <= 800


class TestRetriableClassification:
    """Transient vs permanent provider errors."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retriable_statuses(self, status):
        assert is_retriable(ProviderError("error", status=status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_permanent_statuses(self, status):
        assert not is_retriable(ProviderError("error", status=status))

    @pytest.mark.parametrize("message", [
        "The model is overloaded",
        "Service temporarily down",
        "deadline exceeded: timeout",
        "backend unavailable",
        "Please try again later",
    ])
    def test_retriable_messages(self, message):
        assert is_retriable(ProviderError(message))

    def test_transport_timeout_is_retriable(self):
        assert is_retriable(httpx.ReadTimeout("read timed out"))

    def test_transient_flag_is_retriable(self):
        assert is_retriable(ProviderError("connection reset", transient=True))

    def test_plain_error_is_not_retriable(self):
        assert not is_retriable(ValueError("bad schema"))

    def test_non_string_message_is_stringified(self):
        error = ProviderError("boom")
        error.message = {"reason": "model overloaded"}
        assert is_retriable(error)

    def test_error_status_reads_http_status_error(self):
        request = httpx.Request("POST", "https://llm.test/chat/completions")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("boom", request=request, response=response)

        assert error_status(error) == 503
        assert is_retriable(error)

    def test_error_status_ignores_non_numeric_codes(self):
        error = ProviderError("boom")
        error.code = "EBAD"
        assert error_status(error) is None
