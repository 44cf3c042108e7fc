"""
Retry / fallback-model state machine around the LLM provider.

An invocation runs in two phases, each with its own retry budget:

    primary phase:  Attempting(primary, 0..max_retries)
    fallback phase: Attempting(fallback, 0..max_retries)

Within a phase, retriable errors (HTTP 429/5xx, transport timeouts, messages
that read like overload or unavailability) are retried after an
exponential, capped, jittered backoff. A non-retriable error, or a retriable
one on the last attempt, ends the phase. Ending the primary phase starts the
fallback phase; ending the fallback phase yields Exhausted with the last
error. At most 2 * (max_retries + 1) provider calls are made.
"""
import asyncio
import random
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, NamedTuple, Optional, Protocol, Union

import httpx

from app.core.logging import get_logger
from app.core.metrics import record_llm_exhausted, record_llm_fallback, record_llm_retry

logger = get_logger(__name__)

RETRIABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
RETRIABLE_MESSAGE_PATTERN = re.compile(
    r"temporarily|timeout|overload|unavailable|again later",
    re.IGNORECASE,
)


class TextGenerator(Protocol):
    async def generate(self, model: str, prompt: str) -> str:
        ...


@dataclass(frozen=True)
class InvocationSuccess:
    text: str
    model: str
    used_fallback: bool
    attempts: int


@dataclass(frozen=True)
class InvocationExhausted:
    error: Exception
    attempts: int


InvocationResult = Union[InvocationSuccess, InvocationExhausted]


class _PhaseOutcome(NamedTuple):
    text: Optional[str]
    error: Optional[Exception]
    calls: int


def error_status(error: Exception) -> Optional[int]:
    """HTTP status carried by a provider error, if any."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status", "status_code", "code"):
        value = getattr(error, attr, None)
        try:
            if value is not None:
                return int(value)
        except (TypeError, ValueError):
            continue
    return None


def is_retriable(error: Exception) -> bool:
    """True when an error looks transient and worth another attempt."""
    if getattr(error, "transient", False):
        return True
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, asyncio.TimeoutError)):
        return True
    if error_status(error) in RETRIABLE_STATUS_CODES:
        return True
    message = str(getattr(error, "message", None) or error)
    return bool(RETRIABLE_MESSAGE_PATTERN.search(message))


class ModelInvoker:
    """
    Runs prompts against a TextGenerator with retries and a fallback model.

    Args:
        provider: Object exposing `async generate(model, prompt) -> str`
        jitter_ms: Upper bound of the uniform random delay added to each backoff
        sleep: Awaitable sleep taking seconds (asyncio.sleep by default)
        rng: Random source for jitter
    """

    def __init__(
        self,
        provider: TextGenerator,
        jitter_ms: float = 300.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self._provider = provider
        self.jitter_ms = jitter_ms
        self._sleep = sleep
        self._rng = rng or random.Random()

    def backoff_delay_ms(self, attempt: int, base_ms: float, cap_ms: float) -> float:
        """min(cap, base * 2^attempt) plus uniform jitter in [0, jitter_ms]."""
        delay = min(cap_ms, base_ms * (2 ** attempt))
        return delay + self._rng.uniform(0, self.jitter_ms)

    async def _run_phase(
        self,
        model: str,
        prompt: str,
        max_retries: int,
        backoff_base_ms: float,
        backoff_cap_ms: float,
    ) -> _PhaseOutcome:
        attempt = 0
        while True:
            try:
                text = await self._provider.generate(model, prompt)
                return _PhaseOutcome(text=text, error=None, calls=attempt + 1)
            except Exception as exc:
                retriable = is_retriable(exc)
                if not retriable or attempt >= max_retries:
                    logger.warning(
                        "llm_phase_failed",
                        model=model,
                        attempts=attempt + 1,
                        retriable=retriable,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    return _PhaseOutcome(text=None, error=exc, calls=attempt + 1)

                delay_ms = self.backoff_delay_ms(attempt, backoff_base_ms, backoff_cap_ms)
                logger.warning(
                    "llm_retry_scheduled",
                    model=model,
                    attempt=attempt + 1,
                    delay_ms=round(delay_ms, 1),
                    error=str(exc),
                    status=error_status(exc),
                )
                record_llm_retry(model)
                await self._sleep(delay_ms / 1000.0)
                attempt += 1

    async def invoke(
        self,
        prompt: str,
        primary_model: str,
        fallback_model: Optional[str],
        max_retries: int,
        backoff_base_ms: float,
        backoff_cap_ms: float,
    ) -> InvocationResult:
        """
        Obtain a completion, trying the primary model then the fallback model.

        The fallback phase only runs when `fallback_model` is set and differs
        from `primary_model`.
        """
        max_retries = max(0, max_retries)
        phases = [(primary_model, False)]
        if fallback_model and fallback_model != primary_model:
            phases.append((fallback_model, True))

        total_calls = 0
        last_error: Optional[Exception] = None

        for model, is_fallback in phases:
            if is_fallback:
                record_llm_fallback()
                logger.warning(
                    "llm_fallback_model_engaged",
                    primary_model=primary_model,
                    fallback_model=model,
                    error=str(last_error),
                )

            outcome = await self._run_phase(
                model, prompt, max_retries, backoff_base_ms, backoff_cap_ms
            )
            total_calls += outcome.calls
            if outcome.error is None:
                return InvocationSuccess(
                    text=outcome.text or "",
                    model=model,
                    used_fallback=is_fallback,
                    attempts=total_calls,
                )
            last_error = outcome.error

        record_llm_exhausted()
        logger.warning(
            "llm_invocation_exhausted",
            primary_model=primary_model,
            fallback_model=fallback_model,
            attempts=total_calls,
            error=str(last_error),
            error_type=type(last_error).__name__,
        )
        return InvocationExhausted(error=last_error, attempts=total_calls)
