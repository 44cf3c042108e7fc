"""
Advice pipeline: telemetry window in, carbon-reduction strategies out.

Paths through a request:
- cache_hit:  a fresh cached payload for (window_hours, top_n) is returned
- no_data:    the window holds no telemetry; an empty payload is cached
- model:      the model produced a usable JSON payload
- heuristic:  the model path failed (exhausted or unparsable); deterministic
              strategies are built from the same snapshot
- safety_net: anything unexpected (store outage included) is logged and
              answered with heuristic strategies over whatever context exists

Callers always receive a structurally valid AdvicePayload.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.core.config import AdviceSettings, get_advice_settings
from app.core.logging import get_logger
from app.core.metrics import record_advice_path
from app.core.tracing import get_tracer
from app.models.telemetry import utc_now
from app.services.ai.cache import ResultCache
from app.services.ai.heuristic import synthesize
from app.services.ai.invoker import InvocationSuccess, ModelInvoker
from app.services.ai.llm_client import build_llm_client
from app.services.ai.parser import parse_model_json
from app.services.ai.prompt import build_strategy_prompt
from app.services.ai.schema import AdvicePayload, Snapshot, coerce_model_payload
from app.services.ai.snapshot import build_snapshot
from app.services.telemetry.store import TelemetryStore, get_telemetry_store

logger = get_logger(__name__)

NO_DATA_NOTE = "No recent data to analyze."
UNPARSABLE_NOTE = "Heuristic fallback used (model output could not be parsed)."

MIN_WINDOW_HOURS, MAX_WINDOW_HOURS = 1, 48
MIN_TOP_N, MAX_TOP_N = 1, 10
DEFAULT_WINDOW_HOURS = 6
DEFAULT_TOP_N = 5


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, int(value)))


class AdvicePipeline:
    """
    Orchestrates cache, snapshot, model invocation, parsing and fallback.

    The pipeline owns its ResultCache, so every instance starts empty.
    """

    def __init__(
        self,
        store: TelemetryStore,
        invoker: ModelInvoker,
        settings: AdviceSettings,
        cache: Optional[ResultCache] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._invoker = invoker
        self.settings = settings
        self.cache = cache if cache is not None else ResultCache()
        self._now = now

    async def generate(
        self,
        window_hours: int = DEFAULT_WINDOW_HOURS,
        top_n: int = DEFAULT_TOP_N,
        bypass_cache: bool = False,
    ) -> AdvicePayload:
        """
        Produce advice for the last `window_hours` of telemetry.

        Never raises for provider, parsing or store failures.
        """
        hours = clamp(window_hours, MIN_WINDOW_HOURS, MAX_WINDOW_HOURS)
        top_n = clamp(top_n, MIN_TOP_N, MAX_TOP_N)
        key = (hours, top_n)

        with get_tracer().start_as_current_span("ai.strategies") as span:
            span.set_attribute("ai.window_hours", hours)
            span.set_attribute("ai.top_n", top_n)
            span.set_attribute("ai.bypass_cache", bypass_cache)

            if not bypass_cache:
                cached = self.cache.get(key)
                if cached is not None:
                    record_advice_path("cache_hit")
                    span.set_attribute("ai.path", "cache_hit")
                    return cached.model_copy(update={"cached": True})

            snapshot: Optional[Snapshot] = None
            try:
                end = self._now()
                start = end - timedelta(hours=hours)
                records = await asyncio.to_thread(self._store.query, start, end)

                if not records:
                    payload = AdvicePayload(window_hours=hours, note=NO_DATA_NOTE)
                    self.cache.put(key, payload, self.settings.cache_ttl_ms)
                    record_advice_path("no_data")
                    span.set_attribute("ai.path", "no_data")
                    logger.info("ai_strategies_no_data", window_hours=hours)
                    return payload

                snapshot = build_snapshot(records, hours)
                payload, path = await self._advise(snapshot, top_n)
                self.cache.put(key, payload, self.settings.cache_ttl_ms)

                record_advice_path(path)
                span.set_attribute("ai.path", path)
                logger.info(
                    "ai_strategies_completed",
                    path=path,
                    window_hours=hours,
                    top_n=top_n,
                    departments=len(payload.strategies_by_department),
                    used_fallback_model=payload.used_fallback_model,
                )
                return payload

            except Exception as exc:
                logger.error(
                    "ai_strategies_safety_net",
                    window_hours=hours,
                    top_n=top_n,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )
                record_advice_path("safety_net")
                span.set_attribute("ai.path", "safety_net")
                span.record_exception(exc)
                return synthesize(snapshot or Snapshot(window_hours=hours), top_n)

    async def _advise(self, snapshot: Snapshot, top_n: int):
        """Model path with heuristic degradation. Returns (payload, path)."""
        settings = self.settings
        result = await self._invoker.invoke(
            build_strategy_prompt(snapshot),
            primary_model=settings.primary_model,
            fallback_model=settings.fallback_model,
            max_retries=settings.max_retries,
            backoff_base_ms=settings.backoff_base_ms,
            backoff_cap_ms=settings.backoff_cap_ms,
        )

        if not isinstance(result, InvocationSuccess):
            logger.warning(
                "ai_strategies_heuristic_fallback",
                reason="model_exhausted",
                error=str(result.error),
            )
            return synthesize(snapshot, top_n), "heuristic"

        parsed = parse_model_json(result.text)
        blocks = coerce_model_payload(parsed) if parsed is not None else None
        if blocks is None or (
            snapshot.departments
            and not blocks["strategies_by_department"]
            and not blocks["global_recommendations"]
        ):
            logger.warning(
                "ai_strategies_heuristic_fallback",
                reason="unparsable_model_output",
                model=result.model,
                text_length=len(result.text),
            )
            return synthesize(snapshot, top_n, note=UNPARSABLE_NOTE), "heuristic"

        departments = sorted(
            blocks["strategies_by_department"],
            key=lambda d: d.summary.co2_kg,
            reverse=True,
        )[:top_n]
        payload = AdvicePayload(
            window_hours=snapshot.window_hours,
            strategies_by_department=departments,
            global_recommendations=blocks["global_recommendations"],
            used_fallback_model=result.used_fallback,
            is_heuristic=False,
        )
        return payload, "model"


_advice_pipeline: Optional[AdvicePipeline] = None


def build_advice_pipeline(
    store: Optional[TelemetryStore] = None,
    settings: Optional[AdviceSettings] = None,
) -> AdvicePipeline:
    settings = settings or get_advice_settings()
    invoker = ModelInvoker(build_llm_client(settings), jitter_ms=settings.backoff_jitter_ms)
    return AdvicePipeline(
        store=store or get_telemetry_store(),
        invoker=invoker,
        settings=settings,
    )


def get_advice_pipeline() -> AdvicePipeline:
    """Global singleton accessor for the advice pipeline."""
    global _advice_pipeline
    if _advice_pipeline is None:
        _advice_pipeline = build_advice_pipeline()
    return _advice_pipeline


def set_advice_pipeline(pipeline: Optional[AdvicePipeline]) -> None:
    global _advice_pipeline
    _advice_pipeline = pipeline
