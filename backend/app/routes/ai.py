"""
AI carbon-reduction strategies endpoint.

GET {API_BASE}/ai/strategies?hours=6&topN=5&noCache=1

`window_hours`, `top_n` and `bypass_cache` are accepted as aliases. The
endpoint always answers 200 with an advice payload; provider, parsing and
store failures degrade to heuristic strategies.
"""
import math
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from app.core.logging import get_logger
from app.services.ai.heuristic import synthesize
from app.services.ai.pipeline import (
    DEFAULT_TOP_N,
    DEFAULT_WINDOW_HOURS,
    MAX_TOP_N,
    MAX_WINDOW_HOURS,
    MIN_TOP_N,
    MIN_WINDOW_HOURS,
    clamp,
    get_advice_pipeline,
)
from app.services.ai.schema import Snapshot

logger = get_logger(__name__)

router = APIRouter()

TRUTHY = {"1", "true", "yes", "on"}


def parse_int(value: Optional[str], default: int) -> int:
    """Lenient integer parsing: anything unparsable means the default."""
    if value is None or not str(value).strip():
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return int(number) if math.isfinite(number) else default


def parse_flag(value: Optional[str]) -> bool:
    return value is not None and str(value).strip().lower() in TRUTHY


@router.get("/strategies")
async def get_strategies(
    hours: Optional[str] = Query(None, description="Telemetry window in hours (1-48)"),
    window_hours: Optional[str] = Query(None, description="Alias of hours"),
    topN: Optional[str] = Query(None, description="Departments to advise on (1-10)"),
    top_n: Optional[str] = Query(None, description="Alias of topN"),
    noCache: Optional[str] = Query(None, description="Bypass the result cache when truthy"),
    bypass_cache: Optional[str] = Query(None, description="Alias of noCache"),
):
    """
    Carbon-reduction strategies for the busiest departments of the window.

    Returns:
        window_hours, strategies_by_department, global_recommendations,
        used_fallback_model, is_heuristic, note, cached
    """
    window = clamp(
        parse_int(hours if hours is not None else window_hours, DEFAULT_WINDOW_HOURS),
        MIN_WINDOW_HOURS,
        MAX_WINDOW_HOURS,
    )
    limit = clamp(
        parse_int(topN if topN is not None else top_n, DEFAULT_TOP_N),
        MIN_TOP_N,
        MAX_TOP_N,
    )
    bypass = parse_flag(noCache) or parse_flag(bypass_cache)

    try:
        payload = await get_advice_pipeline().generate(
            window_hours=window, top_n=limit, bypass_cache=bypass
        )
    except Exception as e:
        # Pipeline construction itself failed (e.g. bad store configuration)
        logger.error(
            "ai_strategies_endpoint_error",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        payload = synthesize(Snapshot(window_hours=window), limit)

    return JSONResponse(status_code=200, content=payload.model_dump(mode="json"))
