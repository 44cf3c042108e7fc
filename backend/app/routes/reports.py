"""
Net-zero progress reports.

GET /reports/summary?from=&to=&department=
"""
import asyncio
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app.core.logging import get_logger
from app.routes.emissions import parse_datetime_param
from app.services.reports.summary import EmissionsSummary, compute_summary
from app.services.telemetry.store import TelemetryStoreError, get_telemetry_store

logger = get_logger(__name__)

router = APIRouter()


@router.get("/summary", response_model=EmissionsSummary)
async def summary(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
):
    """
    Emission totals, offsets and progress toward net zero.

    The time range and department filter apply to emissions only; offsets
    are always totalled over all records.
    """
    store = get_telemetry_store()
    try:
        records = await asyncio.to_thread(
            store.query,
            parse_datetime_param(from_),
            parse_datetime_param(to),
            department,
        )
        total_offsets = await asyncio.to_thread(store.total_offsets)
    except TelemetryStoreError as e:
        logger.error("report_summary_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to get summary")
    return compute_summary(records, total_offsets)
