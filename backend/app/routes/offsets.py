"""
Carbon offsets.

POST /offsets
GET  /offsets
"""
import asyncio
import math
from typing import Any, Dict, List

from fastapi import APIRouter, Body, HTTPException
from pydantic import ValidationError

from app.core.logging import get_logger
from app.models.telemetry import CarbonOffset
from app.services.telemetry.store import TelemetryStoreError, get_telemetry_store

logger = get_logger(__name__)

router = APIRouter()

OFFSET_LIST_LIMIT = 200


@router.post("")
async def create_offset(body: Dict[str, Any] = Body(...)):
    """Record an offset; `description` and numeric `amount` (kg CO2) are required."""
    description = body.get("description")
    amount = body.get("amount")
    if (
        not description
        or not isinstance(amount, (int, float))
        or isinstance(amount, bool)
        or not math.isfinite(amount)
    ):
        raise HTTPException(
            status_code=400, detail="description and numeric amount are required"
        )

    fields = {"description": str(description), "amount": float(amount)}
    if body.get("timestamp"):
        fields["timestamp"] = body["timestamp"]
    try:
        offset = CarbonOffset(**fields)
        await asyncio.to_thread(get_telemetry_store().insert_offset, offset)
    except (ValidationError, TelemetryStoreError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid data: {e}")

    logger.info("offset_recorded", amount=offset.amount)
    return {"status": "ok"}


@router.get("", response_model=List[CarbonOffset])
async def list_offsets():
    """Newest offsets first."""
    try:
        return await asyncio.to_thread(get_telemetry_store().list_offsets, OFFSET_LIST_LIMIT)
    except TelemetryStoreError:
        raise HTTPException(status_code=500, detail="Failed to fetch offsets")
