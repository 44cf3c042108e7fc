"""
Development helpers, mounted only outside production.

POST /dev/seed
"""
import asyncio

from fastapi import APIRouter, HTTPException

from app.core.logging import get_logger
from app.services.telemetry.sample_data import generate_sample_records
from app.services.telemetry.store import TelemetryStoreError, get_telemetry_store

logger = get_logger(__name__)

router = APIRouter()


@router.post("/seed")
async def seed():
    """Insert a batch of sample telemetry ending now."""
    records = generate_sample_records()
    try:
        inserted = await asyncio.to_thread(get_telemetry_store().insert_many, records)
    except TelemetryStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    logger.info("dev_seed_completed", inserted=inserted)
    return {"inserted": inserted}
