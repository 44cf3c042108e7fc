"""
Telemetry ingestion and emission queries.

POST /emissions
GET  /emissions/recent?limit=50&from=&to=&department=
GET  /emissions/hotspots
GET  /emissions/predict?minutesAhead=60&department=
"""
import asyncio
import math
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Header, HTTPException, Query
from pydantic import ValidationError

from app.core.config import get_alert_threshold_kg
from app.core.logging import get_logger
from app.core.metrics import record_telemetry_ingested
from app.models.telemetry import TelemetryRecord
from app.services.notifications.alerts import HighEmissionAlert, get_alert_dispatcher
from app.services.reports.summary import Hotspot, compute_hotspots
from app.services.telemetry.prediction import predict_co2
from app.services.telemetry.store import TelemetryStoreError, get_telemetry_store

logger = get_logger(__name__)

router = APIRouter()

NUMERIC_FIELDS = ("current", "voltage", "power", "energy", "co2_emissions")
PREDICTION_RECORD_LIMIT = 5000


def _is_number(value: Any) -> bool:
    # bool is an int subclass but is not a reading
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def parse_reading(body: Dict[str, Any]) -> TelemetryRecord:
    """Validate an ingestion body; raises HTTPException(400) when invalid."""
    department = body.get("department")
    try:
        scope_value = float(body.get("scope"))
    except (TypeError, ValueError):
        scope_value = None
    scope = int(scope_value) if scope_value in (1.0, 2.0, 3.0) else None
    if not department or scope is None:
        raise HTTPException(
            status_code=400, detail="department and scope (1|2|3) are required"
        )
    if not all(_is_number(body.get(field)) for field in NUMERIC_FIELDS):
        raise HTTPException(status_code=400, detail="numeric fields must be numbers")

    fields = {field: body[field] for field in NUMERIC_FIELDS}
    if body.get("timestamp"):
        fields["timestamp"] = body["timestamp"]
    try:
        return TelemetryRecord(department=str(department), scope=scope, **fields)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid data: {e.errors()[0]['msg']}")


def parse_datetime_param(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 query parameter; unparsable values are ignored."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("query_datetime_ignored", value=value)
        return None


def maybe_alert(record: TelemetryRecord) -> None:
    threshold = get_alert_threshold_kg()
    if threshold <= 0 or record.co2_emissions <= threshold:
        return
    logger.info(
        "high_emission_detected",
        department=record.department,
        co2_emissions=record.co2_emissions,
        threshold=threshold,
    )
    get_alert_dispatcher().submit(
        HighEmissionAlert(
            department=record.department,
            scope=record.scope,
            value=record.co2_emissions,
            timestamp=record.timestamp,
        )
    )


@router.post("")
async def ingest_emission(
    body: Dict[str, Any] = Body(...),
    x_ingest_token: Optional[str] = Header(None, alias="X-INGEST-TOKEN"),
):
    """
    Store one telemetry reading.

    When INGEST_TOKEN is set the X-INGEST-TOKEN header must match it.
    Readings above ALERT_CO2_THRESHOLD_KG notify the department manager.
    """
    expected = os.getenv("INGEST_TOKEN")
    if expected and x_ingest_token != expected:
        logger.warning("emission_ingest_unauthorized")
        raise HTTPException(status_code=401, detail="Unauthorized")

    record = parse_reading(body)
    try:
        await asyncio.to_thread(get_telemetry_store().insert, record)
    except TelemetryStoreError as e:
        raise HTTPException(status_code=400, detail=f"Invalid data: {e}")

    record_telemetry_ingested(record.department)
    logger.info(
        "emission_ingested",
        department=record.department,
        scope=record.scope,
        co2_emissions=record.co2_emissions,
    )
    maybe_alert(record)
    return {"status": "ok"}


@router.get("/recent", response_model=List[TelemetryRecord])
async def recent_emissions(
    limit: int = Query(50, description="Records to return (clamped to 1-500)"),
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
):
    """Newest readings first, optionally filtered by time range and department."""
    limit = max(1, min(500, limit))
    try:
        return await asyncio.to_thread(
            get_telemetry_store().query,
            parse_datetime_param(from_),
            parse_datetime_param(to),
            department,
            limit,
            True,
        )
    except TelemetryStoreError:
        raise HTTPException(status_code=500, detail="Failed to fetch recent emissions")


@router.get("/hotspots", response_model=List[Hotspot])
async def emission_hotspots():
    """Top 3 departments by total CO2."""
    try:
        records = await asyncio.to_thread(get_telemetry_store().query)
    except TelemetryStoreError:
        raise HTTPException(status_code=500, detail="Failed to compute hotspots")
    return compute_hotspots(records)


@router.get("/predict")
async def predict_emissions(
    minutesAhead: int = Query(60, description="Forecast horizon in minutes (clamped to 1-1440)"),
    department: Optional[str] = Query(None),
):
    minutes = max(1, min(24 * 60, minutesAhead))
    try:
        records = await asyncio.to_thread(
            get_telemetry_store().query,
            None,
            None,
            department,
            PREDICTION_RECORD_LIMIT,
        )
    except TelemetryStoreError:
        raise HTTPException(status_code=500, detail="Failed to compute prediction")
    prediction = predict_co2(records, minutes)
    if prediction.prediction is None:
        return {"prediction": None, "message": prediction.message}
    return prediction.model_dump(exclude={"message"})
