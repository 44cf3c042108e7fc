"""
Telemetry data store.

Two implementations share one interface:
- SupabaseTelemetryStore: tables `emission_data` and `carbon_offsets`
- InMemoryTelemetryStore: process-local lists, used when Supabase is not
  configured (local development) and in tests

Records come back sorted by timestamp (ascending unless newest_first).
"""
import math
from datetime import datetime, timezone
from threading import Lock
from typing import Iterable, List, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app.core.database import get_supabase_client, supabase_configured
from app.core.logging import get_logger
from app.models.telemetry import CarbonOffset, TelemetryRecord

logger = get_logger(__name__)

EMISSIONS_TABLE = "emission_data"
OFFSETS_TABLE = "carbon_offsets"


class TelemetryStoreError(Exception):
    """Raised when the backing store cannot serve a request."""


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


RowModel = TypeVar("RowModel", bound=BaseModel)


def validate_rows(model: Type[RowModel], rows: Optional[list], table: str) -> List[RowModel]:
    """Validate stored rows, skipping (and logging) rows that fail validation."""
    valid = []
    for row in rows or []:
        try:
            valid.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning("stored_row_skipped", table=table, error=e.errors()[0]["msg"])
    return valid


class TelemetryStore(Protocol):
    def query(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        department: Optional[str] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[TelemetryRecord]:
        ...

    def insert(self, record: TelemetryRecord) -> None:
        ...

    def insert_many(self, records: Iterable[TelemetryRecord]) -> int:
        ...

    def insert_offset(self, offset: CarbonOffset) -> None:
        ...

    def list_offsets(self, limit: int = 200) -> List[CarbonOffset]:
        ...

    def total_offsets(self) -> float:
        ...


class InMemoryTelemetryStore:
    """Thread-safe list-backed store."""

    def __init__(self):
        self._records: List[TelemetryRecord] = []
        self._offsets: List[CarbonOffset] = []
        self._lock = Lock()

    def query(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        department: Optional[str] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[TelemetryRecord]:
        start = as_utc(start) if start else None
        end = as_utc(end) if end else None
        with self._lock:
            items = [
                r for r in self._records
                if (start is None or r.timestamp >= start)
                and (end is None or r.timestamp <= end)
                and (department is None or r.department == department)
            ]
        items.sort(key=lambda r: r.timestamp, reverse=newest_first)
        if limit is not None:
            items = items[:limit]
        return items

    def insert(self, record: TelemetryRecord) -> None:
        record = record.model_copy(update={"timestamp": as_utc(record.timestamp)})
        with self._lock:
            self._records.append(record)

    def insert_many(self, records: Iterable[TelemetryRecord]) -> int:
        count = 0
        for record in records:
            self.insert(record)
            count += 1
        return count

    def insert_offset(self, offset: CarbonOffset) -> None:
        offset = offset.model_copy(update={"timestamp": as_utc(offset.timestamp)})
        with self._lock:
            self._offsets.append(offset)

    def list_offsets(self, limit: int = 200) -> List[CarbonOffset]:
        with self._lock:
            items = sorted(self._offsets, key=lambda o: o.timestamp, reverse=True)
        return items[:limit]

    def total_offsets(self) -> float:
        with self._lock:
            return sum(o.amount for o in self._offsets)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._offsets.clear()


class SupabaseTelemetryStore:
    """Store backed by Supabase (PostgREST) tables."""

    def __init__(self, client):
        self.client = client

    def query(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        department: Optional[str] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[TelemetryRecord]:
        try:
            request = self.client.table(EMISSIONS_TABLE).select("*")
            if start is not None:
                request = request.gte("timestamp", as_utc(start).isoformat())
            if end is not None:
                request = request.lte("timestamp", as_utc(end).isoformat())
            if department:
                request = request.eq("department", department)
            request = request.order("timestamp", desc=newest_first)
            if limit is not None:
                request = request.limit(limit)
            response = request.execute()
        except Exception as e:
            logger.error(
                "telemetry_query_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TelemetryStoreError(f"Telemetry query failed: {e}") from e

        return validate_rows(TelemetryRecord, response.data, EMISSIONS_TABLE)

    def insert(self, record: TelemetryRecord) -> None:
        self.insert_many([record])

    def insert_many(self, records: Iterable[TelemetryRecord]) -> int:
        rows = [r.model_dump(mode="json") for r in records]
        if not rows:
            return 0
        try:
            response = self.client.table(EMISSIONS_TABLE).insert(rows).execute()
        except Exception as e:
            logger.error(
                "telemetry_insert_failed",
                rows=len(rows),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TelemetryStoreError(f"Telemetry insert failed: {e}") from e
        return len(response.data or rows)

    def insert_offset(self, offset: CarbonOffset) -> None:
        try:
            self.client.table(OFFSETS_TABLE).insert(offset.model_dump(mode="json")).execute()
        except Exception as e:
            raise TelemetryStoreError(f"Offset insert failed: {e}") from e

    def list_offsets(self, limit: int = 200) -> List[CarbonOffset]:
        try:
            response = (
                self.client.table(OFFSETS_TABLE)
                .select("*")
                .order("timestamp", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            raise TelemetryStoreError(f"Offset query failed: {e}") from e
        return validate_rows(CarbonOffset, response.data, OFFSETS_TABLE)

    def total_offsets(self) -> float:
        try:
            response = self.client.table(OFFSETS_TABLE).select("amount").execute()
        except Exception as e:
            raise TelemetryStoreError(f"Offset query failed: {e}") from e
        amounts = (float(row.get("amount") or 0.0) for row in response.data or [])
        return sum(amount for amount in amounts if math.isfinite(amount))


_telemetry_store: Optional[TelemetryStore] = None


def get_telemetry_store() -> TelemetryStore:
    """Process-wide store: Supabase when configured, in-memory otherwise."""
    global _telemetry_store
    if _telemetry_store is None:
        client = get_supabase_client() if supabase_configured() else None
        if client is not None:
            _telemetry_store = SupabaseTelemetryStore(client)
            logger.info("telemetry_store_ready", backend="supabase")
        else:
            _telemetry_store = InMemoryTelemetryStore()
            logger.warning(
                "telemetry_store_in_memory",
                message="Supabase not configured; telemetry is kept in process memory only.",
            )
    return _telemetry_store


def set_telemetry_store(store: Optional[TelemetryStore]) -> None:
    """Replace the process-wide store (None resets to lazy initialisation)."""
    global _telemetry_store
    _telemetry_store = store
