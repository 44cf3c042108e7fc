"""Telemetry storage, sample data and forecasting."""

from .store import (
    InMemoryTelemetryStore,
    SupabaseTelemetryStore,
    TelemetryStore,
    TelemetryStoreError,
    get_telemetry_store,
    set_telemetry_store,
)

__all__ = [
    "InMemoryTelemetryStore",
    "SupabaseTelemetryStore",
    "TelemetryStore",
    "TelemetryStoreError",
    "get_telemetry_store",
    "set_telemetry_store",
]
