"""
Shared fixtures: telemetry record factory and isolation of the process-wide
store, advice pipeline and alert dispatcher.
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.models.telemetry import TelemetryRecord
from app.services.ai import pipeline as pipeline_module
from app.services.notifications import alerts as alerts_module
from app.services.telemetry import store as store_module
from app.services.telemetry.store import InMemoryTelemetryStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_record(
    department="Forging",
    co2=1.0,
    energy=2.0,
    power=100.0,
    current=1.0,
    voltage=230.0,
    scope=1,
    minutes_ago=10,
    now=NOW,
):
    return TelemetryRecord(
        timestamp=now - timedelta(minutes=minutes_ago),
        department=department,
        scope=scope,
        current=current,
        voltage=voltage,
        power=power,
        energy=energy,
        co2_emissions=co2,
    )


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def memory_store(monkeypatch):
    """Fresh in-memory store installed as the process-wide store."""
    store = InMemoryTelemetryStore()
    monkeypatch.setattr(store_module, "_telemetry_store", store)
    return store


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    monkeypatch.setattr(pipeline_module, "_advice_pipeline", None)
    monkeypatch.setattr(alerts_module, "_alert_dispatcher", None)
    monkeypatch.setattr(store_module, "_telemetry_store", None)
    yield
