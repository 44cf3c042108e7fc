"""
Telemetry and offset records as stored by the data store.
"""
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TelemetryRecord(BaseModel):
    """A single electrical reading. Immutable once stored."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    department: str
    scope: Literal[1, 2, 3]
    current: float = Field(..., ge=0, allow_inf_nan=False, description="Current (A)")
    voltage: float = Field(..., ge=0, allow_inf_nan=False, description="Voltage (V)")
    power: float = Field(..., ge=0, allow_inf_nan=False, description="Power (W)")
    energy: float = Field(..., ge=0, allow_inf_nan=False, description="Energy (kWh)")
    co2_emissions: float = Field(..., ge=0, allow_inf_nan=False, description="CO2 emissions (kg)")


class CarbonOffset(BaseModel):
    """Offset purchase or project credit, in kg of CO2."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    description: str
    amount: float = Field(..., allow_inf_nan=False)
