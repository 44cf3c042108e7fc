"""Pydantic models for stored records."""

from .telemetry import CarbonOffset, TelemetryRecord

__all__ = ["CarbonOffset", "TelemetryRecord"]
