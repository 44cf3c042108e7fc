"""
Emission aggregates for dashboards and reports.
"""
from collections import defaultdict
from typing import Dict, List, Sequence

from pydantic import BaseModel

from app.models.telemetry import TelemetryRecord

HOTSPOT_LIMIT = 3


class Hotspot(BaseModel):
    department: str
    totalCO2: float


class EmissionsSummary(BaseModel):
    totalCO2: float
    totalEnergy: float
    totalOffsets: float
    netCO2: float
    progress: float
    hotspots: List[Hotspot]


def compute_hotspots(
    records: Sequence[TelemetryRecord], limit: int = HOTSPOT_LIMIT
) -> List[Hotspot]:
    """Departments ranked by total CO2, highest first."""
    totals: Dict[str, float] = defaultdict(float)
    for record in records:
        totals[record.department] += record.co2_emissions
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [Hotspot(department=d, totalCO2=co2) for d, co2 in ranked[:limit]]


def compute_summary(
    records: Sequence[TelemetryRecord], total_offsets: float
) -> EmissionsSummary:
    """
    Net-zero progress over a set of readings.

    netCO2 never goes below zero and progress is capped at 100%.
    """
    total_co2 = sum(r.co2_emissions for r in records)
    total_energy = sum(r.energy for r in records)
    net_co2 = max(0.0, total_co2 - total_offsets)
    progress = min(100.0, total_offsets / total_co2 * 100) if total_co2 > 0 else 0.0
    return EmissionsSummary(
        totalCO2=total_co2,
        totalEnergy=total_energy,
        totalOffsets=total_offsets,
        netCO2=net_co2,
        progress=progress,
        hotspots=compute_hotspots(records),
    )
