"""
Telemetry snapshot aggregation.

Reduces the readings of a time window into per-department and site-wide
rollups. Sums are accumulated at full precision; only the exposed fields are
rounded (co2/energy to 3 decimals, averages to 2).
"""
import math
from typing import Dict, Iterable, Optional

from app.models.telemetry import TelemetryRecord
from app.services.ai.schema import DepartmentRollup, Snapshot, SnapshotTotals

UNKNOWN_DEPARTMENT = "Unknown"


def _finite(value: Optional[float]) -> float:
    # inf and nan readings count as zero
    return value if value is not None and math.isfinite(value) else 0.0


class _Accumulator:
    __slots__ = ("co2", "energy", "power", "current", "samples", "scope")

    def __init__(self, scope: int = 1):
        self.co2 = 0.0
        self.energy = 0.0
        self.power = 0.0
        self.current = 0.0
        self.samples = 0
        self.scope = scope

    def add(self, record: TelemetryRecord) -> None:
        self.co2 += _finite(record.co2_emissions)
        self.energy += _finite(record.energy)
        self.power += _finite(record.power)
        self.current += _finite(record.current)
        self.samples += 1

    def average(self, total: float) -> float:
        return round(total / self.samples, 2) if self.samples else 0.0


def build_snapshot(records: Iterable[TelemetryRecord], window_hours: int) -> Snapshot:
    """
    Aggregate telemetry records into a Snapshot.

    Departments appear in the order they are first seen; a department's scope
    is taken from its first record.
    """
    by_department: Dict[str, _Accumulator] = {}
    totals = _Accumulator()

    for record in records:
        department = record.department or UNKNOWN_DEPARTMENT
        bucket = by_department.get(department)
        if bucket is None:
            bucket = by_department[department] = _Accumulator(scope=record.scope or 1)
        bucket.add(record)
        totals.add(record)

    return Snapshot(
        window_hours=window_hours,
        totals=SnapshotTotals(
            co2_kg=round(totals.co2, 3),
            energy_kWh=round(totals.energy, 3),
            avg_power_W=totals.average(totals.power),
            avg_current_A=totals.average(totals.current),
        ),
        departments=[
            DepartmentRollup(
                department=name,
                scope=acc.scope,
                co2_kg=round(acc.co2, 3),
                energy_kWh=round(acc.energy, 3),
                avg_power_W=acc.average(acc.power),
                avg_current_A=acc.average(acc.current),
                sample_count=acc.samples,
            )
            for name, acc in by_department.items()
        ],
    )
