"""
Synthetic telemetry for development environments.
"""
import random
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.models.telemetry import TelemetryRecord

DEPARTMENTS = ["Forging", "Casting", "Assembly", "Packaging"]


def generate_sample_records(
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> List[TelemetryRecord]:
    """
    Build 80 readings spread over the last 80 minutes across four departments,
    plus 10 scope-3 heavy "Melting" readings in the last 50 minutes.
    """
    now = now or datetime.now(timezone.utc)
    rng = rng or random.Random()
    records: List[TelemetryRecord] = []

    for i in range(80):
        current = 2 + rng.random() * 3
        voltage = 220 + rng.random() * 20
        power = current * voltage * 0.5
        energy = power / 1000
        records.append(TelemetryRecord(
            timestamp=now - timedelta(minutes=80 - i),
            department=DEPARTMENTS[i % len(DEPARTMENTS)],
            scope=(i % 3) + 1,
            current=current,
            voltage=voltage,
            power=power,
            energy=energy,
            co2_emissions=energy * 0.005,
        ))

    for i in range(10):
        records.append(TelemetryRecord(
            timestamp=now - timedelta(minutes=i * 5),
            department="Melting",
            scope=3,
            current=1 + rng.random(),
            voltage=230,
            power=200 + rng.random() * 50,
            energy=0.3 + rng.random() * 0.1,
            co2_emissions=0.3 + rng.random() * 0.2,
        ))

    return records
