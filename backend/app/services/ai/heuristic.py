"""
Deterministic advice used whenever the model path cannot produce a payload.

No I/O and no randomness: the same snapshot and top_n always yield the same
strategies.
"""
import math
from typing import Any, List

from app.services.ai.schema import (
    AdvicePayload,
    DepartmentRollup,
    DepartmentStrategies,
    DepartmentSummary,
    Snapshot,
    StrategyItem,
)

HEURISTIC_NOTE = "Heuristic fallback used (model unavailable)."

IDLE_LOAD_FACTOR = 0.02
MAINTENANCE_FACTOR = 0.01


def _non_negative(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) and number > 0 else 0.0


def _department_strategies(co2_kg: float) -> List[StrategyItem]:
    return [
        StrategyItem(
            title="Target idle load reduction",
            rationale=(
                "Department shows significant cumulative CO₂; review "
                "off-shift consumption patterns."
            ),
            expected_impact_kg_co2_per_day=round(co2_kg * IDLE_LOAD_FACTOR, 2),
            difficulty="med",
            actions=[
                "Analyze 24h load curve",
                "Identify machines left energized",
                "Implement shutdown checklist",
            ],
        ),
        StrategyItem(
            title="Preventive maintenance energy tune-up",
            rationale=(
                "Routine calibration can trim avoidable energy waste in motors "
                "& compressors."
            ),
            expected_impact_kg_co2_per_day=round(co2_kg * MAINTENANCE_FACTOR, 2),
            difficulty="low",
            actions=[
                "Inspect motor bearings",
                "Verify sensor calibration",
                "Check compressed air leaks",
            ],
        ),
    ]


def _global_recommendations() -> List[StrategyItem]:
    return [
        StrategyItem(
            title="Establish energy performance baseline",
            rationale="A stable baseline enables early anomaly detection and prioritization.",
            expected_impact_kg_co2_per_day=3,
            difficulty="low",
            actions=[
                "Define baseline window",
                "Tag abnormal peaks",
                "Automate baseline drift alerts",
            ],
        ),
        StrategyItem(
            title="Implement real-time anomaly alerts",
            rationale="Faster reaction to spikes reduces wasted kWh and associated CO₂.",
            expected_impact_kg_co2_per_day=5,
            difficulty="med",
            actions=[
                "Set threshold rules",
                "Route alerts to operations chat",
                "Weekly review of false positives",
            ],
        ),
    ]


def synthesize(snapshot: Snapshot, top_n: int, note: str = HEURISTIC_NOTE) -> AdvicePayload:
    """
    Build heuristic advice for the `top_n` highest-emitting departments.

    Departments are ranked by co2_kg descending (ties keep snapshot order).
    Each gets an idle-load strategy worth 2% of its CO2 and a maintenance
    strategy worth 1%, alongside two fixed site-wide recommendations.
    """
    ranked: List[DepartmentRollup] = sorted(
        snapshot.departments,
        key=lambda d: _non_negative(d.co2_kg),
        reverse=True,
    )[:max(0, top_n)]

    by_department = []
    for rollup in ranked:
        co2_kg = _non_negative(rollup.co2_kg)
        by_department.append(DepartmentStrategies(
            department=rollup.department or "Unknown",
            summary=DepartmentSummary(
                co2_kg=co2_kg,
                energy_kWh=_non_negative(rollup.energy_kWh),
            ),
            strategies=_department_strategies(co2_kg),
        ))

    return AdvicePayload(
        window_hours=snapshot.window_hours,
        strategies_by_department=by_department,
        global_recommendations=_global_recommendations(),
        used_fallback_model=False,
        is_heuristic=True,
        note=note,
    )
