"""
Pydantic models for the advice pipeline.

Snapshot / DepartmentRollup are the aggregated input handed to the model and
to the heuristic synthesizer; AdvicePayload is the unit cached and returned
to callers.
"""
import math
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

Difficulty = Literal["low", "med", "high"]

_DIFFICULTY_ALIASES = {
    "low": "low",
    "easy": "low",
    "med": "med",
    "medium": "med",
    "moderate": "med",
    "high": "high",
    "hard": "high",
}


class DepartmentRollup(BaseModel):
    department: str
    scope: int = 1
    co2_kg: float = 0.0
    energy_kWh: float = 0.0
    avg_power_W: float = 0.0
    avg_current_A: float = 0.0
    sample_count: int = 0


class SnapshotTotals(BaseModel):
    co2_kg: float = 0.0
    energy_kWh: float = 0.0
    avg_power_W: float = 0.0
    avg_current_A: float = 0.0


class Snapshot(BaseModel):
    window_hours: int
    totals: SnapshotTotals = Field(default_factory=SnapshotTotals)
    departments: List[DepartmentRollup] = Field(default_factory=list)


class StrategyItem(BaseModel):
    title: str = Field(..., min_length=1)
    rationale: str = ""
    expected_impact_kg_co2_per_day: float = Field(0.0, ge=0.0)
    difficulty: Difficulty = "med"
    actions: List[str] = Field(default_factory=list)

    @field_validator("expected_impact_kg_co2_per_day", mode="before")
    @classmethod
    def clamp_impact(cls, value: Any) -> float:
        try:
            impact = float(value)
        except (TypeError, ValueError):
            return 0.0
        return impact if math.isfinite(impact) and impact > 0 else 0.0

    @field_validator("difficulty", mode="before")
    @classmethod
    def normalize_difficulty(cls, value: Any) -> str:
        return _DIFFICULTY_ALIASES.get(str(value).strip().lower(), "med")

    @field_validator("actions", mode="before")
    @classmethod
    def coerce_actions(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(v) for v in value if v is not None]


class DepartmentSummary(BaseModel):
    co2_kg: float = 0.0
    energy_kWh: float = 0.0

    @field_validator("co2_kg", "energy_kWh", mode="before")
    @classmethod
    def default_number(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        return number if math.isfinite(number) else 0.0


class DepartmentStrategies(BaseModel):
    department: str = Field(..., min_length=1)
    summary: DepartmentSummary = Field(default_factory=DepartmentSummary)
    strategies: List[StrategyItem] = Field(..., min_length=1)


class AdvicePayload(BaseModel):
    """Advice returned by GET /ai/strategies."""

    window_hours: int
    strategies_by_department: List[DepartmentStrategies] = Field(default_factory=list)
    global_recommendations: List[StrategyItem] = Field(default_factory=list)
    used_fallback_model: bool = False
    is_heuristic: bool = False
    note: Optional[str] = None
    cached: bool = False


def _coerce_strategies(items: Any) -> List[StrategyItem]:
    if not isinstance(items, list):
        return []
    strategies = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            strategies.append(StrategyItem.model_validate(item))
        except ValidationError:
            continue
    return strategies


def coerce_model_payload(parsed: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn a decoded model response into validated building blocks.

    Missing lists default to empty; malformed strategy items are dropped, as
    are department entries left without a name or without any strategy.

    Returns:
        {"strategies_by_department": [...], "global_recommendations": [...]}
    """
    departments: List[DepartmentStrategies] = []
    raw_departments = parsed.get("strategies_by_department")
    if isinstance(raw_departments, list):
        for entry in raw_departments:
            if not isinstance(entry, dict):
                continue
            strategies = _coerce_strategies(entry.get("strategies"))
            summary = entry.get("summary") if isinstance(entry.get("summary"), dict) else {}
            try:
                departments.append(DepartmentStrategies(
                    department=str(entry.get("department") or "").strip(),
                    summary=DepartmentSummary.model_validate(summary),
                    strategies=strategies,
                ))
            except ValidationError:
                continue

    return {
        "strategies_by_department": departments,
        "global_recommendations": _coerce_strategies(parsed.get("global_recommendations")),
    }
