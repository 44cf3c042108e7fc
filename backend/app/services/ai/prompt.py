"""
Prompt for the carbon-reduction strategy model.
"""
from app.services.ai.schema import Snapshot

STRATEGY_PROMPT = (
    "You are an industrial energy & carbon reduction expert.\n"
    "Given the snapshot of recent telemetry, propose practical, high-ROI reduction strategies.\n"
    "Rules:\n"
    "- Output strict JSON only (no commentary).\n"
    "- For each department, list 2–4 strategies.\n"
    '- Each strategy: {title, rationale, expected_impact_kg_co2_per_day, '
    'difficulty: "low|med|high", actions: [..]}\n'
    '- Group them as "strategies_by_department": [{department, '
    "summary: {co2_kg, energy_kWh}, strategies: [..]}].\n"
    '- Also include "global_recommendations" for site-wide actions (2–5 items).\n'
    "- Be conservative; if unsure, use low impacts (0–5 kg/day).\n"
    "- Prefer strategies inferred from current (A), power (W), energy (kWh) patterns.\n"
    "- If abnormal spikes or idle load appear, call that out.\n"
    "- DO NOT suggest scope 2/3; only scope 1, on-site actions.\n"
    "SNAPSHOT: "
)


def build_strategy_prompt(snapshot: Snapshot) -> str:
    return STRATEGY_PROMPT + snapshot.model_dump_json()
