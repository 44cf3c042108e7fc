"""
Unit tests for model output parsing and payload coercion.
"""
from app.services.ai.parser import parse_model_json
from app.services.ai.schema import StrategyItem, coerce_model_payload


class TestParseModelJson:
    """Extraction of the outermost JSON object."""

    def test_plain_json(self):
        assert parse_model_json('{"a": 1}') == {"a": 1}

    def test_markdown_fence_and_prose_are_ignored(self):
        text = 'Here you go:\n```json\n{"global_recommendations": []}\n```\nThanks!'
        assert parse_model_json(text) == {"global_recommendations": []}

    def test_nested_braces_use_last_closing_brace(self):
        text = 'x {"a": {"b": 2}} y'
        assert parse_model_json(text) == {"a": {"b": 2}}

    def test_no_braces_decodes_to_empty_object(self):
        assert parse_model_json("I cannot help with that.") == {}
        assert parse_model_json("") == {}
        assert parse_model_json(None) == {}

    def test_invalid_json_returns_none(self):
        assert parse_model_json('{"a": [1, 2,}') is None

    def test_reversed_braces_decode_to_empty_object(self):
        assert parse_model_json("} nothing here {") == {}


class TestCoerceModelPayload:
    """Validation of decoded model payloads."""

    def test_missing_lists_default_to_empty(self):
        blocks = coerce_model_payload({})
        assert blocks == {"strategies_by_department": [], "global_recommendations": []}

    def test_invalid_items_are_dropped(self):
        parsed = {
            "strategies_by_department": [
                {
                    "department": "Forging",
                    "summary": {"co2_kg": "12.5", "energy_kWh": None},
                    "strategies": [
                        {"title": "Shut down idle presses", "expected_impact_kg_co2_per_day": 4},
                        {"title": "", "expected_impact_kg_co2_per_day": 1},
                        "not a strategy",
                    ],
                },
                {"department": "Casting", "strategies": []},
                {"department": "", "strategies": [{"title": "Orphan"}]},
                42,
            ],
            "global_recommendations": [{"title": "Baseline"}, {"rationale": "no title"}],
        }

        blocks = coerce_model_payload(parsed)

        departments = blocks["strategies_by_department"]
        assert [d.department for d in departments] == ["Forging"]
        assert departments[0].summary.co2_kg == 12.5
        assert departments[0].summary.energy_kWh == 0.0
        assert [s.title for s in departments[0].strategies] == ["Shut down idle presses"]
        assert [g.title for g in blocks["global_recommendations"]] == ["Baseline"]

    def test_strategy_fields_are_normalized(self):
        item = StrategyItem.model_validate({
            "title": "Fix leaks",
            "expected_impact_kg_co2_per_day": -3,
            "difficulty": "Medium",
            "actions": "Walk the compressed air lines",
        })

        assert item.expected_impact_kg_co2_per_day == 0.0
        assert item.difficulty == "med"
        assert item.actions == ["Walk the compressed air lines"]

    def test_unknown_difficulty_and_non_numeric_impact(self):
        item = StrategyItem.model_validate({
            "title": "Retrofit lighting",
            "expected_impact_kg_co2_per_day": "a lot",
            "difficulty": "extreme",
        })

        assert item.expected_impact_kg_co2_per_day == 0.0
        assert item.difficulty == "med"
