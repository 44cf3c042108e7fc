"""
Extraction of the JSON object embedded in free-form model output.
"""
import json
from typing import Any, Dict, Optional

from app.core.logging import get_logger

logger = get_logger(__name__)


def parse_model_json(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decode the object between the first "{" and the last "}" of `text`.

    Models often wrap JSON in prose or markdown fences; anything outside the
    outermost braces is ignored. When either brace is missing the candidate
    is "{}".

    Returns:
        The decoded dict, or None when the candidate does not decode to a
        JSON object. Never raises.
    """
    trimmed = (text or "").strip()
    start = trimmed.find("{")
    end = trimmed.rfind("}")
    candidate = trimmed[start:end + 1] if start >= 0 and end >= start else "{}"

    try:
        decoded = json.loads(candidate)
    except (json.JSONDecodeError, RecursionError) as exc:
        logger.warning(
            "ai_response_parse_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            candidate_length=len(candidate),
        )
        return None

    if not isinstance(decoded, dict):
        return None
    return decoded
