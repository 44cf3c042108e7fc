"""
Environment-driven configuration.

Values are read from the process environment, optionally populated from a
`.env` file at the repository root. Malformed numeric values fall back to
their defaults (logged) so a typo in deployment config never takes the
advice endpoint down.
"""
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from app.core.logging import get_logger

logger = get_logger(__name__)

env_path = Path(__file__).parent.parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

# OpenAI-compatible endpoint of the Gemini API
DEFAULT_LLM_API_BASE = "https://generativelanguage.googleapis.com/v1beta/openai"


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("config_invalid_number", variable=name, value=raw, default=default)
        return default


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("config_invalid_number", variable=name, value=raw, default=default)
        return default


class AdviceSettings(BaseModel):
    """Tunables for the advice pipeline and its model provider."""

    api_base: str = DEFAULT_LLM_API_BASE
    api_key: Optional[str] = None
    primary_model: str = "gemini-1.5-flash"
    fallback_model: str = "gemini-1.5-flash-latest"
    timeout_seconds: float = Field(20.0, gt=0)
    max_retries: int = Field(4, ge=0)
    backoff_base_ms: float = Field(500.0, ge=0)
    backoff_cap_ms: float = Field(8000.0, ge=0)
    backoff_jitter_ms: float = Field(300.0, ge=0)
    cache_ttl_ms: float = Field(300_000.0, ge=0)

    @classmethod
    def from_env(cls) -> "AdviceSettings":
        return cls(
            api_base=os.getenv("LLM_API_BASE", DEFAULT_LLM_API_BASE),
            api_key=os.getenv("LLM_API_KEY") or None,
            primary_model=os.getenv("LLM_PRIMARY_MODEL", "gemini-1.5-flash"),
            fallback_model=os.getenv("LLM_FALLBACK_MODEL", "gemini-1.5-flash-latest"),
            timeout_seconds=env_float("LLM_TIMEOUT_SECONDS", 20.0),
            max_retries=max(0, env_int("LLM_MAX_RETRIES", 4)),
            backoff_base_ms=max(0.0, env_float("LLM_BACKOFF_BASE_MS", 500.0)),
            backoff_cap_ms=max(0.0, env_float("LLM_BACKOFF_CAP_MS", 8000.0)),
            backoff_jitter_ms=max(0.0, env_float("LLM_BACKOFF_JITTER_MS", 300.0)),
            cache_ttl_ms=max(0.0, env_float("AI_STRATEGIES_CACHE_TTL_MS", 300_000.0)),
        )


@lru_cache
def get_advice_settings() -> AdviceSettings:
    """Process-wide advice settings (read once)."""
    settings = AdviceSettings.from_env()
    logger.info(
        "advice_settings_loaded",
        primary_model=settings.primary_model,
        fallback_model=settings.fallback_model,
        max_retries=settings.max_retries,
        cache_ttl_ms=settings.cache_ttl_ms,
        api_key_configured=settings.api_key is not None,
    )
    return settings


def get_api_base() -> str:
    return os.getenv("API_BASE", "/api")


def get_environment() -> str:
    return os.getenv("ENVIRONMENT", "development").lower()


def get_alert_threshold_kg() -> float:
    """CO2 reading (kg) above which a high-emission alert is sent; 0 disables."""
    return max(0.0, env_float("ALERT_CO2_THRESHOLD_KG", 0.5))
