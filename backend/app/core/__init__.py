"""
Core application modules.
Contains configuration, logging, metrics, tracing and the Supabase connection.
"""
from .config import AdviceSettings, get_advice_settings
from .database import get_supabase_client, supabase_configured

__all__ = ["AdviceSettings", "get_advice_settings", "get_supabase_client", "supabase_configured"]
