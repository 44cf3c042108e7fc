"""
Supabase connection for the telemetry store.

When SUPABASE_URL / SUPABASE_SERVICE_KEY are not set the service runs on the
in-memory store instead (see app.services.telemetry.store).
"""
import os
from typing import Optional

from supabase import Client, create_client

from app.core import config  # noqa: F401  (loads .env before reading credentials)
from app.core.logging import get_logger

logger = get_logger(__name__)


def supabase_configured() -> bool:
    return bool(
        os.getenv("SUPABASE_URL")
        and (os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY"))
    )


def get_supabase_client() -> Optional[Client]:
    """Create and return a Supabase client, or None when unavailable."""
    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY")

    if not supabase_url or not supabase_key:
        logger.warning(
            "supabase_credentials_missing",
            message="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in .env"
        )
        return None

    if not supabase_url.startswith("http"):
        logger.error(
            "supabase_url_invalid",
            url=supabase_url,
            message="Should start with http:// or https://"
        )
        return None

    try:
        client = create_client(supabase_url, supabase_key)
        logger.info("supabase_client_created", url_prefix=supabase_url[:30])
        return client
    except Exception as e:
        logger.error(
            "supabase_client_creation_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return None
