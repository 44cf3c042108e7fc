"""
In-process TTL cache for computed advice payloads.

Key: (window_hours, top_n). Entries expire lazily: an expired entry is
removed only when its own key is read. There is no capacity bound; the key
space is at most 48 * 10 combinations.

Concurrent get/put on one key may race and the last put wins. Duplicate
computation is wasted work, never a wrong answer.
"""
import time
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from app.core.logging import get_logger
from app.core.metrics import record_cache_hit, record_cache_miss
from app.services.ai.schema import AdvicePayload

logger = get_logger(__name__)

CACHE_TYPE = "ai_strategies"

CacheKey = Tuple[int, int]


class CacheEntry(NamedTuple):
    payload: AdvicePayload
    expires_at: float


class ResultCache:
    """
    TTL-keyed memoization of advice payloads.

    Args:
        clock: Returns the current time in seconds (monotonic by default).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}

    def get(self, key: CacheKey) -> Optional[AdvicePayload]:
        """Return the cached payload, or None on a miss or an expired entry."""
        entry = self._entries.get(key)
        if entry is not None and self._clock() < entry.expires_at:
            record_cache_hit(CACHE_TYPE)
            logger.debug("cache_hit", cache_type=CACHE_TYPE, key=key)
            return entry.payload

        if entry is not None:
            self._entries.pop(key, None)
            logger.debug("cache_expired", cache_type=CACHE_TYPE, key=key)
        record_cache_miss(CACHE_TYPE)
        return None

    def put(self, key: CacheKey, payload: AdvicePayload, ttl_ms: float) -> None:
        expires_at = self._clock() + ttl_ms / 1000.0
        self._entries[key] = CacheEntry(payload=payload, expires_at=expires_at)
        logger.debug("cache_set", cache_type=CACHE_TYPE, key=key, ttl_ms=ttl_ms)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries
