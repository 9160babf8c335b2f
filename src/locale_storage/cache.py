"""In-process TTL cache fronting the persisted detection history."""

import json
from collections.abc import Callable

import structlog

from .models import CACHE_TTL_MS, DetectionHistory, now_ms

logger = structlog.get_logger()


class HistoryCache:
    """Holds one history snapshot; expiry is checked lazily on read.

    Not the system of record: every mutation elsewhere clears it, and a miss
    always falls back to the backend.
    """

    def __init__(self, ttl_ms: int = CACHE_TTL_MS, clock: Callable[[], int] = now_ms):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._history: DetectionHistory | None = None
        self._cached_at: int | None = None

    def _is_fresh(self) -> bool:
        if self._history is None or self._cached_at is None:
            return False
        return self._clock() - self._cached_at < self.ttl_ms

    def get_cached_history(self) -> DetectionHistory | None:
        if self._history is None:
            return None
        if not self._is_fresh():
            logger.debug("cache.expired", age_ms=self._clock() - (self._cached_at or 0))
            self.clear_cache()
            return None
        return self._history.copy()

    def update_cache(self, history: DetectionHistory):
        self._history = history.copy()
        self._cached_at = self._clock()

    def clear_cache(self):
        self._history = None
        self._cached_at = None

    def get_cache_status(self) -> dict:
        if not self._is_fresh():
            return {"is_cached": False, "cache_age": 0, "cache_size": 0}
        return {
            "is_cached": True,
            "cache_age": self._clock() - self._cached_at,
            "cache_size": len(json.dumps(self._history.to_dict())),
        }
