"""Detection-history core: cache-fronted reads, capped prepend-on-add writes."""

import time
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from observability import Metrics

from .backends import LocalStore
from .cache import HistoryCache
from .models import (
    DEFAULT_MAX_AGE_MS,
    MAX_HISTORY_ENTRIES,
    DetectionHistory,
    DetectionRecord,
    Locale,
    OperationResult,
    StorageKey,
    enum_value,
    now_ms,
)
from .validation import parse_detection, parse_history

logger = structlog.get_logger()

HISTORY_KEY = StorageKey.LOCALE_DETECTION_HISTORY


class HistoryStore:
    """Owns the persisted ``DetectionHistory`` aggregate.

    Reads go cache -> backend -> synthesized default. Writes persist first and
    invalidate the cache afterwards, so a read in the same process always
    observes the write.
    """

    def __init__(
        self,
        local: LocalStore,
        cache: HistoryCache,
        max_records: int = MAX_HISTORY_ENTRIES,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        allowed_locales: Iterable[str] | None = None,
        clock: Callable[[], int] = now_ms,
        metrics: Metrics | None = None,
    ):
        self.local = local
        self.cache = cache
        self.max_records = max_records
        self.max_age_ms = max_age_ms
        self.allowed_locales = frozenset(allowed_locales) if allowed_locales else None
        self.clock = clock
        self.metrics = metrics or Metrics()

    def create_default_history(self) -> DetectionHistory:
        return DetectionHistory(history=[], last_updated=self.clock(), total_detections=0)

    def get_detection_history(self) -> OperationResult:
        start = time.perf_counter()

        def elapsed() -> float:
            return (time.perf_counter() - start) * 1000

        cached = self.cache.get_cached_history()
        if cached is not None:
            self.metrics.counter("history.cache_hit")
            self.metrics.record("history.read.cache", elapsed())
            return OperationResult(
                success=True, data=cached, source="memory", response_time=elapsed()
            )

        self.metrics.counter("history.cache_miss")
        try:
            raw = self.local.get(HISTORY_KEY)
            if raw is None:
                history = self.create_default_history()
                saved = self.local.set(HISTORY_KEY, history.to_dict())
                if not saved.success:
                    return OperationResult(
                        success=False, error=saved.error, source="localStorage"
                    )
                self.cache.update_cache(history)
                logger.info("history.default_created")
            else:
                parsed = parse_history(raw, now=self.clock(), allowed=self.allowed_locales)
                if not parsed.ok:
                    logger.warning("history.invalid_data", reason=parsed.reason)
                    return OperationResult(
                        success=False,
                        error="Invalid history data format",
                        source="localStorage",
                        response_time=elapsed(),
                    )
                history = parsed.value
                self.cache.update_cache(history)
        except Exception as e:
            logger.error("history.read_failed", error=str(e))
            return OperationResult(success=False, error=str(e), source="localStorage")

        self.metrics.record("history.read.backend", elapsed())
        return OperationResult(
            success=True, data=history, source="localStorage", response_time=elapsed()
        )

    def current_history(self) -> DetectionHistory:
        """Loaded history for read-only views; empty when unreadable."""
        result = self.get_detection_history()
        if result.success:
            return result.data
        return DetectionHistory(history=[], last_updated=self.clock(), total_detections=0)

    def update_detection_history(
        self, history: DetectionHistory, record: DetectionRecord
    ) -> DetectionHistory:
        updated = [record, *history.history][: self.max_records]
        return DetectionHistory(
            history=updated,
            last_updated=self.clock(),
            total_detections=history.total_detections + 1,
        )

    def add_detection_record(
        self,
        locale: Locale | str,
        source: str,
        confidence: float,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult:
        try:
            candidate = {
                "locale": enum_value(locale),
                "source": enum_value(source),
                "timestamp": self.clock(),
                "confidence": max(0.0, min(1.0, float(confidence))),
            }
            if metadata is not None:
                candidate["metadata"] = metadata
            parsed = parse_detection(candidate, now=self.clock(), allowed=self.allowed_locales)
            if not parsed.ok:
                return OperationResult(success=False, error=parsed.reason)

            current = self.get_detection_history()
            if not current.success:
                return OperationResult(success=False, error=current.error)

            history = self.update_detection_history(current.data, parsed.value)
            saved = self.save_history(history)
            if not saved.success:
                return saved
        except Exception as e:
            logger.error("history.add_failed", error=str(e))
            return OperationResult(success=False, error=str(e))

        logger.debug(
            "history.record_added",
            locale=candidate["locale"],
            source=candidate["source"],
            total=len(history),
        )
        return OperationResult(success=True, data=history, source="localStorage")

    def save_history(self, history: DetectionHistory) -> OperationResult:
        """Persist the aggregate, then invalidate the cache."""
        saved = self.local.set(HISTORY_KEY, history.to_dict())
        if not saved.success:
            logger.warning("history.save_failed", error=saved.error)
            return OperationResult(success=False, error=saved.error, source="localStorage")
        self.cache.clear_cache()
        return OperationResult(success=True, data=history, source="localStorage")

    def get_history_summary(self) -> dict:
        result = self.get_detection_history()
        if not result.success:
            return {
                "total_records": 0,
                "last_updated": 0,
                "oldest_record": None,
                "newest_record": None,
                "cache_status": self.cache.get_cache_status(),
            }
        history: DetectionHistory = result.data
        timestamps = [r.timestamp for r in history.history]
        return {
            "total_records": len(history),
            "last_updated": history.last_updated,
            "oldest_record": min(timestamps) if timestamps else None,
            "newest_record": max(timestamps) if timestamps else None,
            "cache_status": self.cache.get_cache_status(),
        }

    def needs_cleanup(self, max_age_ms: int | None = None) -> dict:
        """Advisory check; never mutates."""
        max_age = max_age_ms if max_age_ms is not None else self.max_age_ms
        result = self.get_detection_history()
        if not result.success:
            return {
                "needs_cleanup": False,
                "expired_count": 0,
                "total_count": 0,
                "recommendations": [f"Unable to read history: {result.error}"],
            }

        history: DetectionHistory = result.data
        now = self.clock()
        expired = sum(1 for r in history.history if now - r.timestamp > max_age)
        total = len(history)

        recommendations = []
        if expired:
            recommendations.append(f"Remove {expired} expired detection records")
        if total > self.max_records:
            recommendations.append(
                f"History holds {total} records; limit it to {self.max_records}"
            )
        if not recommendations:
            recommendations.append("Detection history is healthy; no cleanup needed")

        return {
            "needs_cleanup": expired > 0 or total > self.max_records,
            "expired_count": expired,
            "total_count": total,
            "recommendations": recommendations,
        }
