"""Read-only filters and groupings over a loaded detection history."""

import json
from dataclasses import dataclass
from typing import Literal

from .models import DetectionHistory, DetectionRecord, Locale, enum_value


@dataclass
class QueryConditions:
    """AND-combined filters for ``query_detections``. None means unfiltered."""

    locale: Locale | str | None = None
    source: str | None = None
    min_confidence: float | None = None
    max_confidence: float | None = None
    start_time: int | None = None
    end_time: int | None = None
    sort_by: Literal["timestamp", "confidence", "locale", "source"] = "timestamp"
    sort_order: Literal["asc", "desc"] = "desc"
    offset: int = 0
    limit: int | None = None


def get_recent_detections(history: DetectionHistory, limit: int = 10) -> list[DetectionRecord]:
    return history.history[: max(limit, 0)]


def get_detections_by_source(history: DetectionHistory, source: str) -> list[DetectionRecord]:
    source = enum_value(source)
    return [r for r in history.history if r.source == source]


def get_detections_by_locale(
    history: DetectionHistory, locale: Locale | str
) -> list[DetectionRecord]:
    locale = enum_value(locale)
    return [r for r in history.history if r.locale == locale]


def get_detections_by_time_range(
    history: DetectionHistory, start_time: int, end_time: int
) -> list[DetectionRecord]:
    """Records with ``start_time <= timestamp <= end_time``."""
    return [r for r in history.history if start_time <= r.timestamp <= end_time]


def get_detections_by_confidence(
    history: DetectionHistory, min_confidence: float, max_confidence: float = 1.0
) -> list[DetectionRecord]:
    return [r for r in history.history if min_confidence <= r.confidence <= max_confidence]


def _matches(record: DetectionRecord, conditions: QueryConditions) -> bool:
    if conditions.locale is not None and record.locale != enum_value(conditions.locale):
        return False
    if conditions.source is not None and record.source != enum_value(conditions.source):
        return False
    if conditions.min_confidence is not None and record.confidence < conditions.min_confidence:
        return False
    if conditions.max_confidence is not None and record.confidence > conditions.max_confidence:
        return False
    if conditions.start_time is not None and record.timestamp < conditions.start_time:
        return False
    if conditions.end_time is not None and record.timestamp > conditions.end_time:
        return False
    return True


def query_detections(history: DetectionHistory, conditions: QueryConditions) -> dict:
    """Filter, sort and page. Returns ``records``, ``total_count`` and ``has_more``."""
    matched = [r for r in history.history if _matches(r, conditions)]
    matched.sort(
        key=lambda r: getattr(r, conditions.sort_by),
        reverse=conditions.sort_order == "desc",
    )
    total = len(matched)
    start = max(conditions.offset, 0)
    end = start + conditions.limit if conditions.limit is not None else total
    return {
        "records": matched[start:end],
        "total_count": total,
        "has_more": end < total,
    }


def search_detections(history: DetectionHistory, term: str) -> list[DetectionRecord]:
    """Case-insensitive substring match on locale, source and metadata."""
    needle = term.lower()
    if not needle:
        return list(history.history)
    results = []
    for record in history.history:
        haystack = [record.locale, record.source]
        if record.metadata:
            haystack.append(json.dumps(record.metadata, default=str))
        if any(needle in field.lower() for field in haystack):
            results.append(record)
    return results


def get_unique_locales(history: DetectionHistory) -> list[str]:
    return sorted({r.locale for r in history.history})


def get_unique_sources(history: DetectionHistory) -> list[str]:
    return sorted({r.source for r in history.history})


def _group_stats(records: list[DetectionRecord], attr: str) -> list[dict]:
    total = len(records)
    groups: dict[str, list[float]] = {}
    for record in records:
        groups.setdefault(getattr(record, attr), []).append(record.confidence)
    stats = [
        {
            attr: name,
            "count": len(confidences),
            "percentage": len(confidences) / total * 100,
            "avg_confidence": sum(confidences) / len(confidences),
        }
        for name, confidences in groups.items()
    ]
    stats.sort(key=lambda s: s["count"], reverse=True)
    return stats


def get_locale_group_stats(history: DetectionHistory) -> list[dict]:
    return _group_stats(history.history, "locale")


def get_source_group_stats(history: DetectionHistory) -> list[dict]:
    return _group_stats(history.history, "source")


def get_time_distribution_stats(history: DetectionHistory, bucket_ms: int) -> list[dict]:
    """Count records per fixed-width time bucket, oldest bucket first."""
    if bucket_ms <= 0:
        return []
    buckets: dict[int, int] = {}
    for record in history.history:
        start = record.timestamp - record.timestamp % bucket_ms
        buckets[start] = buckets.get(start, 0) + 1
    return [
        {"start": start, "end": start + bucket_ms, "count": count}
        for start, count in sorted(buckets.items())
    ]
