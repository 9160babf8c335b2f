"""Statistics, trends and insights derived from a detection history.

Pure functions: callers pass the loaded history (None when it could not be
read) and, for time-relative views, the current time in epoch milliseconds.
"""

import math
from collections import Counter
from datetime import date, datetime, timedelta, timezone

from observability import Metrics

from .models import DAY_MS, DetectionHistory, now_ms

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.5
PREDICTION_DAYS = 3
TREND_BAND = 0.2


def _utc_date(timestamp_ms: int) -> date:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def get_detection_stats(history: DetectionHistory | None) -> dict:
    records = history.history if history else []
    if not records:
        return {
            "total_detections": 0,
            "unique_locales": 0,
            "unique_sources": 0,
            "average_confidence": 0.0,
            "most_detected_locale": None,
            "most_used_source": None,
            "confidence_distribution": {"high": 0, "medium": 0, "low": 0},
            "time_span": {"oldest": None, "newest": None, "span_days": 0.0},
            "detection_frequency": 0.0,
        }

    locales = Counter(r.locale for r in records)
    sources = Counter(r.source for r in records)
    top_locale, top_locale_count = locales.most_common(1)[0]
    top_source, top_source_count = sources.most_common(1)[0]

    distribution = {"high": 0, "medium": 0, "low": 0}
    for record in records:
        if record.confidence > HIGH_CONFIDENCE:
            distribution["high"] += 1
        elif record.confidence >= MEDIUM_CONFIDENCE:
            distribution["medium"] += 1
        else:
            distribution["low"] += 1

    timestamps = [r.timestamp for r in records]
    oldest, newest = min(timestamps), max(timestamps)
    span_days = (newest - oldest) / DAY_MS

    return {
        "total_detections": len(records),
        "unique_locales": len(locales),
        "unique_sources": len(sources),
        "average_confidence": _mean([r.confidence for r in records]),
        "most_detected_locale": {"locale": top_locale, "count": top_locale_count},
        "most_used_source": {"source": top_source, "count": top_source_count},
        "confidence_distribution": distribution,
        "time_span": {"oldest": oldest, "newest": newest, "span_days": span_days},
        "detection_frequency": len(records) / span_days if span_days > 0 else 0.0,
    }


def _empty_trends() -> dict:
    return {
        "daily_detections": [],
        "weekly_growth": 0.0,
        "monthly_growth": 0.0,
        "trend_direction": "stable",
        "predictions": [],
    }


def _growth(counts: list[int], window: int) -> float:
    """Percent change of the last ``window`` days over the window before it."""
    if len(counts) < window * 2:
        return 0.0
    recent = sum(counts[-window:])
    previous = sum(counts[-window * 2 : -window])
    if previous == 0:
        return 0.0
    return (recent - previous) / previous * 100


def get_detection_trends(
    history: DetectionHistory | None, days: int = 7, now: int | None = None
) -> dict:
    """Per-UTC-day counts over the last ``days`` days, oldest first."""
    if history is None or days <= 0:
        return _empty_trends()

    today = _utc_date(now if now is not None else now_ms())
    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    confidences: dict[date, list[float]] = {day: [] for day in window}
    for record in history.history:
        day = _utc_date(record.timestamp)
        if day in confidences:
            confidences[day].append(record.confidence)

    daily = [
        {
            "date": day.isoformat(),
            "count": len(confidences[day]),
            "avg_confidence": _mean(confidences[day]),
        }
        for day in window
    ]
    counts = [d["count"] for d in daily]

    half = len(counts) // 2
    first = _mean(counts[:half]) if half else 0.0
    second = _mean(counts[half:])
    if first == 0:
        direction = "increasing" if second > 0 and half else "stable"
    elif second > first * (1 + TREND_BAND):
        direction = "increasing"
    elif second < first * (1 - TREND_BAND):
        direction = "decreasing"
    else:
        direction = "stable"

    baseline = _mean(counts[-7:])
    predictions = [
        {
            "date": (today + timedelta(days=ahead)).isoformat(),
            "predicted_count": round(baseline, 2),
        }
        for ahead in range(1, PREDICTION_DAYS + 1)
    ]

    return {
        "daily_detections": daily,
        "weekly_growth": _growth(counts, 7),
        "monthly_growth": _growth(counts, 30),
        "trend_direction": direction,
        "predictions": predictions,
    }


def generate_history_insights(history: DetectionHistory | None, now: int | None = None) -> dict:
    insights: list[str] = []
    recommendations: list[str] = []
    alerts: list[str] = []

    stats = get_detection_stats(history)
    total = stats["total_detections"]
    if total == 0:
        return {
            "insights": ["No detection records yet"],
            "recommendations": ["Enable locale detection to start building history"],
            "alerts": [],
        }

    top_locale = stats["most_detected_locale"]
    insights.append(
        f"Most common locale is {top_locale['locale']} ({top_locale['count']} detections)"
    )
    insights.append(f"Most used detection source is {stats['most_used_source']['source']}")

    distribution = stats["confidence_distribution"]
    if distribution["high"] / total >= 0.7:
        insights.append("Detection quality is excellent: most detections are high confidence")
    if distribution["low"] / total > 0.5:
        alerts.append("Detection quality needs improvement: most detections are low confidence")
        recommendations.append("Consider tuning the locale detection algorithm")

    trends = get_detection_trends(history, now=now)
    if trends["trend_direction"] == "increasing":
        insights.append("Detection activity shows an upward trend")
    elif trends["trend_direction"] == "decreasing":
        insights.append("Detection activity shows a downward trend")
        recommendations.append("Analyze recent changes in user behaviour")

    frequency = stats["detection_frequency"]
    if frequency > 10:
        insights.append(f"Detection activity is frequent ({frequency:.1f} per day)")
    elif 0 < frequency < 1:
        recommendations.append("Increase locale detection triggers")

    if stats["unique_locales"] > 2:
        insights.append(f"High language diversity: {stats['unique_locales']} locales detected")

    if total > 1000:
        recommendations.append("Clean up old detection records to keep history small")
    if stats["time_span"]["span_days"] > 90:
        recommendations.append("History spans over 90 days; run a long-term trend analysis")

    return {"insights": insights, "recommendations": recommendations, "alerts": alerts}


def get_performance_metrics(
    history: DetectionHistory | None, metrics: Metrics | None = None
) -> dict:
    records = history.history if history else []
    confidences = [r.confidence for r in records]

    if confidences:
        average = _mean(confidences)
        stddev = math.sqrt(_mean([(c - average) ** 2 for c in confidences]))
        stability = max(0.0, 1 - stddev)
        accuracy = sum(1 for c in confidences if c > HIGH_CONFIDENCE) / len(confidences)

        by_source: dict[str, list[float]] = {}
        by_locale: dict[str, list[float]] = {}
        for record in records:
            by_source.setdefault(record.source, []).append(record.confidence)
            by_locale.setdefault(record.locale, []).append(record.confidence)
        reliability = {source: _mean(values) for source, values in by_source.items()}
        variances = []
        for values in by_locale.values():
            mean = _mean(values)
            variances.append(_mean([(v - mean) ** 2 for v in values]))
        consistency = max(0.0, 1 - _mean(variances))
    else:
        average = stability = accuracy = consistency = 0.0
        reliability = {}

    result = {
        "average_confidence": average,
        "confidence_stability": stability,
        "source_reliability": reliability,
        "detection_accuracy": accuracy,
        "response_consistency": consistency,
    }

    if metrics is not None:
        hits = metrics.get_counter("history.cache_hit")
        misses = metrics.get_counter("history.cache_miss")
        result["read_latency"] = {
            "cache_avg_ms": metrics.average("history.read.cache"),
            "backend_avg_ms": metrics.average("history.read.backend"),
            "cache_hit_rate": hits / (hits + misses) if hits + misses else 0.0,
        }
    return result
