"""Pure validators for preference and detection-history data.

Every layer that reads stored data runs it through here before trusting it.
The ``parse_*`` functions return a :class:`ParseResult` carrying either the
typed record or a reason string; the ``validate_*`` functions are boolean
shorthands over them. Nothing in this module performs I/O.
"""

import math
from collections.abc import Iterable, Mapping
from typing import Any

from .models import (
    DetectionHistory,
    DetectionRecord,
    Locale,
    ParseResult,
    PreferenceRecord,
    now_ms,
)

DEFAULT_ALLOWED_LOCALES = frozenset(loc.value for loc in Locale)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_allowed_locale(value: Any, allowed: Iterable[str] | None = None) -> bool:
    """True if ``value`` names one of the supported locales."""
    allowed_set = frozenset(allowed) if allowed is not None else DEFAULT_ALLOWED_LOCALES
    if isinstance(value, Locale):
        value = value.value
    return isinstance(value, str) and value in allowed_set


def _check_fields(
    candidate: Any, now: int | None, allowed: Iterable[str] | None
) -> str | None:
    """Return the first reason the candidate is malformed, or None."""
    if not isinstance(candidate, Mapping):
        return "record must be an object"

    locale = candidate.get("locale")
    if not isinstance(locale, str):
        return "locale must be a string"
    if not is_allowed_locale(locale, allowed):
        return f"unsupported locale: {locale}"

    if not isinstance(candidate.get("source"), str):
        return "source must be a string"

    timestamp = candidate.get("timestamp")
    if not _is_number(timestamp):
        return "timestamp must be a number"
    current = now if now is not None else now_ms()
    if timestamp < 0 or timestamp > current:
        return "timestamp out of range"

    confidence = candidate.get("confidence")
    if not _is_number(confidence):
        return "confidence must be a number"
    if not 0 <= confidence <= 1:
        return "confidence must be between 0 and 1"

    metadata = candidate.get("metadata")
    if metadata is not None and not isinstance(metadata, Mapping):
        return "metadata must be an object"
    return None


def parse_preference(
    candidate: Any, now: int | None = None, allowed: Iterable[str] | None = None
) -> ParseResult:
    reason = _check_fields(candidate, now, allowed)
    if reason:
        return ParseResult.failure(f"Invalid preference: {reason}")
    metadata = candidate.get("metadata")
    return ParseResult.success(
        PreferenceRecord(
            locale=candidate["locale"],
            source=candidate["source"],
            timestamp=int(candidate["timestamp"]),
            confidence=float(candidate["confidence"]),
            metadata=dict(metadata) if metadata is not None else None,
        )
    )


def parse_detection(
    candidate: Any, now: int | None = None, allowed: Iterable[str] | None = None
) -> ParseResult:
    reason = _check_fields(candidate, now, allowed)
    if reason:
        return ParseResult.failure(f"Invalid detection record: {reason}")
    metadata = candidate.get("metadata")
    return ParseResult.success(
        DetectionRecord(
            locale=candidate["locale"],
            source=candidate["source"],
            timestamp=int(candidate["timestamp"]),
            confidence=float(candidate["confidence"]),
            metadata=dict(metadata) if metadata is not None else None,
        )
    )


def parse_history(
    candidate: Any, now: int | None = None, allowed: Iterable[str] | None = None
) -> ParseResult:
    """Parse a serialized history aggregate.

    Records may sit under ``history`` or the older ``detections`` field; when
    both are present both must be lists and ``history`` wins.
    """
    if not isinstance(candidate, Mapping):
        return ParseResult.failure("Invalid history: must be an object")

    has_history = "history" in candidate
    has_detections = "detections" in candidate
    if not has_history and not has_detections:
        return ParseResult.failure("Invalid history: missing history list")
    if has_history and not isinstance(candidate["history"], list):
        return ParseResult.failure("Invalid history: history must be a list")
    if has_detections and not isinstance(candidate["detections"], list):
        return ParseResult.failure("Invalid history: detections must be a list")

    last_updated = candidate.get("lastUpdated")
    if not _is_number(last_updated):
        return ParseResult.failure("Invalid history: lastUpdated must be a number")

    raw_records = candidate["history"] if has_history else candidate["detections"]
    records = []
    for index, raw in enumerate(raw_records):
        parsed = parse_detection(raw, now=now, allowed=allowed)
        if not parsed.ok:
            return ParseResult.failure(f"{parsed.reason} (index {index})")
        records.append(parsed.value)

    total = candidate.get("totalDetections")
    return ParseResult.success(
        DetectionHistory(
            history=records,
            last_updated=int(last_updated),
            total_detections=int(total) if _is_number(total) else len(records),
        )
    )


def validate_preference_data(
    candidate: Any, now: int | None = None, allowed: Iterable[str] | None = None
) -> bool:
    return parse_preference(candidate, now=now, allowed=allowed).ok


def validate_detection_record(
    candidate: Any, now: int | None = None, allowed: Iterable[str] | None = None
) -> bool:
    return parse_detection(candidate, now=now, allowed=allowed).ok


def validate_history_data(
    candidate: Any, now: int | None = None, allowed: Iterable[str] | None = None
) -> bool:
    return parse_history(candidate, now=now, allowed=allowed).ok
