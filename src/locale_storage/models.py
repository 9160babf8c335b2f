"""Data models for locale preference storage and detection history."""

import copy
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

MAX_COOKIE_SIZE = 4096
MAX_LOCAL_STORE_SIZE = 5 * 1024 * 1024
MAX_HISTORY_ENTRIES = 100
MAX_PREFERENCE_HISTORY = 50
MAX_EVENT_HISTORY = 100
CACHE_TTL_MS = 10 * 60 * 1000
DEFAULT_MAX_AGE_MS = 30 * 24 * 60 * 60 * 1000
DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Locale(str, Enum):
    EN = "en"
    ZH = "zh"


DEFAULT_LOCALE = Locale.EN


class StorageKey(str, Enum):
    LOCALE_PREFERENCE = "locale_preference"
    LOCALE_DETECTION_HISTORY = "locale_detection_history"
    USER_LOCALE_OVERRIDE = "user_locale_override"
    LOCALE_ANALYTICS = "locale_analytics"
    LOCALE_CACHE = "locale_cache"
    LOCALE_SETTINGS = "locale_settings"
    PREFERENCE_HISTORY = "preference_history"


class LocaleSource(str, Enum):
    USER = "user"
    BROWSER = "browser"
    GEO = "geo"
    DEFAULT = "default"


class StorageEventType(str, Enum):
    PREFERENCE_SAVED = "preference_saved"
    PREFERENCE_LOADED = "preference_loaded"
    OVERRIDE_SET = "override_set"
    OVERRIDE_CLEARED = "override_cleared"
    PREFERENCE_SYNC = "preference_sync"
    PREFERENCE_ERROR = "preference_error"
    CACHE_CLEARED = "cache_cleared"
    BACKUP_CREATED = "backup_created"
    BACKUP_RESTORED = "backup_restored"
    HISTORY_ERROR = "history_error"


def enum_value(value: Any) -> Any:
    """Unwrap an Enum member to its raw value; pass anything else through."""
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class PreferenceRecord:
    """The user's selected locale plus provenance."""

    locale: str
    source: str
    timestamp: int
    confidence: float
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "locale": self.locale,
            "source": self.source,
            "timestamp": self.timestamp,
            "confidence": self.confidence,
        }
        if self.metadata is not None:
            data["metadata"] = copy.deepcopy(self.metadata)
        return data


@dataclass(frozen=True)
class DetectionRecord:
    """One observation of a locale signal. Never mutated after append."""

    locale: str
    source: str
    timestamp: int
    confidence: float
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "locale": self.locale,
            "source": self.source,
            "timestamp": self.timestamp,
            "confidence": self.confidence,
        }
        if self.metadata is not None:
            data["metadata"] = copy.deepcopy(self.metadata)
        return data

    @property
    def dedup_key(self) -> str:
        return f"{self.locale}-{self.source}-{self.timestamp}-{self.confidence}"


@dataclass
class DetectionHistory:
    """Aggregate root: detection records newest first."""

    history: list[DetectionRecord] = field(default_factory=list)
    last_updated: int = 0
    total_detections: int = 0

    def to_dict(self) -> dict[str, Any]:
        records = [r.to_dict() for r in self.history]
        return {
            "history": records,
            # Mirror for readers of the older "detections" layout
            "detections": copy.deepcopy(records),
            "lastUpdated": self.last_updated,
            "totalDetections": self.total_detections,
        }

    def copy(self) -> "DetectionHistory":
        return DetectionHistory(
            history=list(self.history),
            last_updated=self.last_updated,
            total_detections=self.total_detections,
        )

    def __len__(self) -> int:
        return len(self.history)


@dataclass
class OperationResult:
    """Structured outcome of every public storage operation."""

    success: bool
    data: Any = None
    error: str | None = None
    timestamp: int = field(default_factory=now_ms)
    source: str | None = None
    response_time: float | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success, "timestamp": self.timestamp}
        if self.data is not None:
            result["data"] = to_plain(self.data)
        if self.error is not None:
            result["error"] = self.error
        if self.source is not None:
            result["source"] = self.source
        if self.response_time is not None:
            result["response_time"] = self.response_time
        return result


@dataclass
class ParseResult:
    """success(value) | failure(reason)."""

    ok: bool
    value: Any = None
    reason: str | None = None

    @classmethod
    def success(cls, value: Any) -> "ParseResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> "ParseResult":
        return cls(ok=False, reason=reason)


@dataclass
class StorageEvent:
    type: StorageEventType | str
    timestamp: int
    source: str
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        event = {
            "type": enum_value(self.type),
            "timestamp": self.timestamp,
            "source": self.source,
        }
        if self.data is not None:
            event["data"] = to_plain(self.data)
        return event


def to_plain(value: Any) -> Any:
    """Convert models (and containers of them) to JSON-ready structures."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {enum_value(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value
