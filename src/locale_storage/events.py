"""Pub/sub for storage events: listener registry plus a bounded event ring.

One ``EventBus`` is built per process and handed to whatever needs to emit.
Dispatch is synchronous; a listener that raises is logged and skipped so the
remaining listeners still run.
"""

from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from .models import (
    MAX_EVENT_HISTORY,
    PreferenceRecord,
    StorageEvent,
    StorageEventType,
    enum_value,
    now_ms,
)

if TYPE_CHECKING:
    from .preferences import PreferenceStore

logger = structlog.get_logger()

WILDCARD = "*"
PREFERENCE_SOURCE = "preference_manager"
HISTORY_SOURCE = "history_manager"

Listener = Callable[[StorageEvent], Any]


class EventBus:
    def __init__(self, max_history: int = MAX_EVENT_HISTORY):
        self._listeners: dict[str, list[Listener]] = {}
        # Newest at the left
        self._history: deque[StorageEvent] = deque(maxlen=max_history)

    def add_event_listener(self, event_type: StorageEventType | str, listener: Listener):
        self._listeners.setdefault(enum_value(event_type), []).append(listener)

    def remove_event_listener(self, event_type: StorageEventType | str, listener: Listener):
        """Remove the first registration of ``listener``; silent if absent."""
        listeners = self._listeners.get(enum_value(event_type))
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[enum_value(event_type)]

    def remove_all_listeners(self, event_type: StorageEventType | str | None = None):
        if event_type is None:
            self._listeners.clear()
        else:
            self._listeners.pop(enum_value(event_type), None)

    def emit_event(self, event: StorageEvent):
        self._history.appendleft(event)
        event_type = enum_value(event.type)
        targets = list(self._listeners.get(event_type, []))
        if event_type != WILDCARD:
            targets.extend(self._listeners.get(WILDCARD, []))
        for listener in targets:
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    "events.listener_failed",
                    event_type=event_type,
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(e),
                )

    def get_event_history(self, limit: int | None = None) -> list[StorageEvent]:
        events = list(self._history)
        return events[:limit] if limit is not None else events

    def clear_event_history(self):
        self._history.clear()

    def get_listener_stats(self) -> dict:
        by_type = {t: len(ls) for t, ls in self._listeners.items()}
        return {
            "total_listeners": sum(by_type.values()),
            "event_types": list(by_type),
            "listeners_by_type": by_type,
        }


# --- Event creators ---


def _event(
    event_type: StorageEventType,
    source: str,
    data: dict[str, Any] | None = None,
    timestamp: int | None = None,
) -> StorageEvent:
    return StorageEvent(
        type=event_type,
        timestamp=timestamp if timestamp is not None else now_ms(),
        source=source,
        data=data,
    )


def create_preference_saved_event(preference: PreferenceRecord) -> StorageEvent:
    return _event(
        StorageEventType.PREFERENCE_SAVED,
        PREFERENCE_SOURCE,
        {
            "locale": preference.locale,
            "source": preference.source,
            "confidence": preference.confidence,
            "timestamp": preference.timestamp,
        },
        timestamp=preference.timestamp,
    )


def create_preference_loaded_event(preference: PreferenceRecord, from_store: str) -> StorageEvent:
    return _event(
        StorageEventType.PREFERENCE_LOADED,
        PREFERENCE_SOURCE,
        {"locale": preference.locale, "source": preference.source, "store": from_store},
    )


def create_override_set_event(locale: str) -> StorageEvent:
    return _event(StorageEventType.OVERRIDE_SET, PREFERENCE_SOURCE, {"locale": locale})


def create_override_cleared_event() -> StorageEvent:
    return _event(StorageEventType.OVERRIDE_CLEARED, PREFERENCE_SOURCE)


def create_sync_event(fixed_issues: int, actions: list[str]) -> StorageEvent:
    return _event(
        StorageEventType.PREFERENCE_SYNC,
        PREFERENCE_SOURCE,
        {"fixed_issues": fixed_issues, "actions": list(actions)},
    )


def create_preference_error_event(operation: str, error: str) -> StorageEvent:
    return _event(
        StorageEventType.PREFERENCE_ERROR,
        PREFERENCE_SOURCE,
        {"operation": operation, "error": error},
    )


def create_record_added_event(
    locale: str, source: str, confidence: float, timestamp: int | None = None
) -> StorageEvent:
    # Detection records ride on preference_saved so the history recorder picks them up
    return _event(
        StorageEventType.PREFERENCE_SAVED,
        HISTORY_SOURCE,
        {
            "locale": locale,
            "source": source,
            "confidence": confidence,
            "action": "add_record",
        },
        timestamp=timestamp,
    )


def create_cleanup_event(cleanup_type: str, removed_count: int) -> StorageEvent:
    return _event(
        StorageEventType.CACHE_CLEARED,
        HISTORY_SOURCE,
        {"cleanup_type": cleanup_type, "removed_count": removed_count, "action": "cleanup"},
    )


def create_export_event(export_format: str, record_count: int) -> StorageEvent:
    return _event(
        StorageEventType.BACKUP_CREATED,
        HISTORY_SOURCE,
        {"format": export_format, "record_count": record_count, "action": "export"},
    )


def create_import_event(import_format: str, record_count: int, success: bool) -> StorageEvent:
    return _event(
        StorageEventType.BACKUP_RESTORED,
        HISTORY_SOURCE,
        {
            "format": import_format,
            "record_count": record_count,
            "success": success,
            "action": "import",
        },
    )


def create_history_error_event(operation: str, error: str) -> StorageEvent:
    return _event(
        StorageEventType.HISTORY_ERROR,
        HISTORY_SOURCE,
        {"operation": operation, "error": error, "action": "error"},
    )


# --- Stock listeners ---

_ERROR_TYPES = {StorageEventType.PREFERENCE_ERROR.value, StorageEventType.HISTORY_ERROR.value}


def console_log_listener(event: StorageEvent):
    """Structured log line per event; error events log at error level."""
    event_type = enum_value(event.type)
    log = logger.error if event_type in _ERROR_TYPES else logger.info
    log("events.dispatched", event_type=event_type, source=event.source, data=event.data)


def make_history_recording_listener(preferences: "PreferenceStore") -> Listener:
    """Feed saved preferences back into the preference change log."""

    def history_recording_listener(event: StorageEvent):
        if enum_value(event.type) != StorageEventType.PREFERENCE_SAVED.value or not event.data:
            return
        # Detection records share the event type but are not user preferences
        if event.source == HISTORY_SOURCE:
            return
        data = event.data
        record = PreferenceRecord(
            locale=data["locale"],
            source=data["source"],
            timestamp=data.get("timestamp", event.timestamp),
            confidence=data["confidence"],
            metadata={"recorded_by": "event_listener"},
        )
        preferences.record_preference_history(record)

    return history_recording_listener


def create_debug_listener(prefix: str = "[Storage] Event") -> Listener:
    def debug_listener(event: StorageEvent):
        logger.debug(prefix, storage_event=event.to_dict())

    return debug_listener


class StatsListener:
    """Counts events by type and keeps the ten most recent."""

    def __init__(self, recent_limit: int = 10):
        self.total_events = 0
        self.events_by_type: dict[str, int] = {}
        self._recent: deque[StorageEvent] = deque(maxlen=recent_limit)

    def __call__(self, event: StorageEvent):
        event_type = enum_value(event.type)
        self.total_events += 1
        self.events_by_type[event_type] = self.events_by_type.get(event_type, 0) + 1
        self._recent.appendleft(event)

    def get_stats(self) -> dict:
        return {
            "total_events": self.total_events,
            "events_by_type": dict(self.events_by_type),
            "recent_events": [e.to_dict() for e in self._recent],
        }

    def reset(self):
        self.total_events = 0
        self.events_by_type.clear()
        self._recent.clear()


def create_stats_listener() -> StatsListener:
    return StatsListener()


def create_error_listener(
    on_error: Callable[[str, str, StorageEvent], Any],
) -> Listener:
    """Call ``on_error(error, operation, event)`` for error events only."""

    def error_listener(event: StorageEvent):
        if enum_value(event.type) not in _ERROR_TYPES:
            return
        data = event.data or {}
        on_error(data.get("error", "unknown error"), data.get("operation", "unknown"), event)

    return error_listener


# --- System wiring ---


def setup_default_listeners(
    bus: EventBus,
    preferences: "PreferenceStore | None" = None,
    enable_console_log: bool = True,
    enable_history_recording: bool = True,
) -> list[tuple[str, Listener]]:
    """Register the stock listeners; returns (event_type, listener) pairs."""
    registered: list[tuple[str, Listener]] = []
    if enable_console_log:
        bus.add_event_listener(WILDCARD, console_log_listener)
        registered.append((WILDCARD, console_log_listener))
    if enable_history_recording and preferences is not None:
        recorder = make_history_recording_listener(preferences)
        event_type = StorageEventType.PREFERENCE_SAVED.value
        bus.add_event_listener(event_type, recorder)
        registered.append((event_type, recorder))
    return registered


def cleanup_event_system(bus: EventBus):
    bus.remove_all_listeners()
    bus.clear_event_history()


def get_event_system_status(bus: EventBus) -> dict:
    stats = bus.get_listener_stats()
    history = bus.get_event_history()
    return {
        "is_active": stats["total_listeners"] > 0,
        "listener_stats": stats,
        "event_history_size": len(history),
        "last_event": history[0].to_dict() if history else None,
    }
