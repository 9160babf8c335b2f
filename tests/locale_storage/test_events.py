"""Tests for the event bus, event creators and stock listeners."""

import pytest

from locale_storage.events import (
    EventBus,
    StatsListener,
    cleanup_event_system,
    console_log_listener,
    create_cleanup_event,
    create_debug_listener,
    create_error_listener,
    create_export_event,
    create_history_error_event,
    create_import_event,
    create_override_set_event,
    create_preference_saved_event,
    create_record_added_event,
    get_event_system_status,
    make_history_recording_listener,
    setup_default_listeners,
)
from locale_storage.models import PreferenceRecord, StorageEvent, StorageEventType, StorageKey
from locale_storage.preferences import PreferenceStore


@pytest.fixture
def bus():
    return EventBus()


def _event(event_type=StorageEventType.OVERRIDE_SET, ts=1):
    return StorageEvent(type=event_type, timestamp=ts, source="test", data={"locale": "en"})


class TestEventBus:
    def test_specific_then_wildcard(self, bus):
        calls = []
        bus.add_event_listener("*", lambda e: calls.append("wildcard"))
        bus.add_event_listener(StorageEventType.OVERRIDE_SET, lambda e: calls.append("specific"))
        bus.emit_event(_event())
        assert calls == ["specific", "wildcard"]

    def test_other_types_not_delivered(self, bus):
        calls = []
        bus.add_event_listener(StorageEventType.CACHE_CLEARED, calls.append)
        bus.emit_event(_event())
        assert calls == []

    def test_failing_listener_isolated(self, bus):
        calls = []

        def boom(event):
            raise RuntimeError("listener broke")

        bus.add_event_listener(StorageEventType.OVERRIDE_SET, boom)
        bus.add_event_listener(StorageEventType.OVERRIDE_SET, calls.append)
        bus.emit_event(_event())
        assert len(calls) == 1
        assert len(bus.get_event_history()) == 1

    def test_remove_first_registration_only(self, bus):
        calls = []
        listener = calls.append
        bus.add_event_listener("override_set", listener)
        bus.add_event_listener("override_set", listener)
        bus.remove_event_listener("override_set", listener)
        bus.emit_event(_event())
        assert len(calls) == 1

    def test_remove_unknown_is_silent(self, bus):
        bus.remove_event_listener("override_set", print)
        bus.add_event_listener("override_set", len)
        bus.remove_event_listener("override_set", print)
        assert bus.get_listener_stats()["total_listeners"] == 1

    def test_remove_all(self, bus):
        bus.add_event_listener("a", len)
        bus.add_event_listener("b", len)
        bus.remove_all_listeners("a")
        assert bus.get_listener_stats()["event_types"] == ["b"]
        bus.remove_all_listeners()
        assert bus.get_listener_stats()["total_listeners"] == 0

    def test_history_newest_first_and_bounded(self):
        bus = EventBus(max_history=3)
        for ts in range(5):
            bus.emit_event(_event(ts=ts))
        assert [e.timestamp for e in bus.get_event_history()] == [4, 3, 2]
        assert [e.timestamp for e in bus.get_event_history(limit=1)] == [4]

    def test_default_history_bound(self, bus):
        for ts in range(150):
            bus.emit_event(_event(ts=ts))
        assert len(bus.get_event_history()) == 100

    def test_clear_history(self, bus):
        bus.emit_event(_event())
        bus.clear_event_history()
        assert bus.get_event_history() == []

    def test_listener_stats(self, bus):
        bus.add_event_listener("*", len)
        bus.add_event_listener("override_set", len)
        bus.add_event_listener("override_set", str)
        assert bus.get_listener_stats() == {
            "total_listeners": 3,
            "event_types": ["*", "override_set"],
            "listeners_by_type": {"*": 1, "override_set": 2},
        }


class TestEventCreators:
    def test_preference_saved_uses_preference_timestamp(self):
        pref = PreferenceRecord(locale="zh", source="user", timestamp=42, confidence=1.0)
        event = create_preference_saved_event(pref)
        assert event.type == StorageEventType.PREFERENCE_SAVED
        assert event.source == "preference_manager"
        assert event.timestamp == 42
        assert event.data["timestamp"] == 42

    def test_record_added(self):
        event = create_record_added_event("en", "geo", 0.5, timestamp=7)
        assert event.type == StorageEventType.PREFERENCE_SAVED
        assert event.source == "history_manager"
        assert event.timestamp == 7
        assert event.data["action"] == "add_record"

    @pytest.mark.parametrize(
        "event,expected_type,action",
        [
            (create_cleanup_event("expired", 3), StorageEventType.CACHE_CLEARED, "cleanup"),
            (create_export_event("json", 2), StorageEventType.BACKUP_CREATED, "export"),
            (create_import_event("json", 2, True), StorageEventType.BACKUP_RESTORED, "import"),
            (create_history_error_event("add", "x"), StorageEventType.HISTORY_ERROR, "error"),
        ],
    )
    def test_history_creators(self, event, expected_type, action):
        assert event.type == expected_type
        assert event.source == "history_manager"
        assert event.data["action"] == action

    def test_to_dict(self):
        event = create_override_set_event("zh")
        assert event.to_dict()["type"] == "override_set"
        assert event.to_dict()["data"] == {"locale": "zh"}


class TestListeners:
    def test_history_recording_listener(self, local, cookie, clock):
        prefs = PreferenceStore(local, cookie, clock=clock)
        listener = make_history_recording_listener(prefs)
        pref = PreferenceRecord(locale="zh", source="browser", timestamp=clock(), confidence=0.9)
        listener(create_preference_saved_event(pref))
        history = prefs.get_preference_history()
        assert len(history) == 1
        assert history[0].metadata == {"recorded_by": "event_listener"}

    def test_history_recording_skips_detections(self, local, cookie, clock):
        prefs = PreferenceStore(local, cookie, clock=clock)
        listener = make_history_recording_listener(prefs)
        listener(create_record_added_event("zh", "browser", 0.9, timestamp=clock()))
        assert prefs.get_preference_history() == []
        assert local.get(StorageKey.PREFERENCE_HISTORY) is None

    def test_history_recording_ignores_other_types(self, local, cookie, clock):
        prefs = PreferenceStore(local, cookie, clock=clock)
        make_history_recording_listener(prefs)(create_override_set_event("zh"))
        assert prefs.get_preference_history() == []

    def test_stats_listener(self, bus):
        stats = StatsListener()
        bus.add_event_listener("*", stats)
        bus.emit_event(_event())
        bus.emit_event(_event(StorageEventType.CACHE_CLEARED))
        bus.emit_event(_event())
        result = stats.get_stats()
        assert result["total_events"] == 3
        assert result["events_by_type"] == {"override_set": 2, "cache_cleared": 1}
        assert len(result["recent_events"]) == 3
        stats.reset()
        assert stats.get_stats()["total_events"] == 0

    def test_stats_listener_keeps_ten_recent(self):
        stats = StatsListener()
        for ts in range(15):
            stats(_event(ts=ts))
        recent = stats.get_stats()["recent_events"]
        assert len(recent) == 10
        assert recent[0]["timestamp"] == 14

    def test_error_listener(self, bus):
        seen = []
        bus.add_event_listener("*", create_error_listener(lambda err, op, ev: seen.append((err, op))))
        bus.emit_event(_event())
        bus.emit_event(create_history_error_event("import", "bad data"))
        assert seen == [("bad data", "import")]

    def test_console_and_debug_listeners_do_not_raise(self):
        console_log_listener(_event())
        console_log_listener(create_history_error_event("x", "y"))
        create_debug_listener()(_event())


class TestEventSystem:
    def test_setup_defaults(self, bus, local, cookie, clock):
        prefs = PreferenceStore(local, cookie, clock=clock)
        registered = setup_default_listeners(bus, prefs)
        assert [t for t, _ in registered] == ["*", "preference_saved"]
        assert bus.get_listener_stats()["total_listeners"] == 2

    def test_setup_without_console(self, bus):
        assert setup_default_listeners(bus, None, enable_console_log=False) == []

    def test_status_and_cleanup(self, bus):
        setup_default_listeners(bus)
        bus.emit_event(_event(ts=9))
        status = get_event_system_status(bus)
        assert status["is_active"] is True
        assert status["event_history_size"] == 1
        assert status["last_event"]["timestamp"] == 9

        cleanup_event_system(bus)
        status = get_event_system_status(bus)
        assert status["is_active"] is False
        assert status["last_event"] is None
