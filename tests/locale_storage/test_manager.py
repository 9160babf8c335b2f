"""Integration tests for LocaleStorageManager."""

from locale_storage.events import StatsListener
from locale_storage.manager import LocaleStorageManager
from locale_storage.models import DAY_MS, Locale, PreferenceRecord, StorageEventType, StorageKey
from locale_storage.query import QueryConditions


def _types(manager):
    return [e.type for e in manager.bus.get_event_history()]


class TestManagerHistory:
    def test_fresh_system(self, manager, local):
        result = manager.get_detection_history()
        assert result.success
        assert result.data.history == []
        assert local.get("locale_detection_history") is not None

    def test_add_emits_record_added(self, manager):
        result = manager.add_detection_record(Locale.ZH, "browser", 0.9)
        assert result.success
        event = manager.bus.get_event_history()[0]
        assert event.type == StorageEventType.PREFERENCE_SAVED
        assert event.source == "history_manager"
        assert event.data["locale"] == "zh"

    def test_add_leaves_preference_log_alone(self, manager):
        manager.add_detection_record("zh", "browser", 0.8)
        assert manager.get_preference_history() == []

    def test_add_failure_emits_error(self, manager):
        result = manager.add_detection_record("fr", "browser", 0.9)
        assert not result.success
        assert _types(manager)[0] == StorageEventType.HISTORY_ERROR

    def test_cleanup_emits_event(self, manager, clock):
        manager.add_detection_record("zh", "browser", 0.9)
        clock.advance(31 * DAY_MS)
        result = manager.cleanup_expired_detections()
        assert result.data == 1
        event = manager.bus.get_event_history()[0]
        assert event.type == StorageEventType.CACHE_CLEARED
        assert event.data["removed_count"] == 1

    def test_export_import(self, manager):
        manager.add_detection_record("zh", "browser", 0.9)
        original = manager.get_detection_history().data
        exported = manager.export_history("json")
        assert _types(manager)[0] == StorageEventType.BACKUP_CREATED
        manager.clear_all_history()
        imported = manager.import_history(exported.data, "json")
        assert imported.success
        assert _types(manager)[0] == StorageEventType.BACKUP_RESTORED
        assert manager.get_detection_history().data == original

    def test_import_failure_event(self, manager):
        result = manager.import_history({"detections": "x", "lastUpdated": 1})
        assert not result.success
        assert manager.bus.get_event_history()[0].data["success"] is False

    def test_backup_restore(self, manager):
        manager.add_detection_record("en", "user", 1.0)
        backup = manager.create_backup().data
        manager.clear_all_history()
        assert manager.restore_from_backup(backup).success
        assert len(manager.get_detection_history().data) == 1


class TestManagerPreferences:
    def test_save_and_load(self, manager, clock):
        pref = PreferenceRecord(locale="zh", source="browser", timestamp=clock(), confidence=0.8)
        assert manager.save_user_preference(pref).success
        loaded = manager.get_user_preference()
        assert loaded.data == pref
        assert _types(manager)[:2] == [
            StorageEventType.PREFERENCE_LOADED,
            StorageEventType.PREFERENCE_SAVED,
        ]

    def test_save_invalid_emits_error(self, manager, clock):
        bad = {"locale": "zh", "source": "browser", "timestamp": clock(), "confidence": 5}
        assert not manager.save_user_preference(bad).success
        assert _types(manager)[0] == StorageEventType.PREFERENCE_ERROR

    def test_nan_cookie_preference_is_absent(self, manager):
        manager.cookie.set(
            StorageKey.LOCALE_PREFERENCE,
            '{"locale": "en", "source": "browser", "timestamp": NaN, "confidence": 0.8}',
        )
        result = manager.get_user_preference()
        assert result.success
        assert result.data is None

    def test_override_cycle(self, manager):
        assert manager.set_user_override("zh").success
        assert manager.get_user_override() == "zh"
        assert manager.clear_user_override().success
        assert manager.get_user_override() is None
        assert _types(manager)[:2] == [
            StorageEventType.OVERRIDE_CLEARED,
            StorageEventType.OVERRIDE_SET,
        ]

    def test_fix_sync_emits_event(self, manager, local):
        local.set("user_locale_override", "en")
        result = manager.fix_sync_issues()
        assert result.data["fixed_issues"] == 1
        assert _types(manager)[0] == StorageEventType.PREFERENCE_SYNC

    def test_fix_sync_noop_is_silent(self, manager):
        manager.fix_sync_issues()
        assert manager.bus.get_event_history() == []


class TestManagerViews:
    def test_query_and_stats(self, manager, clock):
        manager.add_detection_record("zh", "browser", 0.9)
        clock.advance(1000)
        manager.add_detection_record("en", "geo", 0.4)
        assert [r.locale for r in manager.get_recent_detections(1)] == ["en"]
        result = manager.query_detections(QueryConditions(locale="zh"))
        assert result["total_count"] == 1
        assert len(manager.search_detections("geo")) == 1
        stats = manager.get_detection_stats()
        assert stats["total_detections"] == 2
        trends = manager.get_detection_trends()
        assert trends["daily_detections"][-1]["count"] == 2
        assert "insights" in manager.generate_history_insights()

    def test_performance_metrics_track_cache(self, manager):
        manager.get_detection_history()
        manager.get_detection_history()
        perf = manager.get_performance_metrics()
        assert perf["read_latency"]["cache_hit_rate"] > 0

    def test_views_survive_invalid_history(self, manager, local):
        local.set("locale_detection_history", {"history": "bad", "lastUpdated": 1})
        assert manager.get_detection_stats()["total_detections"] == 0
        assert manager.get_detection_trends()["daily_detections"] == []
        assert manager.get_recent_detections() == []

    def test_health_and_maintenance(self, manager):
        manager.add_detection_record("zh", "browser", 0.9)
        assert manager.perform_health_check()["status"] == "healthy"
        report = manager.perform_maintenance()
        assert report["successful_operations"] == report["total_operations"]
        assert manager.get_maintenance_recommendations()["priority"] == "low"
        assert manager.get_storage_stats()["history_records"] == 1
        assert manager.get_validation_summary()["invalid_keys"] == 0


class TestManagerLifecycle:
    def test_open(self, tmp_path, clock):
        m = LocaleStorageManager.open(
            tmp_path / "s.db", tmp_path / "jar.json", clock=clock, enable_console_log=False
        )
        m.set_user_override("zh")
        m.shutdown()

        again = LocaleStorageManager.open(
            tmp_path / "s.db", tmp_path / "jar.json", clock=clock, enable_console_log=False
        )
        assert again.cookie.get("user_locale_override") == "zh"
        assert again.get_user_override() == "zh"
        again.shutdown()

    def test_shutdown_detaches_listeners(self, manager):
        stats = StatsListener()
        manager.bus.add_event_listener("*", stats)
        manager.shutdown()
        manager.shutdown()
        manager.add_detection_record("zh", "browser", 0.9)
        assert stats.total_events == 0
        assert manager.bus.get_listener_stats()["total_listeners"] == 0

    def test_custom_cap(self, local, cookie, clock):
        m = LocaleStorageManager(local, cookie, max_records=3, clock=clock, enable_console_log=False)
        for _ in range(5):
            clock.advance(1)
            m.add_detection_record("zh", "browser", 0.9)
        assert len(m.get_detection_history().data) == 3
        m.shutdown()
