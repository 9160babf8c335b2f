"""LocaleStorageManager: wires backends, stores and the event bus together.

The stores do the work; this facade emits an event after each mutating call
and exposes the read-only query/stats views over the current history.
"""

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import structlog

from observability import Metrics

from . import query, stats
from .backends import CookieStore, LocalStore
from .cache import HistoryCache
from .events import (
    EventBus,
    cleanup_event_system,
    create_cleanup_event,
    create_export_event,
    create_history_error_event,
    create_import_event,
    create_override_cleared_event,
    create_override_set_event,
    create_preference_error_event,
    create_preference_loaded_event,
    create_preference_saved_event,
    create_record_added_event,
    create_sync_event,
    setup_default_listeners,
)
from .history import HistoryStore
from .maintenance import HistoryMaintenance, MaintenanceOptions, StorageMaintenance
from .models import (
    CACHE_TTL_MS,
    DEFAULT_MAX_AGE_MS,
    MAX_HISTORY_ENTRIES,
    DetectionHistory,
    Locale,
    OperationResult,
    PreferenceRecord,
    now_ms,
)
from .preferences import PreferenceStore
from .reconciliation import DEFAULT_TIMESTAMP_THRESHOLD_MS, StorageReconciler

logger = structlog.get_logger()


class LocaleStorageManager:
    def __init__(
        self,
        local: LocalStore,
        cookie: CookieStore,
        *,
        cache: HistoryCache | None = None,
        bus: EventBus | None = None,
        max_records: int = MAX_HISTORY_ENTRIES,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        cache_ttl_ms: int = CACHE_TTL_MS,
        timestamp_threshold_ms: int = DEFAULT_TIMESTAMP_THRESHOLD_MS,
        allowed_locales: Iterable[str] | None = None,
        clock: Callable[[], int] = now_ms,
        metrics: Metrics | None = None,
        enable_console_log: bool = True,
        enable_history_recording: bool = True,
    ):
        self.local = local
        self.cookie = cookie
        self.clock = clock
        self.metrics = metrics or Metrics()
        self.cache = cache or HistoryCache(ttl_ms=cache_ttl_ms, clock=clock)
        self.bus = bus or EventBus()

        self.history = HistoryStore(
            local,
            self.cache,
            max_records=max_records,
            max_age_ms=max_age_ms,
            allowed_locales=allowed_locales,
            clock=clock,
            metrics=self.metrics,
        )
        self.preferences = PreferenceStore(
            local, cookie, allowed_locales=allowed_locales, clock=clock
        )
        self.reconciler = StorageReconciler(
            local,
            cookie,
            timestamp_threshold_ms=timestamp_threshold_ms,
            allowed_locales=allowed_locales,
            clock=clock,
        )
        self.history_maintenance = HistoryMaintenance(self.history)
        self.storage_maintenance = StorageMaintenance(
            self.history_maintenance, self.reconciler, local, cookie
        )
        self._listeners = setup_default_listeners(
            self.bus,
            self.preferences,
            enable_console_log=enable_console_log,
            enable_history_recording=enable_history_recording,
        )

    @classmethod
    def open(cls, db_path: str | Path, cookie_jar: str | Path | None = None, **kwargs):
        """Build a manager over a SQLite file and an optional persisted cookie jar."""
        return cls(LocalStore(db_path), CookieStore(jar_path=cookie_jar), **kwargs)

    def shutdown(self):
        """Detach listeners and drop the event ring. Safe to call twice."""
        cleanup_event_system(self.bus)
        self.cache.clear_cache()
        self._listeners = []
        logger.debug("manager.shutdown")

    # --- History ---

    def get_detection_history(self) -> OperationResult:
        return self.history.get_detection_history()

    def history_snapshot(self) -> DetectionHistory | None:
        """Loaded history for query/stats views, or None if unreadable."""
        result = self.history.get_detection_history()
        return result.data if result.success else None

    def add_detection_record(
        self,
        locale: Locale | str,
        source: str,
        confidence: float,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult:
        result = self.history.add_detection_record(locale, source, confidence, metadata)
        if result.success:
            newest = result.data.history[0]
            self.bus.emit_event(
                create_record_added_event(
                    newest.locale, newest.source, newest.confidence, timestamp=newest.timestamp
                )
            )
        else:
            self.bus.emit_event(create_history_error_event("add_record", result.error or ""))
        return result

    def get_history_summary(self) -> dict:
        return self.history.get_history_summary()

    def needs_cleanup(self) -> dict:
        return self.history.needs_cleanup()

    def _cleanup(self, cleanup_type: str, result: OperationResult) -> OperationResult:
        if result.success:
            self.bus.emit_event(create_cleanup_event(cleanup_type, result.data))
        else:
            self.bus.emit_event(create_history_error_event(cleanup_type, result.error or ""))
        return result

    def cleanup_expired_detections(self, max_age_ms: int | None = None) -> OperationResult:
        return self._cleanup(
            "expired", self.history_maintenance.cleanup_expired_detections(max_age_ms)
        )

    def cleanup_duplicate_detections(self) -> OperationResult:
        return self._cleanup("duplicates", self.history_maintenance.cleanup_duplicate_detections())

    def limit_history_size(self, max_records: int | None = None) -> OperationResult:
        return self._cleanup("size_limit", self.history_maintenance.limit_history_size(max_records))

    def clear_all_history(self) -> OperationResult:
        return self._cleanup("clear_all", self.history_maintenance.clear_all_history())

    def export_history(self, export_format: str = "object") -> OperationResult:
        if export_format == "json":
            result = self.history_maintenance.export_history_as_json()
        else:
            result = self.history_maintenance.export_history()
        if result.success:
            self.bus.emit_event(
                create_export_event(export_format, len(self.history.current_history()))
            )
        else:
            self.bus.emit_event(create_history_error_event("export", result.error or ""))
        return result

    def import_history(self, data: Any, import_format: str = "object") -> OperationResult:
        if import_format == "json":
            result = self.history_maintenance.import_history_from_json(data)
        else:
            result = self.history_maintenance.import_history(data)
        self.bus.emit_event(
            create_import_event(import_format, result.data or 0, result.success)
        )
        return result

    def create_backup(self) -> OperationResult:
        result = self.history_maintenance.create_backup()
        if result.success:
            self.bus.emit_event(create_export_event("backup", len(result.data["data"]["history"])))
        return result

    def restore_from_backup(self, backup: Any) -> OperationResult:
        result = self.history_maintenance.restore_from_backup(backup)
        self.bus.emit_event(create_import_event("backup", result.data or 0, result.success))
        return result

    # --- Preferences ---

    def save_user_preference(self, preference: PreferenceRecord | dict) -> OperationResult:
        result = self.preferences.save_user_preference(preference)
        if result.success:
            self.bus.emit_event(create_preference_saved_event(result.data))
        else:
            self.bus.emit_event(create_preference_error_event("save", result.error or ""))
        return result

    def get_user_preference(self) -> OperationResult:
        result = self.preferences.get_user_preference()
        if result.success and result.data is not None:
            self.bus.emit_event(create_preference_loaded_event(result.data, result.source or ""))
        return result

    def set_user_override(self, locale: Locale | str) -> OperationResult:
        result = self.preferences.set_user_override(locale)
        if result.success:
            self.bus.emit_event(create_override_set_event(result.data))
        else:
            self.bus.emit_event(create_preference_error_event("set_override", result.error or ""))
        return result

    def get_user_override(self) -> str | None:
        return self.preferences.get_user_override()

    def clear_user_override(self) -> OperationResult:
        result = self.preferences.clear_user_override()
        if result.success:
            self.bus.emit_event(create_override_cleared_event())
        else:
            self.bus.emit_event(create_preference_error_event("clear_override", result.error or ""))
        return result

    def get_preference_history(self) -> list[PreferenceRecord]:
        return self.preferences.get_preference_history()

    # --- Reconciliation ---

    def check_data_consistency(self) -> OperationResult:
        return self.reconciler.check_data_consistency()

    def validate_storage_integrity(self) -> OperationResult:
        return self.reconciler.validate_storage_integrity()

    def fix_sync_issues(self) -> OperationResult:
        result = self.reconciler.fix_sync_issues()
        if result.data["fixed_issues"]:
            self.bus.emit_event(
                create_sync_event(result.data["fixed_issues"], result.data["actions"])
            )
        if not result.success:
            self.bus.emit_event(create_preference_error_event("sync", result.error or ""))
        return result

    def get_validation_summary(self) -> dict:
        return self.reconciler.get_validation_summary()

    # --- Maintenance ---

    def perform_maintenance(self, options: MaintenanceOptions | None = None) -> dict:
        return self.storage_maintenance.perform_maintenance(options)

    def get_maintenance_recommendations(self) -> dict:
        return self.storage_maintenance.get_maintenance_recommendations()

    def get_storage_stats(self) -> dict:
        return self.storage_maintenance.get_storage_stats()

    def perform_health_check(self) -> dict:
        return self.storage_maintenance.perform_health_check()

    # --- Read-only views ---

    def get_recent_detections(self, limit: int = 10) -> list:
        return query.get_recent_detections(self.history.current_history(), limit)

    def query_detections(self, conditions: query.QueryConditions) -> dict:
        return query.query_detections(self.history.current_history(), conditions)

    def search_detections(self, term: str) -> list:
        return query.search_detections(self.history.current_history(), term)

    def get_detection_stats(self) -> dict:
        return stats.get_detection_stats(self.history_snapshot())

    def get_detection_trends(self, days: int = 7) -> dict:
        return stats.get_detection_trends(self.history_snapshot(), days, now=self.clock())

    def generate_history_insights(self) -> dict:
        return stats.generate_history_insights(self.history_snapshot(), now=self.clock())

    def get_performance_metrics(self) -> dict:
        return stats.get_performance_metrics(self.history_snapshot(), self.metrics)
