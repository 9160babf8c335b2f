"""History maintenance and whole-storage housekeeping.

``HistoryMaintenance`` trims, exports and restores the detection history.
``StorageMaintenance`` works across both backends: clearing, compaction,
health checks and the combined ``perform_maintenance`` run.
"""

import json
from dataclasses import dataclass
from typing import Any

import structlog

from .backends import CookieStore, LocalStore
from .history import HistoryStore
from .models import (
    DetectionHistory,
    OperationResult,
    StorageKey,
    enum_value,
)
from .reconciliation import StorageReconciler
from .validation import parse_history

logger = structlog.get_logger()

BACKUP_VERSION = "1.0"


class HistoryMaintenance:
    """Cleanup, export/import and backup/restore over a ``HistoryStore``."""

    def __init__(self, store: HistoryStore):
        self.store = store

    def _load(self) -> DetectionHistory:
        result = self.store.get_detection_history()
        if not result.success:
            raise RuntimeError(result.error or "Failed to load detection history")
        return result.data

    def _save_trimmed(self, history: DetectionHistory, records: list) -> int:
        """Persist ``records`` if they differ in count; return how many were removed."""
        removed = len(history.history) - len(records)
        if removed == 0:
            return 0
        saved = self.store.save_history(
            DetectionHistory(
                history=records,
                last_updated=self.store.clock(),
                total_detections=len(records),
            )
        )
        if not saved.success:
            raise RuntimeError(saved.error or "Failed to save detection history")
        return removed

    def cleanup_expired_detections(self, max_age_ms: int | None = None) -> OperationResult:
        max_age = max_age_ms if max_age_ms is not None else self.store.max_age_ms
        try:
            history = self._load()
            cutoff = self.store.clock() - max_age
            kept = [r for r in history.history if r.timestamp >= cutoff]
            removed = self._save_trimmed(history, kept)
        except Exception as e:
            logger.error("maintenance.cleanup_expired_failed", error=str(e))
            return OperationResult(success=False, error=str(e))
        logger.info("maintenance.cleanup_expired", removed=removed)
        return OperationResult(success=True, data=removed)

    def cleanup_duplicate_detections(self) -> OperationResult:
        try:
            history = self._load()
            seen: set[str] = set()
            kept = []
            for record in history.history:
                if record.dedup_key in seen:
                    continue
                seen.add(record.dedup_key)
                kept.append(record)
            removed = self._save_trimmed(history, kept)
        except Exception as e:
            logger.error("maintenance.cleanup_duplicates_failed", error=str(e))
            return OperationResult(success=False, error=str(e))
        logger.info("maintenance.cleanup_duplicates", removed=removed)
        return OperationResult(success=True, data=removed)

    def limit_history_size(self, max_records: int | None = None) -> OperationResult:
        limit = max_records if max_records is not None else self.store.max_records
        if limit < 0:
            return OperationResult(success=False, error="max_records must be non-negative")
        try:
            history = self._load()
            removed = self._save_trimmed(history, history.history[:limit])
        except Exception as e:
            logger.error("maintenance.limit_size_failed", error=str(e))
            return OperationResult(success=False, error=str(e))
        logger.info("maintenance.limit_size", removed=removed, limit=limit)
        return OperationResult(success=True, data=removed)

    def clear_all_history(self) -> OperationResult:
        """Reset to an empty history; works even when the stored copy is corrupt."""
        loaded = self.store.get_detection_history()
        removed = len(loaded.data) if loaded.success and loaded.data is not None else 0
        try:
            saved = self.store.save_history(self.store.create_default_history())
            if not saved.success:
                return OperationResult(success=False, error=saved.error)
        except Exception as e:
            logger.error("maintenance.clear_failed", error=str(e))
            return OperationResult(success=False, error=str(e))
        logger.info("maintenance.history_cleared", removed=removed)
        return OperationResult(success=True, data=removed)

    def export_history(self) -> OperationResult:
        try:
            history = self._load()
        except Exception as e:
            logger.error("maintenance.export_failed", error=str(e))
            return OperationResult(success=False, error=str(e))
        return OperationResult(success=True, data=history.to_dict())

    def export_history_as_json(self) -> OperationResult:
        exported = self.export_history()
        if not exported.success:
            return exported
        return OperationResult(success=True, data=json.dumps(exported.data, indent=2))

    def import_history(self, data: Any) -> OperationResult:
        """Replace stored history with ``data`` after validating it."""
        if isinstance(data, DetectionHistory):
            data = data.to_dict()
        try:
            parsed = parse_history(
                data, now=self.store.clock(), allowed=self.store.allowed_locales
            )
            if not parsed.ok:
                logger.warning("maintenance.import_rejected", reason=parsed.reason)
                return OperationResult(success=False, error="Invalid history data format")
            history: DetectionHistory = parsed.value
            # Records arrive newest first; anything past the cap is dropped
            history.history = history.history[: self.store.max_records]
            saved = self.store.save_history(history)
            if not saved.success:
                return OperationResult(success=False, error=saved.error)
        except Exception as e:
            logger.error("maintenance.import_failed", error=str(e))
            return OperationResult(success=False, error=str(e))
        logger.info("maintenance.imported", records=len(parsed.value))
        return OperationResult(success=True, data=len(parsed.value))

    def import_history_from_json(self, text: str) -> OperationResult:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            return OperationResult(success=False, error=f"Invalid JSON: {e}")
        return self.import_history(data)

    def create_backup(self) -> OperationResult:
        exported = self.export_history()
        if not exported.success:
            return exported
        backup = {
            "version": BACKUP_VERSION,
            "timestamp": self.store.clock(),
            "size": len(json.dumps(exported.data)),
            "data": exported.data,
        }
        return OperationResult(success=True, data=backup)

    def restore_from_backup(self, backup: Any) -> OperationResult:
        if not isinstance(backup, dict) or "data" not in backup:
            return OperationResult(success=False, error="Invalid backup format")
        return self.import_history(backup["data"])


@dataclass
class MaintenanceOptions:
    cleanup_expired: bool = True
    cleanup_duplicates: bool = True
    cleanup_invalid: bool = True
    validate_data: bool = True
    fix_sync_issues: bool = True
    compact_storage: bool = False


class StorageMaintenance:
    """Housekeeping that spans both backends."""

    def __init__(
        self,
        history: HistoryMaintenance,
        reconciler: StorageReconciler,
        local: LocalStore,
        cookie: CookieStore,
    ):
        self.history = history
        self.reconciler = reconciler
        self.local = local
        self.cookie = cookie

    @property
    def store(self) -> HistoryStore:
        return self.history.store

    def clear_all(self) -> OperationResult:
        """Remove every registered key from both backends."""
        failed = []
        for key in StorageKey:
            for backend in (self.local, self.cookie):
                result = backend.remove(key)
                if not result.success:
                    failed.append(f"{key.value}: {result.error}")
        self.store.cache.clear_cache()
        if failed:
            return OperationResult(success=False, error="; ".join(failed))
        logger.info("maintenance.storage_cleared")
        return OperationResult(success=True, data=len(StorageKey))

    def clear_specific_data(self, key: StorageKey | str) -> OperationResult:
        try:
            key = StorageKey(enum_value(key))
        except ValueError:
            return OperationResult(success=False, error=f"Unknown storage key: {key}")
        local_result = self.local.remove(key)
        cookie_result = self.cookie.remove(key)
        if key is StorageKey.LOCALE_DETECTION_HISTORY:
            self.store.cache.clear_cache()
        if not local_result.success or not cookie_result.success:
            return OperationResult(
                success=False, error=local_result.error or cookie_result.error
            )
        return OperationResult(success=True, data=key.value)

    def compact_storage(self) -> OperationResult:
        """Re-serialize every local entry without whitespace; report bytes saved."""
        before = self.local.get_size()
        rewritten = 0
        for name in self.local.keys():
            value = self.local.get(name)
            if value is None:
                continue
            result = self.local.set(name, value)
            if result.success:
                rewritten += 1
        after = self.local.get_size()
        logger.info("maintenance.compacted", rewritten=rewritten, saved=before - after)
        return OperationResult(
            success=True,
            data={"rewritten_keys": rewritten, "bytes_before": before, "bytes_after": after},
        )

    def optimize_detection_history(self) -> OperationResult:
        """Drop duplicates, then cap to the configured size."""
        dupes = self.history.cleanup_duplicate_detections()
        if not dupes.success:
            return dupes
        capped = self.history.limit_history_size()
        if not capped.success:
            return capped
        return OperationResult(
            success=True, data={"duplicates_removed": dupes.data, "trimmed": capped.data}
        )

    def rebuild_storage_index(self) -> OperationResult:
        """List which registered keys are present in each backend."""
        index = {
            key.value: {
                "local": self.local.exists(key),
                "cookie": self.cookie.exists(key),
            }
            for key in StorageKey
        }
        return OperationResult(success=True, data=index)

    def get_cleanup_stats(self) -> dict:
        summary = self.store.get_history_summary()
        cleanup = self.store.needs_cleanup()
        return {
            "total_records": summary["total_records"],
            "expired_records": cleanup["expired_count"],
            "local_size": self.local.get_size(),
            "cookie_size": self.cookie.get_total_size(),
            "needs_cleanup": cleanup["needs_cleanup"],
        }

    def get_storage_stats(self) -> dict:
        local_keys = self.local.keys()
        cookie_keys = list(self.cookie.get_all())
        local_size = self.local.get_size()
        summary = self.store.get_history_summary()
        return {
            "local_keys": len(local_keys),
            "cookie_keys": len(cookie_keys),
            "local_size": local_size,
            "cookie_size": self.cookie.get_total_size(),
            "local_usage": local_size / self.local.max_size if self.local.max_size else 0,
            "history_records": summary["total_records"],
            "last_updated": summary["last_updated"],
            "cache_status": summary["cache_status"],
        }

    def perform_health_check(self) -> dict:
        """Score storage health out of 100 and list what costs points."""
        issues = []
        score = 100

        integrity = self.reconciler.validate_storage_integrity()
        for issue in integrity.data["issues"]:
            issues.append(issue)
            score -= 25

        for issue in self.reconciler.validate_storage_sync():
            issues.append(issue)
            score -= 10

        stats = self.get_storage_stats()
        if stats["local_usage"] > 0.8:
            issues.append("Local store is above 80% of its quota")
            score -= 15

        now = self.store.clock()
        if stats["history_records"] and now - stats["last_updated"] > self.store.max_age_ms:
            issues.append("Detection history has not been updated recently")
            score -= 10

        score = max(score, 0)
        if score >= 80:
            status = "healthy"
        elif score >= 50:
            status = "warning"
        else:
            status = "critical"
        return {"status": status, "score": score, "issues": issues}

    def perform_maintenance(self, options: MaintenanceOptions | None = None) -> dict:
        """Run the selected housekeeping steps; each step's result is reported."""
        opts = options or MaintenanceOptions()
        results: dict[str, Any] = {}

        if opts.cleanup_expired:
            results["cleanup_expired"] = self.history.cleanup_expired_detections().to_dict()
        if opts.cleanup_duplicates:
            results["cleanup_duplicates"] = self.history.cleanup_duplicate_detections().to_dict()
        if opts.cleanup_invalid:
            results["cleanup_invalid"] = self.reconciler.cleanup_invalid_preferences().to_dict()
        if opts.validate_data:
            results["validate_data"] = self.reconciler.validate_storage_integrity().to_dict()
        if opts.fix_sync_issues:
            results["fix_sync_issues"] = self.reconciler.fix_sync_issues().to_dict()
        if opts.compact_storage:
            results["compact_storage"] = self.compact_storage().to_dict()

        successful = sum(1 for r in results.values() if r["success"])
        logger.info("maintenance.run", total=len(results), successful=successful)
        return {
            "total_operations": len(results),
            "successful_operations": successful,
            "results": results,
        }

    def get_maintenance_recommendations(self) -> dict:
        recommendations = []
        cleanup = self.store.needs_cleanup()
        if cleanup["needs_cleanup"]:
            recommendations.extend(cleanup["recommendations"])

        sync_issues = self.reconciler.validate_storage_sync()
        if sync_issues:
            recommendations.append(f"Fix {len(sync_issues)} sync issue(s) between backends")

        integrity = self.reconciler.validate_storage_integrity()
        if not integrity.success:
            recommendations.append("Remove invalid stored data")

        stats = self.get_storage_stats()
        if stats["local_usage"] > 0.8:
            recommendations.append("Compact local storage")

        if not integrity.success or stats["local_usage"] > 0.8:
            priority = "high"
        elif len(recommendations) > 1:
            priority = "medium"
        else:
            priority = "low"

        return {
            "recommendations": recommendations,
            "priority": priority,
            # Rough: half a minute per recommended step
            "estimated_time": f"{len(recommendations) * 30}s",
        }
