"""Locale preference storage: dual backends, cached detection history, reconciliation."""

from .backends import CookieStore, LocalStore
from .cache import HistoryCache
from .events import EventBus
from .history import HistoryStore
from .maintenance import HistoryMaintenance, MaintenanceOptions, StorageMaintenance
from .manager import LocaleStorageManager
from .models import (
    DetectionHistory,
    DetectionRecord,
    Locale,
    LocaleSource,
    OperationResult,
    PreferenceRecord,
    StorageEvent,
    StorageEventType,
    StorageKey,
)
from .preferences import PreferenceStore
from .reconciliation import StorageReconciler

__all__ = [
    "CookieStore",
    "LocalStore",
    "HistoryCache",
    "EventBus",
    "HistoryStore",
    "HistoryMaintenance",
    "MaintenanceOptions",
    "StorageMaintenance",
    "LocaleStorageManager",
    "DetectionHistory",
    "DetectionRecord",
    "Locale",
    "LocaleSource",
    "OperationResult",
    "PreferenceRecord",
    "StorageEvent",
    "StorageEventType",
    "StorageKey",
    "PreferenceStore",
    "StorageReconciler",
]
