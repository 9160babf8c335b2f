"""Shared CLI utilities."""

import json
from typing import Any

import structlog
from rich.console import Console

from cli.config_models import StorageConfig

console = Console()
logger = structlog.get_logger()


def build_manager(config: StorageConfig):
    """Construct a LocaleStorageManager from validated config."""
    from locale_storage import CookieStore, EventBus, LocaleStorageManager, LocalStore

    local = LocalStore(config.paths.local_db)
    cookie = CookieStore(
        max_size=config.cookie.max_size,
        max_age_s=config.cookie.max_age_s,
        secure=config.cookie.secure,
        same_site=config.cookie.same_site,
        jar_path=config.paths.cookie_jar,
    )
    return LocaleStorageManager(
        local,
        cookie,
        bus=EventBus(max_history=config.events.max_history),
        max_records=config.history.max_records,
        max_age_ms=config.history.max_age_ms,
        cache_ttl_ms=config.cache.ttl_ms,
        timestamp_threshold_ms=config.consistency.timestamp_threshold_ms,
        allowed_locales=config.locales.allowed,
        enable_console_log=config.events.console_log,
        enable_history_recording=config.events.history_recording,
    )


def get_manager():
    """Load config and build the manager for a CLI command."""
    from cli.config import load_config_model

    return build_manager(load_config_model())


def format_ts(timestamp_ms: int | None) -> str:
    """Epoch milliseconds as a short local datetime string."""
    if timestamp_ms is None:
        return "-"
    from datetime import datetime

    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def print_json(data: Any):
    console.print_json(json.dumps(data, default=str))
