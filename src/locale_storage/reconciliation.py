"""Consistency checks and one-directional repair between the two backends.

Every call is a fresh pass over the current backend contents:
read both copies, validate each, compare values, optionally repair, then
re-check. Value divergence is a hard issue. Timestamp drift within a locale
that matches is only a warning.
"""

import json
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from .backends import CookieStore, LocalStore
from .models import OperationResult, StorageKey, enum_value, now_ms
from .validation import (
    is_allowed_locale,
    parse_history,
    parse_preference,
)

logger = structlog.get_logger()

DEFAULT_TIMESTAMP_THRESHOLD_MS = 60_000

# Keys whose cookie copy is JSON; the override cookie holds a bare locale string
_JSON_COOKIE_KEYS = {
    StorageKey.LOCALE_PREFERENCE,
    StorageKey.LOCALE_DETECTION_HISTORY,
    StorageKey.LOCALE_ANALYTICS,
    StorageKey.LOCALE_CACHE,
    StorageKey.LOCALE_SETTINGS,
    StorageKey.PREFERENCE_HISTORY,
}

# Keys mirrored into the cookie store and therefore checked for sync gaps
SYNCED_KEYS = (StorageKey.LOCALE_PREFERENCE, StorageKey.USER_LOCALE_OVERRIDE)


class StorageReconciler:
    """Reads both backends directly; holds no state between calls."""

    def __init__(
        self,
        local: LocalStore,
        cookie: CookieStore,
        timestamp_threshold_ms: int = DEFAULT_TIMESTAMP_THRESHOLD_MS,
        allowed_locales: Iterable[str] | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.local = local
        self.cookie = cookie
        self.timestamp_threshold_ms = timestamp_threshold_ms
        self.allowed_locales = frozenset(allowed_locales) if allowed_locales else None
        self.clock = clock

    def _cookie_json(self, key: StorageKey) -> tuple[Any, str | None]:
        """Decoded cookie value and a parse error, if any."""
        raw = self.cookie.get(key)
        if raw is None:
            return None, None
        try:
            return json.loads(raw), None
        except json.JSONDecodeError as e:
            return None, str(e)

    def _validate_value(self, key: StorageKey, value: Any) -> str | None:
        """Reason the value is invalid for ``key``, or None."""
        now = self.clock()
        if key is StorageKey.LOCALE_PREFERENCE:
            parsed = parse_preference(value, now=now, allowed=self.allowed_locales)
            return None if parsed.ok else parsed.reason
        if key is StorageKey.LOCALE_DETECTION_HISTORY:
            parsed = parse_history(value, now=now, allowed=self.allowed_locales)
            return None if parsed.ok else parsed.reason
        if key is StorageKey.USER_LOCALE_OVERRIDE:
            if is_allowed_locale(value, self.allowed_locales):
                return None
            return f"Invalid override locale: {value}"
        if key is StorageKey.PREFERENCE_HISTORY:
            if not isinstance(value, list):
                return "Preference history must be a list"
            for index, entry in enumerate(value):
                parsed = parse_preference(entry, now=now, allowed=self.allowed_locales)
                if not parsed.ok:
                    return f"{parsed.reason} (index {index})"
        return None

    def validate_storage_integrity(self) -> OperationResult:
        issues = []
        preference = self.local.get(StorageKey.LOCALE_PREFERENCE)
        if preference is not None:
            reason = self._validate_value(StorageKey.LOCALE_PREFERENCE, preference)
            if reason:
                issues.append(f"Invalid preference data: {reason}")

        history = self.local.get(StorageKey.LOCALE_DETECTION_HISTORY)
        if history is not None:
            reason = self._validate_value(StorageKey.LOCALE_DETECTION_HISTORY, history)
            if reason:
                issues.append(f"Invalid history data: {reason}")

        if issues:
            logger.warning("reconcile.integrity_issues", issues=issues)
        return OperationResult(success=not issues, data={"issues": issues})

    def validate_storage_sync(self) -> list[str]:
        """Presence-only comparison of mirrored keys."""
        issues = []
        for key in SYNCED_KEYS:
            if self.local.exists(key) and not self.cookie.exists(key):
                issues.append(
                    f"{key.value} exists in local store but is missing from cookie store"
                )
        return issues

    def validate_specific_data(self, key: StorageKey | str) -> dict:
        errors: list[str] = []
        warnings: list[str] = []
        try:
            key = StorageKey(enum_value(key))
        except ValueError:
            return {
                "is_valid": False,
                "errors": [f"Unknown storage key: {key}"],
                "warnings": [],
                "data": {"has_local_data": False, "has_cookie_data": False},
            }

        local_value = self.local.get(key)
        has_local = local_value is not None
        has_cookie = self.cookie.exists(key)

        if has_local:
            reason = self._validate_value(key, local_value)
            if reason:
                errors.append(f"Local data invalid: {reason}")

        if has_cookie:
            if key in _JSON_COOKIE_KEYS:
                cookie_value, parse_error = self._cookie_json(key)
                if parse_error:
                    errors.append(f"Cookie data is not valid JSON: {parse_error}")
            else:
                cookie_value = self.cookie.get(key)
            if cookie_value is not None:
                reason = self._validate_value(key, cookie_value)
                if reason:
                    errors.append(f"Cookie data invalid: {reason}")

        if has_local and not has_cookie and key in SYNCED_KEYS:
            warnings.append("Data exists only in local store")
        if has_cookie and not has_local:
            warnings.append("Data exists only in cookie store")

        return {
            "is_valid": not errors,
            "errors": errors,
            "warnings": warnings,
            "data": {"has_local_data": has_local, "has_cookie_data": has_cookie},
        }

    def validate_all_data(self) -> dict[str, dict]:
        return {key.value: self.validate_specific_data(key) for key in StorageKey}

    def check_data_consistency(self) -> OperationResult:
        issues: list[str] = []
        warnings: list[str] = []

        local_pref = self.local.get(StorageKey.LOCALE_PREFERENCE)
        cookie_pref, parse_error = self._cookie_json(StorageKey.LOCALE_PREFERENCE)
        if parse_error:
            issues.append(f"Cookie preference is not valid JSON: {parse_error}")

        if isinstance(local_pref, dict) and isinstance(cookie_pref, dict):
            local_locale = local_pref.get("locale")
            cookie_locale = cookie_pref.get("locale")
            if local_locale != cookie_locale:
                issues.append(
                    f"Preference locale mismatch: local={local_locale}, cookie={cookie_locale}"
                )
            local_ts = local_pref.get("timestamp")
            cookie_ts = cookie_pref.get("timestamp")
            if isinstance(local_ts, (int, float)) and isinstance(cookie_ts, (int, float)):
                drift = abs(local_ts - cookie_ts)
                if drift > self.timestamp_threshold_ms:
                    warnings.append(f"Preference timestamps differ by {drift / 1000:.0f}s")

        local_override = self.local.get(StorageKey.USER_LOCALE_OVERRIDE)
        cookie_override = self.cookie.get(StorageKey.USER_LOCALE_OVERRIDE)
        if (
            local_override is not None
            and cookie_override is not None
            and local_override != cookie_override
        ):
            issues.append(
                f"Override mismatch: local={local_override}, cookie={cookie_override}"
            )

        if issues:
            logger.warning("reconcile.inconsistent", issues=issues, warnings=warnings)
        return OperationResult(
            success=not issues, data={"issues": issues, "warnings": warnings}
        )

    def fix_sync_issues(self) -> OperationResult:
        """Copy local values into the cookie store where the cookie lacks them.

        Never copies cookie -> local. Writes nothing when there is no gap.
        """
        fixed = 0
        actions: list[str] = []
        errors: list[str] = []

        for key in SYNCED_KEYS:
            if self.cookie.exists(key):
                continue
            value = self.local.get(key)
            if value is None:
                continue
            if self._validate_value(key, value):
                actions.append(f"Skipped {key.value}: local copy is invalid")
                continue
            cookie_value = json.dumps(value) if key in _JSON_COOKIE_KEYS else str(value)
            result = self.cookie.set(key, cookie_value)
            if result.success:
                fixed += 1
                actions.append(f"Copied {key.value} from local store to cookie store")
            else:
                errors.append(f"{key.value}: {result.error}")

        remaining = self.validate_storage_sync() if fixed else []
        if fixed:
            logger.info("reconcile.sync_fixed", fixed=fixed, actions=actions)
        return OperationResult(
            success=not errors,
            data={"fixed_issues": fixed, "actions": actions, "remaining_issues": remaining},
            error="; ".join(errors) if errors else None,
        )

    def get_validation_summary(self) -> dict:
        results = self.validate_all_data()
        return {
            "total_keys": len(results),
            "valid_keys": sum(1 for r in results.values() if r["is_valid"]),
            "invalid_keys": sum(1 for r in results.values() if not r["is_valid"]),
            "warning_keys": sum(1 for r in results.values() if r["warnings"]),
            "sync_issues": len(self.validate_storage_sync()),
        }

    def cleanup_invalid_preferences(self) -> OperationResult:
        """Remove preference copies that fail validation, from either backend."""
        removed = 0
        key = StorageKey.LOCALE_PREFERENCE

        local_pref = self.local.get(key)
        if self.local.exists(key) and (
            local_pref is None or self._validate_value(key, local_pref)
        ):
            if self.local.remove(key).success:
                removed += 1

        if self.cookie.exists(key):
            cookie_pref, parse_error = self._cookie_json(key)
            if parse_error or self._validate_value(key, cookie_pref):
                if self.cookie.remove(key).success:
                    removed += 1

        if removed:
            logger.info("reconcile.invalid_preferences_removed", removed=removed)
        return OperationResult(success=True, data=removed)
