"""User preference, override and the preference change log."""

import json
from collections.abc import Callable, Iterable

import structlog

from .backends import CookieStore, LocalStore
from .models import (
    MAX_PREFERENCE_HISTORY,
    Locale,
    LocaleSource,
    OperationResult,
    PreferenceRecord,
    StorageKey,
    enum_value,
    now_ms,
)
from .validation import is_allowed_locale, parse_preference

logger = structlog.get_logger()

# Same locale+source recorded again within this window is treated as a repeat
DUPLICATE_WINDOW_MS = 1000


class PreferenceStore:
    """Writes preferences to both backends; reads local first, then cookie."""

    def __init__(
        self,
        local: LocalStore,
        cookie: CookieStore,
        allowed_locales: Iterable[str] | None = None,
        max_history: int = MAX_PREFERENCE_HISTORY,
        clock: Callable[[], int] = now_ms,
    ):
        self.local = local
        self.cookie = cookie
        self.allowed_locales = frozenset(allowed_locales) if allowed_locales else None
        self.max_history = max_history
        self.clock = clock

    def save_user_preference(self, preference: PreferenceRecord | dict) -> OperationResult:
        data = preference.to_dict() if isinstance(preference, PreferenceRecord) else preference
        parsed = parse_preference(data, now=self.clock(), allowed=self.allowed_locales)
        if not parsed.ok:
            return OperationResult(success=False, error=parsed.reason)

        record: PreferenceRecord = parsed.value
        payload = record.to_dict()
        local_result = self.local.set(StorageKey.LOCALE_PREFERENCE, payload)
        cookie_result = self.cookie.set(StorageKey.LOCALE_PREFERENCE, json.dumps(payload))

        errors = [r.error for r in (local_result, cookie_result) if not r.success]
        if errors:
            logger.warning("preference.save_failed", errors=errors)
            return OperationResult(success=False, error="; ".join(e or "" for e in errors))
        logger.debug("preference.saved", locale=record.locale, source=record.source)
        return OperationResult(success=True, data=record, source="localStorage")

    def get_user_preference(self) -> OperationResult:
        """Absent data is success with no record; invalid copies are skipped."""
        try:
            return self._read_preference()
        except Exception as e:
            logger.error("preference.read_failed", error=str(e))
            return OperationResult(success=False, error=str(e))

    def _read_preference(self) -> OperationResult:
        now = self.clock()
        local_value = self.local.get(StorageKey.LOCALE_PREFERENCE)
        if local_value is not None:
            parsed = parse_preference(local_value, now=now, allowed=self.allowed_locales)
            if parsed.ok:
                return OperationResult(success=True, data=parsed.value, source="localStorage")
            logger.warning("preference.invalid_local", reason=parsed.reason)

        raw_cookie = self.cookie.get(StorageKey.LOCALE_PREFERENCE)
        if raw_cookie is not None:
            try:
                cookie_value = json.loads(raw_cookie)
            except json.JSONDecodeError as e:
                logger.warning("preference.invalid_cookie_json", error=str(e))
                cookie_value = None
            parsed = parse_preference(cookie_value, now=now, allowed=self.allowed_locales)
            if parsed.ok:
                return OperationResult(success=True, data=parsed.value, source="cookie")

        return OperationResult(success=True, data=None, source="none")

    def set_user_override(self, locale: Locale | str) -> OperationResult:
        value = enum_value(locale)
        if not is_allowed_locale(value, self.allowed_locales):
            return OperationResult(success=False, error=f"Unsupported locale: {value}")

        saved = self.save_user_preference(
            PreferenceRecord(
                locale=value,
                source=LocaleSource.USER.value,
                timestamp=self.clock(),
                confidence=1.0,
            )
        )
        if not saved.success:
            return saved

        local_result = self.local.set(StorageKey.USER_LOCALE_OVERRIDE, value)
        cookie_result = self.cookie.set(StorageKey.USER_LOCALE_OVERRIDE, value)
        errors = [r.error for r in (local_result, cookie_result) if not r.success]
        if errors:
            return OperationResult(success=False, error="; ".join(e or "" for e in errors))
        return OperationResult(success=True, data=value)

    def get_user_override(self) -> str | None:
        for value in (
            self.local.get(StorageKey.USER_LOCALE_OVERRIDE),
            self.cookie.get(StorageKey.USER_LOCALE_OVERRIDE),
        ):
            if is_allowed_locale(value, self.allowed_locales):
                return value
        return None

    def clear_user_override(self) -> OperationResult:
        local_result = self.local.remove(StorageKey.USER_LOCALE_OVERRIDE)
        cookie_result = self.cookie.remove(StorageKey.USER_LOCALE_OVERRIDE)
        if not local_result.success or not cookie_result.success:
            return OperationResult(
                success=False, error=local_result.error or cookie_result.error
            )
        return OperationResult(success=True)

    def _stored_history(self) -> list[dict]:
        stored = self.local.get(StorageKey.PREFERENCE_HISTORY)
        return stored if isinstance(stored, list) else []

    def record_preference_history(self, preference: PreferenceRecord) -> OperationResult:
        entries = self._stored_history()
        for entry in entries:
            if (
                isinstance(entry, dict)
                and entry.get("locale") == preference.locale
                and entry.get("source") == preference.source
                and isinstance(entry.get("timestamp"), (int, float))
                and abs(preference.timestamp - entry["timestamp"]) < DUPLICATE_WINDOW_MS
            ):
                return OperationResult(success=True, data=False)

        entries = [preference.to_dict(), *entries][: self.max_history]
        result = self.local.set(StorageKey.PREFERENCE_HISTORY, entries)
        if not result.success:
            return result
        return OperationResult(success=True, data=True)

    def get_preference_history(self) -> list[PreferenceRecord]:
        """Stored log merged with the current preference, newest first."""
        try:
            now = self.clock()
            records: dict[int, PreferenceRecord] = {}
            for entry in self._stored_history():
                parsed = parse_preference(entry, now=now, allowed=self.allowed_locales)
                if parsed.ok:
                    records.setdefault(parsed.value.timestamp, parsed.value)

            current = self.get_user_preference()
            if current.success and current.data is not None:
                records.setdefault(current.data.timestamp, current.data)
        except Exception as e:
            logger.error("preference.history_read_failed", error=str(e))
            return []
        return sorted(records.values(), key=lambda r: r.timestamp, reverse=True)

    def clear_preference_history(self) -> OperationResult:
        return self.local.remove(StorageKey.PREFERENCE_HISTORY)
