"""Key-value backends: a cookie jar and a SQLite-backed local store.

Both expose ``get``/``set``/``remove``. Neither raises: storage, quota and
serialization failures come back as ``OperationResult(success=False)``.
"""

import json
import sqlite3
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

import structlog

from db import wal_connect

from .models import (
    MAX_COOKIE_SIZE,
    MAX_LOCAL_STORE_SIZE,
    OperationResult,
    StorageKey,
    enum_value,
)

logger = structlog.get_logger()

COOKIE_MAX_AGE_S = 365 * 24 * 60 * 60


def key_name(key: StorageKey | str) -> str:
    return enum_value(key)


class CookieStore:
    """In-process cookie jar with browser cookie size limits.

    Values are strings (objects must be JSON-encoded by the caller) and are
    kept URL-encoded, exactly as they would travel in a ``Cookie`` header.
    When ``jar_path`` is given the jar is mirrored to a JSON file so separate
    CLI invocations see the same cookies.
    """

    def __init__(
        self,
        max_size: int = MAX_COOKIE_SIZE,
        max_age_s: int = COOKIE_MAX_AGE_S,
        secure: bool = False,
        path: str = "/",
        same_site: str = "Lax",
        jar_path: str | Path | None = None,
    ):
        self.max_size = max_size
        self.max_age_s = max_age_s
        self.secure = secure
        self.path = path
        self.same_site = same_site
        self.jar_path = Path(jar_path).expanduser() if jar_path else None
        self._jar: dict[str, str] = {}
        self._load_jar()

    def _load_jar(self):
        if not self.jar_path or not self.jar_path.exists():
            return
        try:
            data = json.loads(self.jar_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("cookie.jar_load_failed", path=str(self.jar_path), error=str(e))
            return
        if isinstance(data, dict):
            self._jar = {str(k): str(v) for k, v in data.items()}

    def _persist_jar(self) -> str | None:
        if not self.jar_path:
            return None
        try:
            self.jar_path.parent.mkdir(parents=True, exist_ok=True)
            self.jar_path.write_text(json.dumps(self._jar))
        except OSError as e:
            logger.warning("cookie.jar_save_failed", path=str(self.jar_path), error=str(e))
            return str(e)
        return None

    def get(self, key: StorageKey | str) -> str | None:
        raw = self._jar.get(key_name(key))
        if raw is None:
            return None
        try:
            return unquote(raw, errors="strict")
        except UnicodeDecodeError:
            logger.warning("cookie.decode_failed", key=key_name(key))
            return None

    def set(self, key: StorageKey | str, value: Any) -> OperationResult:
        name = key_name(key)
        if not isinstance(value, str):
            try:
                value = json.dumps(value)
            except (TypeError, ValueError) as e:
                logger.warning("cookie.serialize_failed", key=name, error=str(e))
                return OperationResult(success=False, error=str(e), source="cookie")

        encoded = quote(value, safe="")
        size = len(f"{name}={encoded}".encode())
        if size > self.max_size:
            logger.warning("cookie.size_exceeded", key=name, size=size, limit=self.max_size)
            return OperationResult(
                success=False, error="Cookie size exceeds limit", source="cookie"
            )

        previous = self._jar.get(name)
        self._jar[name] = encoded
        error = self._persist_jar()
        if error:
            if previous is None:
                self._jar.pop(name, None)
            else:
                self._jar[name] = previous
            return OperationResult(success=False, error=error, source="cookie")
        return OperationResult(success=True, source="cookie")

    def remove(self, key: StorageKey | str) -> OperationResult:
        self._jar.pop(key_name(key), None)
        error = self._persist_jar()
        if error:
            return OperationResult(success=False, error=error, source="cookie")
        return OperationResult(success=True, source="cookie")

    def exists(self, key: StorageKey | str) -> bool:
        return key_name(key) in self._jar

    def get_all(self) -> dict[str, str]:
        return {name: unquote(raw) for name, raw in self._jar.items()}

    def clear_all(self) -> OperationResult:
        self._jar.clear()
        error = self._persist_jar()
        if error:
            return OperationResult(success=False, error=error, source="cookie")
        return OperationResult(success=True, source="cookie")

    def get_size(self, key: StorageKey | str) -> int:
        name = key_name(key)
        raw = self._jar.get(name)
        return len(f"{name}={raw}".encode()) if raw is not None else 0

    def get_total_size(self) -> int:
        return sum(self.get_size(name) for name in self._jar)

    def is_near_limit(self, key: StorageKey | str, threshold: float = 0.8) -> bool:
        return self.get_size(key) >= self.max_size * threshold

    def to_header(self, key: StorageKey | str) -> str | None:
        """Render a ``Set-Cookie`` header value for one stored cookie."""
        name = key_name(key)
        raw = self._jar.get(name)
        if raw is None:
            return None
        parts = [
            f"{name}={raw}",
            f"Max-Age={self.max_age_s}",
            f"Path={self.path}",
            f"SameSite={self.same_site}",
        ]
        if self.secure:
            parts.append("Secure")
        return "; ".join(parts)

    def load_header(self, cookie_header: str) -> int:
        """Populate the jar from a request ``Cookie`` header. Returns count loaded."""
        loaded = 0
        for pair in cookie_header.split(";"):
            name, sep, raw = pair.strip().partition("=")
            if not sep or not name:
                continue
            self._jar[name] = raw
            loaded += 1
        if loaded:
            self._persist_jar()
        return loaded


class LocalStore:
    """Persistent JSON key-value store on SQLite."""

    def __init__(self, db_path: str | Path, max_size: int = MAX_LOCAL_STORE_SIZE):
        self.db_path = Path(db_path).expanduser()
        self.max_size = max_size
        self._init_db()

    def _init_db(self):
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

    def get(self, key: StorageKey | str) -> Any:
        name = key_name(key)
        try:
            with wal_connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (name,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning("local.get_failed", key=name, error=str(e))
            return None
        if not row:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.warning("local.decode_failed", key=name, error=str(e))
            return None

    def get_raw(self, key: StorageKey | str) -> str | None:
        """Stored JSON text, undecoded."""
        name = key_name(key)
        try:
            with wal_connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (name,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning("local.get_failed", key=name, error=str(e))
            return None
        return row[0] if row else None

    def set(self, key: StorageKey | str, value: Any) -> OperationResult:
        name = key_name(key)
        try:
            text = json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            logger.warning("local.serialize_failed", key=name, error=str(e))
            return OperationResult(success=False, error=str(e), source="localStorage")

        try:
            with wal_connect(self.db_path) as conn:
                row = conn.execute(
                    """SELECT COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0)
                       FROM kv_store WHERE key != ?""",
                    (name,),
                ).fetchone()
                if row[0] + len(name) + len(text) > self.max_size:
                    logger.warning("local.quota_exceeded", key=name, limit=self.max_size)
                    return OperationResult(
                        success=False, error="Storage quota exceeded", source="localStorage"
                    )
                conn.execute(
                    """INSERT INTO kv_store (key, value, updated_at)
                       VALUES (?, ?, CURRENT_TIMESTAMP)
                       ON CONFLICT(key) DO UPDATE SET
                           value = excluded.value,
                           updated_at = excluded.updated_at""",
                    (name, text),
                )
        except sqlite3.Error as e:
            logger.error("local.set_failed", key=name, error=str(e))
            return OperationResult(success=False, error=str(e), source="localStorage")
        return OperationResult(success=True, source="localStorage")

    def remove(self, key: StorageKey | str) -> OperationResult:
        name = key_name(key)
        try:
            with wal_connect(self.db_path) as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (name,))
        except sqlite3.Error as e:
            logger.error("local.remove_failed", key=name, error=str(e))
            return OperationResult(success=False, error=str(e), source="localStorage")
        return OperationResult(success=True, source="localStorage")

    def exists(self, key: StorageKey | str) -> bool:
        return self.get_raw(key) is not None

    def keys(self) -> list[str]:
        try:
            with wal_connect(self.db_path) as conn:
                rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        except sqlite3.Error as e:
            logger.warning("local.keys_failed", error=str(e))
            return []
        return [r[0] for r in rows]

    def get_all(self) -> dict[str, Any]:
        return {name: self.get(name) for name in self.keys()}

    def clear(self) -> OperationResult:
        try:
            with wal_connect(self.db_path) as conn:
                conn.execute("DELETE FROM kv_store")
        except sqlite3.Error as e:
            logger.error("local.clear_failed", error=str(e))
            return OperationResult(success=False, error=str(e), source="localStorage")
        return OperationResult(success=True, source="localStorage")

    def get_size(self, key: StorageKey | str | None = None) -> int:
        """Bytes used by one key, or by the whole store when ``key`` is None."""
        try:
            with wal_connect(self.db_path) as conn:
                if key is None:
                    row = conn.execute(
                        "SELECT COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0) FROM kv_store"
                    ).fetchone()
                else:
                    row = conn.execute(
                        """SELECT COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0)
                           FROM kv_store WHERE key = ?""",
                        (key_name(key),),
                    ).fetchone()
        except sqlite3.Error as e:
            logger.warning("local.size_failed", error=str(e))
            return 0
        return int(row[0])
