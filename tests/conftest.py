"""Shared test fixtures for locale storage."""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from locale_storage.backends import CookieStore, LocalStore  # noqa: E402
from locale_storage.cache import HistoryCache  # noqa: E402
from locale_storage.history import HistoryStore  # noqa: E402
from locale_storage.manager import LocaleStorageManager  # noqa: E402

# 2023-11-14T22:13:20Z
BASE_TIME_MS = 1_700_000_000_000


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, start: int = BASE_TIME_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def local(tmp_path):
    return LocalStore(tmp_path / "storage.db")


@pytest.fixture
def cookie():
    return CookieStore()


@pytest.fixture
def cache(clock):
    return HistoryCache(clock=clock)


@pytest.fixture
def store(local, cache, clock):
    return HistoryStore(local, cache, clock=clock)


@pytest.fixture
def manager(local, cookie, clock):
    m = LocaleStorageManager(local, cookie, clock=clock, enable_console_log=False)
    yield m
    m.shutdown()
