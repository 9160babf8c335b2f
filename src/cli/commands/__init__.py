"""CLI command modules."""

from .history import history
from .prefs import prefs
from .storage import check, fix_sync, maintain, stats

__all__ = ["history", "prefs", "check", "fix_sync", "maintain", "stats"]
