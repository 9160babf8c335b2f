"""Observability: counters and read-path latency timers for the storage layer."""

import time
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger().bind(source="observability")


class Metrics:
    """Dict-based collector for counters and timers (durations in milliseconds)."""

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}

    def counter(self, name: str, value: int = 1):
        """Increment a counter by the given value."""
        self._counters[name] = self._counters.get(name, 0) + value

    def get_counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    @contextmanager
    def timer(self, name: str):
        """Time the enclosed block and record its duration under ``name``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - start) * 1000)

    def record(self, name: str, duration_ms: float):
        self._timers.setdefault(name, []).append(duration_ms)

    def average(self, name: str) -> float | None:
        """Mean duration for a timer, or None if it never ran."""
        durations = self._timers.get(name)
        if not durations:
            return None
        return sum(durations) / len(durations)

    def summary(self) -> dict[str, Any]:
        """Return a summary of all collected metrics."""
        timer_summary = {}
        for name, durations in self._timers.items():
            if durations:
                timer_summary[name] = {
                    "count": len(durations),
                    "total_ms": sum(durations),
                    "avg_ms": sum(durations) / len(durations),
                    "min_ms": min(durations),
                    "max_ms": max(durations),
                }
            else:
                timer_summary[name] = {"count": 0}

        return {
            "counters": dict(self._counters),
            "timers": timer_summary,
        }

    def reset(self):
        """Clear all metrics."""
        self._counters.clear()
        self._timers.clear()


# Module-level default; stores accept their own instance for isolation
metrics = Metrics()


def log_metrics_summary(collector: Metrics | None = None):
    """Log the current metrics summary via structlog."""
    summary = (collector or metrics).summary()
    logger.info("metrics_summary", **summary)
