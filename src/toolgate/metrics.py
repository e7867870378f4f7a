"""Process-wide counters and duration histograms.

One Metrics instance is created at startup and handed to every component
that records something. Updates take a lock so sessions running on other
threads (or future executors) can share it.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class Histogram:
    """Running count/sum of observed durations in milliseconds."""

    count: int = 0
    sum: float = 0.0


class Metrics:
    """Counter and histogram registry with Prometheus-style text export."""

    def __init__(self) -> None:
        self._counters: dict[str, float] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()

    def increment(self, name: str, value: float = 1) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def observe(self, name: str, milliseconds: float) -> None:
        with self._lock:
            entry = self._histograms.setdefault(name, Histogram())
            entry.count += 1
            entry.sum += milliseconds

    def timer(self) -> Callable[[], float]:
        """Start a timer; calling the result returns elapsed milliseconds."""
        start = time.perf_counter()

        def stop() -> float:
            return (time.perf_counter() - start) * 1000

        return stop

    def counter(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0)

    def histogram(self, name: str) -> Histogram:
        with self._lock:
            entry = self._histograms.get(name)
            return Histogram(entry.count, entry.sum) if entry else Histogram()

    def render(self) -> str:
        """Render all metrics in the Prometheus text exposition format."""
        with self._lock:
            counters = list(self._counters.items())
            histograms = [(n, Histogram(h.count, h.sum)) for n, h in self._histograms.items()]

        lines: list[str] = []
        for name, value in counters:
            lines.append(f"# TYPE {name} counter")
            lines.append(f"{name} {_format_number(value)}")
        for name, entry in histograms:
            lines.append(f"# TYPE {name} summary")
            lines.append(f"{name}_count {entry.count}")
            lines.append(f"{name}_sum {_format_number(entry.sum)}")
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}"
