"""Per-sensor processing latency profiler.

Each sensor callback has to finish well inside its sampling period (5 ms for
a 200 Hz gyroscope). The profiler times every callback per sensor and counts
the ones that blew the budget.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator


@dataclass
class StageStats:
    """Timing statistics for one sensor stage."""
    name: str
    avg_ms: float
    min_ms: float
    max_ms: float
    p95_ms: float
    call_count: int
    over_budget: int


class LatencyProfiler:
    """Times per-sample processing for each sensor stage.

    Usage:
        profiler = LatencyProfiler(budget_ms=1.0)

        with profiler.stage("gyroscope"):
            event = flick.update(omega, t)

        print(profiler.summary())
    """

    STAGES = ["orientation", "gyroscope", "accelerometer"]

    def __init__(self, window_size: int = 512, budget_ms: float = 1.0):
        self._window_size = window_size
        self.budget_ms = budget_ms
        self._timings: dict[str, deque[float]] = {
            s: deque(maxlen=window_size) for s in self.STAGES
        }
        self._counts: dict[str, int] = {s: 0 for s in self.STAGES}
        self._over: dict[str, int] = {s: 0 for s in self.STAGES}
        self._lock = threading.Lock()
        self._enabled = True

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Time the enclosed block under ``name``."""
        if not self._enabled:
            yield
            return

        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - t0) * 1000.0)

    def record(self, name: str, elapsed_ms: float):
        with self._lock:
            if name not in self._timings:
                self._timings[name] = deque(maxlen=self._window_size)
                self._counts[name] = 0
                self._over[name] = 0
            self._timings[name].append(elapsed_ms)
            self._counts[name] += 1
            if elapsed_ms > self.budget_ms:
                self._over[name] += 1

    def get_stage_stats(self, name: str) -> StageStats | None:
        with self._lock:
            timings = self._timings.get(name)
            if not timings:
                return None
            sorted_t = sorted(timings)
            count = self._counts.get(name, 0)
            over = self._over.get(name, 0)

        n = len(sorted_t)
        return StageStats(
            name=name,
            avg_ms=sum(sorted_t) / n,
            min_ms=sorted_t[0],
            max_ms=sorted_t[-1],
            p95_ms=sorted_t[min(n - 1, int(n * 0.95))],
            call_count=count,
            over_budget=over,
        )

    def summary(self) -> dict[str, dict]:
        result = {}
        for name in list(self._timings):
            stats = self.get_stage_stats(name)
            if stats and stats.call_count > 0:
                result[name] = {
                    "avg_ms": round(stats.avg_ms, 4),
                    "max_ms": round(stats.max_ms, 4),
                    "p95_ms": round(stats.p95_ms, 4),
                    "calls": stats.call_count,
                    "over_budget": stats.over_budget,
                }
        return result

    def reset(self):
        with self._lock:
            for d in self._timings.values():
                d.clear()
            for k in self._counts:
                self._counts[k] = 0
                self._over[k] = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool):
        self._enabled = value
