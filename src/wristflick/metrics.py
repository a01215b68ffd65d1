"""Prometheus-style counters for the gesture engine.

Generates the text exposition format directly; there is no HTTP endpoint
here, a host application can serve ``render()`` however it likes.

Tracked metrics:
- wristflick_samples_total (counter, by sensor)
- wristflick_samples_suppressed_total (counter, by reason)
- wristflick_gestures_total (counter, by gesture and detector)
- wristflick_events_dropped_total (counter)
- wristflick_calibrations_total (counter)
- wristflick_sample_latency_seconds (histogram)
"""

from __future__ import annotations

import threading
import time
from collections import Counter


class _Histogram:
    """Cumulative histogram with fixed buckets."""

    def __init__(self, buckets: list[float]):
        self.buckets = sorted(buckets)
        self.bucket_counts = [0] * len(self.buckets)
        self.count = 0
        self.sum = 0.0
        self._lock = threading.Lock()

    def observe(self, value: float):
        with self._lock:
            self.count += 1
            self.sum += value
            for i, b in enumerate(self.buckets):
                if value <= b:
                    self.bucket_counts[i] += 1
                    break

    def render(self, name: str, help_text: str) -> str:
        lines = [
            f"# HELP {name} {help_text}",
            f"# TYPE {name} histogram",
        ]
        with self._lock:
            cumulative = 0
            for b, n in zip(self.buckets, self.bucket_counts):
                cumulative += n
                lines.append(f'{name}_bucket{{le="{b}"}} {cumulative}')
            lines.append(f'{name}_bucket{{le="+Inf"}} {self.count}')
            lines.append(f"{name}_sum {self.sum:.6f}")
            lines.append(f"{name}_count {self.count}")
        return "\n".join(lines)


class MetricsCollector:
    """Thread-safe counters fed by the engine's sensor callbacks."""

    def __init__(self):
        self._samples: Counter = Counter()
        self._suppressed: Counter = Counter()
        self._gestures: Counter = Counter()
        self._events_dropped = 0
        self._calibrations = 0
        self._lock = threading.Lock()

        # 10us .. 5ms: a 200 Hz sensor has a 5 ms period
        self._latency = _Histogram(
            [0.00001, 0.00005, 0.0001, 0.0005, 0.001, 0.002, 0.005]
        )
        self._start_time = time.time()

    def record_sample(self, sensor: str, latency_seconds: float | None = None):
        with self._lock:
            self._samples[sensor] += 1
        if latency_seconds is not None:
            self._latency.observe(latency_seconds)

    def record_suppressed(self, reason: str):
        with self._lock:
            self._suppressed[reason] += 1

    def record_gesture(self, gesture: str, detector: str):
        with self._lock:
            self._gestures[(gesture, detector)] += 1

    def record_dropped_event(self):
        with self._lock:
            self._events_dropped += 1

    def record_calibration(self):
        with self._lock:
            self._calibrations += 1

    def render(self) -> str:
        """Render all metrics in Prometheus text exposition format."""
        lines: list[str] = []

        lines.append("# HELP wristflick_uptime_seconds Time since collector creation")
        lines.append("# TYPE wristflick_uptime_seconds gauge")
        lines.append(f"wristflick_uptime_seconds {time.time() - self._start_time:.1f}")
        lines.append("")

        with self._lock:
            samples = sorted(self._samples.items())
            suppressed = sorted(self._suppressed.items())
            gestures = sorted(self._gestures.items())
            dropped = self._events_dropped
            calibrations = self._calibrations

        lines.append("# HELP wristflick_samples_total Sensor samples processed")
        lines.append("# TYPE wristflick_samples_total counter")
        for sensor, count in samples:
            lines.append(f'wristflick_samples_total{{sensor="{sensor}"}} {count}')
        lines.append("")

        lines.append("# HELP wristflick_samples_suppressed_total Samples ignored or held")
        lines.append("# TYPE wristflick_samples_suppressed_total counter")
        for reason, count in suppressed:
            lines.append(f'wristflick_samples_suppressed_total{{reason="{reason}"}} {count}')
        lines.append("")

        lines.append("# HELP wristflick_gestures_total Gesture events emitted")
        lines.append("# TYPE wristflick_gestures_total counter")
        for (gesture, detector), count in gestures:
            lines.append(
                f'wristflick_gestures_total{{gesture="{gesture}",detector="{detector}"}} {count}'
            )
        lines.append("")

        lines.append("# HELP wristflick_events_dropped_total Events lost to a full channel")
        lines.append("# TYPE wristflick_events_dropped_total counter")
        lines.append(f"wristflick_events_dropped_total {dropped}")
        lines.append("")

        lines.append("# HELP wristflick_calibrations_total Neutral-pose captures")
        lines.append("# TYPE wristflick_calibrations_total counter")
        lines.append(f"wristflick_calibrations_total {calibrations}")
        lines.append("")

        lines.append(self._latency.render(
            "wristflick_sample_latency_seconds",
            "Per-sample processing latency in seconds",
        ))
        lines.append("")

        return "\n".join(lines) + "\n"

    @property
    def sample_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._samples)

    @property
    def gesture_counts(self) -> dict[str, int]:
        """Gesture totals keyed by gesture type, summed over detectors."""
        totals: Counter = Counter()
        with self._lock:
            for (gesture, _detector), count in self._gestures.items():
                totals[gesture] += count
        return dict(totals)

    @property
    def events_dropped(self) -> int:
        return self._events_dropped
