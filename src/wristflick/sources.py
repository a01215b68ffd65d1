"""Sensor sources: where samples come from.

The engine only needs three things from a platform sensor service: which
sensors exist, a way to register a push listener at a requested period, and
a way to unregister it again. ``ReplaySource`` implements that contract over
an in-memory list of samples, which is how recordings, synthetic traces and
tests drive the engine.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Callable, Iterable, Optional, Protocol

from wristflick.config import ConfigError
from wristflick.samples import SensorSample, SensorType

logger = logging.getLogger("wristflick.sources")

SampleListener = Callable[[SensorSample], None]


class SensorUnavailableError(ConfigError):
    """A sensor required by the engine configuration is missing on the device."""

    def __init__(self, missing: Iterable[SensorType]):
        self.missing = sorted(missing, key=lambda s: s.value)
        names = ", ".join(s.value for s in self.missing)
        super().__init__(f"Required sensor(s) not available: {names}")


class SensorSource(Protocol):
    def available_sensors(self) -> set[SensorType]:
        ...

    def register(self, sensor: SensorType, listener: SampleListener, period_us: int) -> None:
        ...

    def unregister(self, listener: SampleListener) -> None:
        ...


class ReplaySource:
    """In-memory sensor source that pushes queued samples to listeners.

    Usage:
        source = ReplaySource(samples)
        engine.start(source=source)
        source.play()              # deliver in timestamp order
        source.play_threaded()     # or one delivery thread per sensor
    """

    def __init__(
        self,
        samples: Iterable[SensorSample] = (),
        sensors: Optional[Iterable[SensorType]] = None,
    ):
        self._sensors = set(sensors) if sensors is not None else set(SensorType)
        self._pending: list[SensorSample] = list(samples)
        self._listeners: dict[SensorType, list[SampleListener]] = defaultdict(list)
        self._periods: dict[SensorType, int] = {}
        self._lock = threading.Lock()
        self.delivered = 0

    def available_sensors(self) -> set[SensorType]:
        return set(self._sensors)

    def register(self, sensor: SensorType, listener: SampleListener, period_us: int) -> None:
        if sensor not in self._sensors:
            raise SensorUnavailableError([sensor])
        with self._lock:
            self._listeners[sensor].append(listener)
            self._periods[sensor] = period_us
        logger.debug("Registered %s listener at %d us", sensor.value, period_us)

    def unregister(self, listener: SampleListener) -> None:
        with self._lock:
            for sensor in list(self._listeners):
                self._listeners[sensor] = [l for l in self._listeners[sensor] if l != listener]
                if not self._listeners[sensor]:
                    del self._listeners[sensor]
                    self._periods.pop(sensor, None)

    def listener_count(self, sensor: Optional[SensorType] = None) -> int:
        with self._lock:
            if sensor is not None:
                return len(self._listeners.get(sensor, []))
            return sum(len(ls) for ls in self._listeners.values())

    def requested_period(self, sensor: SensorType) -> Optional[int]:
        return self._periods.get(sensor)

    def extend(self, samples: Iterable[SensorSample]):
        """Queue more samples for the next ``play``."""
        self._pending.extend(samples)

    def push(self, sample: SensorSample):
        """Deliver one sample immediately to its sensor's listeners."""
        with self._lock:
            listeners = list(self._listeners.get(sample.sensor, ()))
        for listener in listeners:
            listener(sample)
        if listeners:
            with self._lock:
                self.delivered += 1

    def play(self) -> int:
        """Deliver all queued samples in timestamp order. Returns the count."""
        pending = sorted(self._pending, key=lambda s: s.timestamp_ns)
        self._pending = []
        for sample in pending:
            self.push(sample)
        return len(pending)

    def play_threaded(self, timeout: float = 30.0) -> int:
        """Deliver each sensor's queued samples from its own thread."""
        by_sensor: dict[SensorType, list[SensorSample]] = defaultdict(list)
        for sample in sorted(self._pending, key=lambda s: s.timestamp_ns):
            by_sensor[sample.sensor].append(sample)
        self._pending = []

        def run(samples: list[SensorSample]):
            for sample in samples:
                self.push(sample)

        threads = [
            threading.Thread(target=run, args=(samples,), name=f"sensor-{sensor.value}", daemon=True)
            for sensor, samples in by_sensor.items()
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout)

        return sum(len(s) for s in by_sensor.values())
