"""Gesture engine: sensor samples in, aim angles and gesture events out.

The engine owns one aim estimator and the configured motion detectors, and
fans each incoming sample out to the component for its sensor:

    orientation   -> AimEstimator       -> on_aim(angle)
    gyroscope     -> FlickDetector      -> on_gesture(SELECT)
    accelerometer -> ClenchDetector     -> on_gesture(SELECT)
                  -> ShakeDetector      -> on_gesture(DELETE)

Sensors may deliver on separate threads. Each sensor's state has its own
lock, taken without blocking: a sample that arrives while the previous one
for the same sensor is still being processed is dropped, never queued.
Events are computed under the sensor lock and emitted after it is released,
and only while the engine is running.

Usage:
    engine = GestureEngine(get_preset("flick"))
    engine.on_aim(lambda angle: ring.highlight(quantize_arc(angle, 4)))
    engine.start(on_gesture, source=platform_sensors)
    ...
    engine.calibrate()   # user taps in neutral pose
    ...
    engine.stop()
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

import numpy as np

from wristflick.aim import AimEstimator
from wristflick.calibration import CalibrationOffset, CalibrationStore
from wristflick.channel import EventChannel
from wristflick.config import ConfigError, EngineConfig
from wristflick.detectors import (
    BurstDetector,
    ClenchDetector,
    DetectorState,
    FlickDetector,
    GestureEvent,
    GestureType,
    ShakeDetector,
)
from wristflick.metrics import MetricsCollector
from wristflick.profiler import LatencyProfiler
from wristflick.samples import SensorSample, SensorType
from wristflick.sources import SensorSource, SensorUnavailableError

logger = logging.getLogger("wristflick.engine")

AimCallback = Callable[[float], None]
GestureCallback = Callable[[GestureEvent], None]

_ORIENTATION = "orientation"
_GYROSCOPE = "gyroscope"
_ACCELEROMETER = "accelerometer"


@dataclass
class EngineStats:
    """Runtime counters."""
    running: bool
    samples: dict[str, int]
    aim_updates: int
    suppressed: int
    busy_drops: int
    gestures: dict[str, int]
    events_dropped: int
    calibrations: int
    profiler_summary: dict = field(default_factory=dict)


class GestureEngine:
    """Composition root for aim estimation and gesture detection.

    Args:
        config: Engine configuration (defaults to the flick preset).
        source: Sensor source used by ``start`` when none is passed there.
        metrics: Shared metrics collector, created if omitted.
        enable_profiling: Time every sensor callback.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        source: Optional[SensorSource] = None,
        metrics: Optional[MetricsCollector] = None,
        enable_profiling: bool = True,
    ):
        self.config = config or EngineConfig()
        self._source = source
        self.metrics = metrics or MetricsCollector()
        self.profiler = LatencyProfiler(budget_ms=1.0)
        self.profiler.enabled = enable_profiling

        self.calibration = CalibrationStore()
        self.aim = AimEstimator(self.config.aim)
        self.flick = FlickDetector(self.config.flick) if "flick" in self.config.select_detectors else None
        self.clench = ClenchDetector(self.config.clench) if "clench" in self.config.select_detectors else None
        self.shake = ShakeDetector(self.config.shake) if self.config.delete_enabled else None
        self.events: EventChannel[GestureEvent] = EventChannel(self.config.channel_capacity)

        self._locks = {
            _ORIENTATION: threading.Lock(),
            _GYROSCOPE: threading.Lock(),
            _ACCELEROMETER: threading.Lock(),
        }
        self._callback_lock = threading.Lock()
        self._aim_callbacks: list[AimCallback] = []
        self._gesture_callbacks: list[GestureCallback] = []

        self._running = threading.Event()
        self._registered: Optional[SensorSource] = None
        self._orientation_sensor: Optional[SensorType] = None

        self._stats_lock = threading.Lock()
        self._counts: Counter = Counter()

    # --- Callbacks ---

    def on_aim(self, callback: AimCallback):
        """Register a callback for visible aim angles (radians)."""
        with self._callback_lock:
            self._aim_callbacks.append(callback)

    def on_gesture(self, callback: GestureCallback):
        """Register a callback for gesture events."""
        with self._callback_lock:
            self._gesture_callbacks.append(callback)

    # --- Lifecycle ---

    def required_sensors(self, available: set[SensorType]) -> dict[SensorType, int]:
        """Pick the sensors this configuration needs, with requested periods.

        Raises:
            SensorUnavailableError: if a needed sensor is not in ``available``.
        """
        sampling = self.config.sampling
        wanted: dict[SensorType, int] = {}
        missing: list[SensorType] = []

        # Prefer the game rotation vector: no magnetometer, no heading jumps
        if SensorType.GAME_ROTATION_VECTOR in available:
            wanted[SensorType.GAME_ROTATION_VECTOR] = sampling.orientation_period_us
        elif SensorType.ROTATION_VECTOR in available:
            wanted[SensorType.ROTATION_VECTOR] = sampling.orientation_period_us
        else:
            missing.append(SensorType.GAME_ROTATION_VECTOR)

        if self.flick is not None:
            if SensorType.GYROSCOPE in available:
                wanted[SensorType.GYROSCOPE] = sampling.gyroscope_period_us
            else:
                missing.append(SensorType.GYROSCOPE)

        if self.clench is not None or self.shake is not None:
            if SensorType.ACCELEROMETER in available:
                wanted[SensorType.ACCELEROMETER] = sampling.accelerometer_period_us
            else:
                missing.append(SensorType.ACCELEROMETER)

        if missing:
            raise SensorUnavailableError(missing)
        return wanted

    def start(
        self,
        callback: Optional[GestureCallback] = None,
        source: Optional[SensorSource] = None,
    ):
        """Register sensor listeners and begin emitting.

        Raises:
            ConfigError: if there is no sensor source.
            SensorUnavailableError: if a required sensor is missing.
        """
        if self._running.is_set():
            logger.warning("Gesture engine already running; start() ignored")
            return

        source = source or self._source
        if source is None:
            raise ConfigError("No sensor source configured")

        try:
            sensors = self.required_sensors(source.available_sensors())
        except SensorUnavailableError as e:
            logger.error("Cannot start gesture engine: %s", e)
            raise

        if callback is not None:
            self.on_gesture(callback)

        self._source = source
        self._orientation_sensor = next(s for s in sensors if s.is_orientation)
        stale = self.events.drain()
        if stale:
            logger.debug("Discarded %d undelivered events from the previous run", len(stale))
        self.events.reopen()
        self._running.set()
        self._registered = source
        try:
            for sensor, period_us in sensors.items():
                source.register(sensor, self.process, period_us)
        except Exception:
            self.stop()
            raise

        logger.info(
            "Gesture engine started: aim=%s select=%s delete=%s sensors=%s",
            self.config.aim.mode.value,
            ",".join(self.config.select_detectors),
            "shake" if self.shake is not None else "off",
            ",".join(s.value for s in sensors),
        )

    def stop(self):
        """Unregister all listeners and drop callbacks. Safe to call any time."""
        was_running = self._running.is_set()
        self._running.clear()

        source, self._registered = self._registered, None
        if source is not None:
            source.unregister(self.process)

        with self._callback_lock:
            self._aim_callbacks.clear()
            self._gesture_callbacks.clear()
        self.events.close()

        if was_running:
            logger.info("Gesture engine stopped")

    @property
    def running(self) -> bool:
        return self._running.is_set()

    # --- Sample processing ---

    def process(self, sample: SensorSample) -> list[GestureEvent]:
        """Handle one sensor sample. Returns the gesture events it produced."""
        if not self._running.is_set():
            return []

        if sample.sensor.is_orientation:
            stage = _ORIENTATION
        elif sample.sensor == SensorType.GYROSCOPE:
            stage = _GYROSCOPE
        else:
            stage = _ACCELEROMETER

        lock = self._locks[stage]
        if not lock.acquire(blocking=False):
            self._count("busy_drops")
            self.metrics.record_suppressed("busy")
            logger.warning("Dropped re-entrant %s sample at t=%d", stage, sample.timestamp_ns)
            return []

        angle: Optional[float] = None
        detected: list[GestureEvent] = []
        t0 = time.perf_counter()
        try:
            with self.profiler.stage(stage):
                if stage == _ORIENTATION:
                    angle = self._update_aim(sample)
                elif not np.isfinite(sample.values).all():
                    self._suppress("non_finite", sample)
                elif stage == _GYROSCOPE:
                    detected = self._update_gyroscope(sample)
                else:
                    detected = self._update_accelerometer(sample)
        finally:
            lock.release()
        self.metrics.record_sample(stage, time.perf_counter() - t0)

        if angle is not None:
            self._emit_aim(angle)

        return [event for event in detected if self._emit_gesture(event)]

    def _update_aim(self, sample: SensorSample) -> Optional[float]:
        before = self.aim.suppressed
        angle = self.aim.update(sample, self.calibration.offset)
        if self.aim.suppressed != before:
            self._suppress("aim_hold", sample)
        return angle

    def _update_gyroscope(self, sample: SensorSample) -> list[GestureEvent]:
        if self.flick is None:
            return []
        event = self.flick.update(sample.magnitude(), sample.timestamp_ns)
        return [event] if event is not None else []

    def _update_accelerometer(self, sample: SensorSample) -> list[GestureEvent]:
        magnitude = sample.magnitude()
        events = []
        for detector in (self.clench, self.shake):
            if detector is None:
                continue
            event = detector.update(magnitude, sample.timestamp_ns)
            if event is not None:
                events.append(event)
        return events

    def _suppress(self, reason: str, sample: SensorSample):
        self._count("suppressed")
        self.metrics.record_suppressed(reason)
        logger.debug("Suppressed %s sample at t=%d (%s)", sample.sensor.value, sample.timestamp_ns, reason)

    # --- Emission ---

    def _emit_aim(self, angle: float):
        if not self._running.is_set():
            return
        self._count("aim_updates")
        with self._callback_lock:
            callbacks = list(self._aim_callbacks)
        for cb in callbacks:
            try:
                cb(angle)
            except Exception as e:
                logger.error("Aim callback error: %s", e)

    def _emit_gesture(self, event: GestureEvent) -> bool:
        if not self._running.is_set():
            return False

        if self.config.attach_arc_index and event.type == GestureType.SELECT:
            event = replace(event, arc_index=self.aim.arc_index())

        self._count(f"gesture:{event.type.value}")
        self.metrics.record_gesture(event.type.value, event.detector)
        logger.debug("Gesture %s from %s at t=%d (magnitude=%.2f, arc=%s)",
                     event.type.value, event.detector, event.timestamp_ns,
                     event.magnitude, event.arc_index)

        if not self.events.send(event) and not self.events.closed:
            self.metrics.record_dropped_event()

        with self._callback_lock:
            callbacks = list(self._gesture_callbacks)
        for cb in callbacks:
            try:
                cb(event)
            except Exception as e:
                logger.error("Gesture callback error: %s", e)
        return True

    # --- Calibration ---

    def calibrate(self) -> CalibrationOffset:
        """Capture the current smoothed pose as the neutral reference."""
        # No sensor lock: process() would drop an orientation sample arriving meanwhile
        reference = self.aim.reference()
        if not self.aim.state.initialized:
            logger.info("Calibrating before any orientation sample; using zero pose")
        offset = self.calibration.capture(reference)
        self.metrics.record_calibration()
        return offset

    # --- Introspection ---

    @property
    def aim_angle(self) -> Optional[float]:
        """Last visible aim angle, or None before the first one."""
        return self.aim.angle

    def arc_index(self, num_arcs: Optional[int] = None) -> Optional[int]:
        return self.aim.arc_index(num_arcs)

    @property
    def select_detectors(self) -> list[BurstDetector]:
        return [d for d in (self.flick, self.clench) if d is not None]

    def detector_states(self) -> dict[str, DetectorState | float]:
        """Snapshot of every detector: burst states, and shake energy."""
        states: dict[str, DetectorState | float] = {}
        for detector in self.select_detectors:
            states[detector.name] = detector.state
        if self.shake is not None:
            states[self.shake.name] = self.shake.energy
        return states

    @property
    def orientation_sensor(self) -> Optional[SensorType]:
        return self._orientation_sensor

    def _count(self, key: str, n: int = 1):
        with self._stats_lock:
            self._counts[key] += n

    @property
    def stats(self) -> EngineStats:
        with self._stats_lock:
            counts = dict(self._counts)
        return EngineStats(
            running=self.running,
            samples=self.metrics.sample_counts,
            aim_updates=counts.get("aim_updates", 0),
            suppressed=counts.get("suppressed", 0),
            busy_drops=counts.get("busy_drops", 0),
            gestures={
                k.split(":", 1)[1]: v for k, v in counts.items() if k.startswith("gesture:")
            },
            events_dropped=self.events.dropped,
            calibrations=self.calibration.captures,
            profiler_summary=self.profiler.summary(),
        )

    def reset(self):
        """Clear aim, detector and calibration state. Callbacks and profiler timings are kept."""
        for lock in self._locks.values():
            lock.acquire()
        try:
            self.aim.reset()
            for detector in (self.flick, self.clench, self.shake):
                if detector is not None:
                    detector.reset()
            self.calibration.reset()
        finally:
            for lock in self._locks.values():
                lock.release()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.stop()
