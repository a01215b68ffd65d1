"""Motion event detectors: inertial bursts to discrete typing gestures.

A single hard threshold on instantaneous magnitude both false-triggers on
sustained motion (arm tremor, walking) and misses short sharp flicks. The
burst detectors instead arm on a start threshold, track the peak through a
short window, and only fire once the signal settles, followed by a cooldown:

    IDLE --(m > start, past cooldown)--> ARMING
    ARMING --(settled after min_arm, or window expired)--> COOLDOWN (fire)
                                                      \\--> IDLE (peak too low)
    COOLDOWN --(past deadline and m < end)--> IDLE

At most one event fires per IDLE -> ARMING -> COOLDOWN cycle.

The shake detector is a leaky integrator rather than a state machine: energy
above a threshold accumulates, calm samples decay it, and crossing the limit
fires DELETE and empties the bucket.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from wristflick.config import ClenchConfig, FlickConfig, ShakeConfig, check_burst

logger = logging.getLogger("wristflick.detectors")

_NS_PER_MS = 1_000_000


class GestureType(Enum):
    SELECT = "select"  # commit the highlighted arc
    DELETE = "delete"  # remove the last committed word


@dataclass(frozen=True)
class GestureEvent:
    """A discrete gesture, emitted once and never mutated."""
    type: GestureType
    detector: str         # "flick", "clench" or "shake"
    timestamp_ns: int
    magnitude: float      # peak burst magnitude, or energy for shakes
    arc_index: Optional[int] = None  # directional payload, when enabled


class DetectorPhase(Enum):
    IDLE = "idle"
    ARMING = "arming"
    COOLDOWN = "cooldown"


@dataclass
class DetectorState:
    phase: DetectorPhase = DetectorPhase.IDLE
    start_ns: int = 0
    peak: float = 0.0
    cooldown_until_ns: int = 0


class BurstDetector:
    """Arm / peak / settle / cooldown state machine over a scalar magnitude.

    Args:
        name: Detector name carried on emitted events.
        start_threshold: Magnitude that arms the detector.
        peak_threshold: Peak the burst must reach to count.
        end_threshold: Magnitude below which the burst has settled.
        min_arm_ms: Minimum burst duration before settling can end it.
        max_window_ms: Hard limit on the arming window.
        cooldown_ms: Dead time after a fired event.
        gesture: Gesture type to emit.

    Raises:
        ConfigError: for non-positive thresholds, thresholds out of order,
            or negative durations.
    """

    def __init__(
        self,
        name: str,
        start_threshold: float,
        peak_threshold: float,
        end_threshold: float,
        min_arm_ms: float,
        max_window_ms: float,
        cooldown_ms: float,
        gesture: GestureType = GestureType.SELECT,
    ):
        check_burst(name, start_threshold, peak_threshold, end_threshold,
                    min_arm_ms, max_window_ms, cooldown_ms, "end_threshold")
        self.name = name
        self.start_threshold = start_threshold
        self.peak_threshold = peak_threshold
        self.end_threshold = end_threshold
        self.min_arm_ns = int(min_arm_ms * _NS_PER_MS)
        self.max_window_ns = int(max_window_ms * _NS_PER_MS)
        self.cooldown_ns = int(cooldown_ms * _NS_PER_MS)
        self.gesture = gesture

        self._state = DetectorState()
        self.fired = 0
        self.rejected = 0  # bursts that armed but never reached the peak

    def update(self, magnitude: float, timestamp_ns: int) -> Optional[GestureEvent]:
        """Feed one magnitude sample. Returns an event when a burst completes."""
        if not math.isfinite(magnitude):
            return None

        s = self._state
        now = timestamp_ns

        if s.phase == DetectorPhase.IDLE:
            if now >= s.cooldown_until_ns and magnitude > self.start_threshold:
                s.phase = DetectorPhase.ARMING
                s.start_ns = now
                s.peak = magnitude

        elif s.phase == DetectorPhase.ARMING:
            s.peak = max(s.peak, magnitude)
            elapsed = now - s.start_ns
            settled = magnitude < self.end_threshold and elapsed > self.min_arm_ns
            if settled or elapsed > self.max_window_ns:
                return self._finish(now)

        elif s.phase == DetectorPhase.COOLDOWN:
            if now >= s.cooldown_until_ns and magnitude < self.end_threshold:
                s.phase = DetectorPhase.IDLE

        return None

    def _finish(self, now: int) -> Optional[GestureEvent]:
        s = self._state
        if s.peak >= self.peak_threshold:
            s.phase = DetectorPhase.COOLDOWN
            s.cooldown_until_ns = now + self.cooldown_ns
            self.fired += 1
            logger.debug("%s burst fired: peak=%.2f after %.1f ms",
                         self.name, s.peak, (now - s.start_ns) / _NS_PER_MS)
            return GestureEvent(
                type=self.gesture,
                detector=self.name,
                timestamp_ns=now,
                magnitude=s.peak,
            )

        s.phase = DetectorPhase.IDLE
        self.rejected += 1
        return None

    @property
    def state(self) -> DetectorState:
        return replace(self._state)

    @property
    def phase(self) -> DetectorPhase:
        return self._state.phase

    def reset(self):
        self._state = DetectorState()


class FlickDetector(BurstDetector):
    """Wrist flick: a short, sharp burst of angular velocity (rad/s)."""

    def __init__(self, config: Optional[FlickConfig] = None):
        config = config or FlickConfig()
        super().__init__(
            name="flick",
            start_threshold=config.start_threshold,
            peak_threshold=config.peak_threshold,
            end_threshold=config.end_threshold,
            min_arm_ms=config.min_arm_ms,
            max_window_ms=config.max_window_ms,
            cooldown_ms=config.cooldown_ms,
        )
        self.config = config


class ClenchDetector(BurstDetector):
    """Muscle clench: a short acceleration burst (m/s^2, gravity included).

    The burst has ended once the magnitude settles back near gravity.
    """

    def __init__(self, config: Optional[ClenchConfig] = None):
        config = config or ClenchConfig()
        super().__init__(
            name="clench",
            start_threshold=config.start_threshold,
            peak_threshold=config.peak_threshold,
            end_threshold=config.settle_threshold,
            min_arm_ms=config.min_arm_ms,
            max_window_ms=config.max_window_ms,
            cooldown_ms=config.cooldown_ms,
        )
        self.config = config


class ShakeDetector:
    """Shake-to-delete via a leaky energy integrator.

    There is no cooldown: the reset to zero plus decay on calm samples is the
    only rate limit, so continuous shaking can fire repeatedly.
    """

    name = "shake"

    def __init__(self, config: Optional[ShakeConfig] = None):
        self.config = config or ShakeConfig()
        self._energy = 0.0
        self.fired = 0

    def update(self, magnitude: float, timestamp_ns: int) -> Optional[GestureEvent]:
        if not math.isfinite(magnitude):
            return None

        threshold = self.config.threshold
        if magnitude > threshold:
            self._energy += magnitude - threshold
            if self._energy > self.config.energy_limit:
                energy = self._energy
                self._energy = 0.0
                self.fired += 1
                logger.debug("shake fired: energy=%.2f", energy)
                return GestureEvent(
                    type=GestureType.DELETE,
                    detector=self.name,
                    timestamp_ns=timestamp_ns,
                    magnitude=energy,
                )
        else:
            self._energy *= self.config.decay

        return None

    @property
    def energy(self) -> float:
        return self._energy

    @property
    def state(self) -> float:
        """Accumulated energy; the integrator has no phases."""
        return self._energy

    def reset(self):
        self._energy = 0.0
