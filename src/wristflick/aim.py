"""Aim estimation: wrist orientation to a pointer angle on the selection ring.

Angles follow the ring convention: 0 = forward/north (top of the ring),
increasing clockwise, in radians. Two interchangeable modes exist:

- ``VectorProjectionAim`` projects the screen normal onto the ground plane
  and reports a continuous, unwrapped, smoothed angle.
- ``PitchRollAim`` reduces tilt to four cardinal directions and only
  reports when the direction changes.

Usage:
    aim = AimEstimator(AimConfig())
    angle = aim.update(orientation_sample, store.offset)
    if angle is not None:
        arc = quantize_arc(angle, 4)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from wristflick.calibration import CalibrationOffset
from wristflick.conditioner import ExponentialSmoother, horizontal_projection, wrap_angle
from wristflick.config import AimConfig, AimMode
from wristflick.samples import Orientation


@dataclass
class AimState:
    """Running aim estimate. Only meaningful once ``initialized``."""
    raw: float = 0.0        # unwrapped raw angle
    smoothed: float = 0.0   # unwrapped smoothed angle
    visible: Optional[float] = None  # last angle reported to the ring
    pitch: float = 0.0      # smoothed tilt (pitch/roll mode)
    roll: float = 0.0
    initialized: bool = False
    held: bool = False      # last sample was suppressed


class Direction(Enum):
    """Canonical ring angles used by the 4-way tilt mode."""
    UP = 0.0
    RIGHT = math.pi / 2
    DOWN = math.pi
    LEFT = -math.pi / 2


def quantize_arc(angle: float, num_arcs: int) -> int:
    """Map an angle (radians) to one of ``num_arcs`` sectors.

    Sectors are centered on the cardinal directions, so arc 0 spans
    [-half_sector, +half_sector) around straight ahead.
    """
    if num_arcs < 1:
        raise ValueError(f"num_arcs must be >= 1, got {num_arcs}")
    sector = 360.0 / num_arcs
    degrees = math.degrees(angle)
    return int(math.floor((degrees + sector / 2.0) / sector)) % num_arcs


def sector_center(index: int, num_arcs: int) -> float:
    """Center angle (radians, wrapped to (-pi, pi]) of an arc."""
    if num_arcs < 1:
        raise ValueError(f"num_arcs must be >= 1, got {num_arcs}")
    return wrap_angle(2.0 * math.pi * (index % num_arcs) / num_arcs)


class VectorProjectionAim:
    """Continuous aim from the horizontal projection of the screen normal.

    Twisting the forearm barely moves the screen normal's heading, so aiming
    is twist-invariant. The leftward half-plane is physically harder to reach
    with a wrist, so it gets extra gain, a small angular bias, and a more
    permissive deadzone.
    """

    def __init__(self, config: AimConfig):
        self.config = config
        self._smoother = ExponentialSmoother(config.alpha)
        self.state = AimState()
        self.suppressed = 0

    def project(self, sample: Orientation) -> tuple[float, float]:
        """Reach-assisted (x, y) projection of the screen normal."""
        x, y = horizontal_projection(sample.rotation_matrix())
        x *= self.config.left_gain if x < 0 else self.config.right_gain
        y *= self.config.vertical_gain
        return x, y

    def update(self, sample: Orientation, offset: CalibrationOffset) -> Optional[float]:
        x, y = self.project(sample)
        if not (math.isfinite(x) and math.isfinite(y)):
            return self._hold()

        # A flat wrist has almost no horizontal component; its heading is noise
        deadzone = self.config.left_deadzone if x < 0 else self.config.right_deadzone
        if math.hypot(x, y) < deadzone or (x == 0.0 and y == 0.0):
            return self._hold()

        raw = math.atan2(x, y)
        if x < 0:
            raw += self.config.left_bias
        return self.update_angle(raw, offset)

    def update_angle(self, raw: float, offset: CalibrationOffset) -> Optional[float]:
        """Feed a raw heading (radians) through unwrap, smoothing and calibration."""
        if not math.isfinite(raw):
            return self._hold()

        state = self.state
        if not state.initialized:
            state.raw = raw
            state.initialized = True
        else:
            state.raw += wrap_angle(raw - state.raw)

        state.smoothed = self._smoother.update(state.raw)
        state.visible = self.config.gain * wrap_angle(state.smoothed - offset.angle)
        state.held = False
        return state.visible

    def _hold(self) -> Optional[float]:
        self.state.held = True
        self.suppressed += 1
        return self.state.visible

    def reference(self) -> CalibrationOffset:
        return CalibrationOffset(angle=self.state.smoothed if self.state.initialized else 0.0)

    def reset(self):
        self._smoother.reset()
        self.state = AimState()


class PitchRollAim:
    """Four-way tilt aiming.

    Pitch and roll are smoothed independently and compared against the
    calibrated neutral pose. Within ``min_change`` of neutral on both axes the
    previous direction is kept; otherwise the axis with the larger deflection
    wins. Positive pitch maps to UP, positive roll to RIGHT.

    Output is edge-triggered: ``update`` returns an angle only when the
    resolved direction changes.
    """

    def __init__(self, config: AimConfig):
        self.config = config
        self._pitch = ExponentialSmoother(config.tilt_alpha)
        self._roll = ExponentialSmoother(config.tilt_alpha)
        self.state = AimState()
        self.direction: Optional[Direction] = None
        self.suppressed = 0

    def update(self, sample: Orientation, offset: CalibrationOffset) -> Optional[float]:
        _, pitch, roll = sample.euler()
        return self.update_tilt(pitch, roll, offset)

    def update_tilt(self, pitch: float, roll: float, offset: CalibrationOffset) -> Optional[float]:
        if not (math.isfinite(pitch) and math.isfinite(roll)):
            self.state.held = True
            self.suppressed += 1
            return None

        state = self.state
        state.pitch = self._pitch.update(pitch)
        state.roll = self._roll.update(roll)
        state.initialized = True

        d_pitch = state.pitch - offset.pitch
        d_roll = state.roll - offset.roll
        min_change = self.config.min_change

        if abs(d_pitch) < min_change and abs(d_roll) < min_change:
            state.held = True
            resolved = self.direction or Direction.UP
        else:
            state.held = False
            if abs(d_pitch) >= abs(d_roll):
                resolved = Direction.UP if d_pitch > 0 else Direction.DOWN
            else:
                resolved = Direction.RIGHT if d_roll > 0 else Direction.LEFT

        if resolved is self.direction:
            return None

        self.direction = resolved
        state.raw = state.smoothed = resolved.value
        state.visible = resolved.value
        return resolved.value

    def reference(self) -> CalibrationOffset:
        return CalibrationOffset(pitch=self.state.pitch, roll=self.state.roll)

    def reset(self):
        self._pitch.reset()
        self._roll.reset()
        self.state = AimState()
        self.direction = None


class AimEstimator:
    """Mode-selecting facade over the two aim strategies."""

    def __init__(self, config: Optional[AimConfig] = None):
        self.config = config or AimConfig()
        if self.config.mode == AimMode.PITCH_ROLL:
            self._impl = PitchRollAim(self.config)
        else:
            self._impl = VectorProjectionAim(self.config)

    @property
    def mode(self) -> AimMode:
        return self.config.mode

    def update(self, sample: Orientation, offset: Optional[CalibrationOffset] = None) -> Optional[float]:
        """Process one orientation sample.

        Returns the visible angle to report, or None when there is nothing to
        report (not yet initialized, or no direction change in tilt mode).
        """
        return self._impl.update(sample, offset or CalibrationOffset())

    def reference(self) -> CalibrationOffset:
        """Current smoothed pose, as a calibration offset."""
        return self._impl.reference()

    @property
    def state(self) -> AimState:
        return replace(self._impl.state)

    @property
    def angle(self) -> Optional[float]:
        return self._impl.state.visible

    @property
    def suppressed(self) -> int:
        return self._impl.suppressed

    def arc_index(self, num_arcs: Optional[int] = None) -> Optional[int]:
        angle = self.angle
        if angle is None:
            return None
        return quantize_arc(angle, num_arcs or self.config.num_arcs)

    def reset(self):
        self._impl.reset()
