"""Signal conditioning: one-pole smoothing and axis projection."""

from __future__ import annotations

import math
from typing import Optional, Union

import numpy as np

from wristflick.config import ConfigError

Signal = Union[float, np.ndarray]


class ExponentialSmoother:
    """One-pole exponential moving average.

    ``smoothed' = smoothed + alpha * (raw - smoothed)``. The first update
    seeds the estimate with the raw value, so there is no warm-up transient.
    Works on floats and on numpy vectors of a fixed shape.
    """

    def __init__(self, alpha: float):
        if not (0.0 < alpha <= 1.0):
            raise ConfigError(f"alpha must be in (0, 1], got {alpha!r}")
        self.alpha = alpha
        self._value: Optional[Signal] = None

    def update(self, raw: Signal) -> Signal:
        if self._value is None:
            self._value = np.array(raw, dtype=np.float64) if isinstance(raw, np.ndarray) else float(raw)
        else:
            self._value = self._value + self.alpha * (raw - self._value)
        return self._value.copy() if isinstance(self._value, np.ndarray) else self._value

    def seed(self, value: Signal):
        """Overwrite the running estimate."""
        self._value = np.array(value, dtype=np.float64) if isinstance(value, np.ndarray) else float(value)

    def reset(self):
        self._value = None

    @property
    def value(self) -> Optional[Signal]:
        return self._value

    @property
    def initialized(self) -> bool:
        return self._value is not None


def horizontal_projection(rotation: np.ndarray) -> tuple[float, float]:
    """Project the device's out-of-plane (screen normal) axis onto the ground plane.

    The device Z axis in world coordinates is the third column of the
    rotation matrix; its (east, north) components are returned.
    """
    return float(rotation[0, 2]), float(rotation[1, 2])


def wrap_angle(angle: float) -> float:
    """Reduce an angle into (-pi, pi]."""
    wrapped = math.remainder(angle, 2.0 * math.pi)
    if wrapped <= -math.pi:
        wrapped += 2.0 * math.pi
    return wrapped
