"""Sensor samples delivered by a wearable's inertial sensors.

Three sample kinds flow into the engine:

- ``Orientation``: a rotation-vector quaternion (x, y, z[, w])
- ``AngularVelocity``: gyroscope reading, rad/s
- ``LinearAcceleration``: accelerometer reading, m/s^2 with gravity

Timestamps are monotonic nanoseconds, as the sensor hub reports them.
Samples are immutable once built; their value arrays are read-only copies.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

import numpy as np


class SensorType(Enum):
    GAME_ROTATION_VECTOR = "game_rotation_vector"  # gyro+accel fusion, no magnet
    ROTATION_VECTOR = "rotation_vector"
    GYROSCOPE = "gyroscope"
    ACCELEROMETER = "accelerometer"

    @property
    def is_orientation(self) -> bool:
        return self in (SensorType.GAME_ROTATION_VECTOR, SensorType.ROTATION_VECTOR)


def _frozen_values(values: Any, sizes: tuple[int, ...], kind: str) -> np.ndarray:
    arr = np.array(values, dtype=np.float64).reshape(-1)
    if arr.shape[0] not in sizes:
        raise ValueError(f"{kind} expects {' or '.join(map(str, sizes))} values, got {arr.shape[0]}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Orientation:
    """Device orientation as a unit quaternion.

    ``values`` holds (x, y, z) or (x, y, z, w). When w is omitted it is
    reconstructed from the unit-norm constraint.
    """
    values: np.ndarray
    timestamp_ns: int
    sensor: SensorType = SensorType.GAME_ROTATION_VECTOR

    def __post_init__(self):
        object.__setattr__(self, "values", _frozen_values(self.values, (3, 4), "Orientation"))
        if not self.sensor.is_orientation:
            raise ValueError(f"Orientation sample cannot come from {self.sensor.value}")

    @property
    def quaternion(self) -> tuple[float, float, float, float]:
        x, y, z = (float(v) for v in self.values[:3])
        if len(self.values) == 4:
            w = float(self.values[3])
        else:
            w2 = 1.0 - x * x - y * y - z * z
            w = math.sqrt(w2) if w2 > 0 else 0.0
        return x, y, z, w

    def rotation_matrix(self) -> np.ndarray:
        """3x3 rotation matrix mapping device coordinates to world coordinates.

        World frame: x east, y north, z up.
        """
        x, y, z, w = self.quaternion
        xx, yy, zz = 2 * x * x, 2 * y * y, 2 * z * z
        xy, xz, yz = 2 * x * y, 2 * x * z, 2 * y * z
        wx, wy, wz = 2 * w * x, 2 * w * y, 2 * w * z

        return np.array([
            [1 - yy - zz, xy - wz, xz + wy],
            [xy + wz, 1 - xx - zz, yz - wx],
            [xz - wy, yz + wx, 1 - xx - yy],
        ], dtype=np.float64)

    def euler(self) -> tuple[float, float, float]:
        """Return (azimuth, pitch, roll) in radians."""
        r = self.rotation_matrix()
        azimuth = math.atan2(r[0, 1], r[1, 1])
        pitch = math.asin(max(-1.0, min(1.0, -r[2, 1])))
        roll = math.atan2(-r[2, 0], r[2, 2])
        return azimuth, pitch, roll

    @classmethod
    def from_axis_angle(
        cls,
        axis: tuple[float, float, float],
        angle: float,
        timestamp_ns: int,
        sensor: SensorType = SensorType.GAME_ROTATION_VECTOR,
    ) -> Orientation:
        """Build the orientation reached by rotating ``angle`` rad about ``axis``."""
        ax = np.asarray(axis, dtype=np.float64)
        norm = float(np.linalg.norm(ax))
        if norm < 1e-12:
            raise ValueError("Rotation axis must be non-zero")
        ax = ax / norm
        s = math.sin(angle / 2.0)
        return cls(
            values=np.array([ax[0] * s, ax[1] * s, ax[2] * s, math.cos(angle / 2.0)]),
            timestamp_ns=timestamp_ns,
            sensor=sensor,
        )


@dataclass(frozen=True, eq=False)
class AngularVelocity:
    """Gyroscope reading in rad/s around device x, y, z."""
    values: np.ndarray
    timestamp_ns: int
    sensor: SensorType = field(default=SensorType.GYROSCOPE, init=False)

    def __post_init__(self):
        object.__setattr__(self, "values", _frozen_values(self.values, (3,), "AngularVelocity"))

    def magnitude(self) -> float:
        return float(np.linalg.norm(self.values))


@dataclass(frozen=True, eq=False)
class LinearAcceleration:
    """Accelerometer reading in m/s^2, gravity included."""
    values: np.ndarray
    timestamp_ns: int
    sensor: SensorType = field(default=SensorType.ACCELEROMETER, init=False)

    def __post_init__(self):
        object.__setattr__(self, "values", _frozen_values(self.values, (3,), "LinearAcceleration"))

    def magnitude(self) -> float:
        return float(np.linalg.norm(self.values))


SensorSample = Union[Orientation, AngularVelocity, LinearAcceleration]


def sample_to_dict(sample: SensorSample) -> dict:
    """Serialize a sample for recordings."""
    return {
        "sensor": sample.sensor.value,
        "t": int(sample.timestamp_ns),
        "values": [float(v) for v in sample.values],
    }


def sample_from_dict(data: dict) -> SensorSample:
    """Inverse of :func:`sample_to_dict`."""
    sensor = SensorType(data["sensor"])
    values = data["values"]
    timestamp_ns = int(data["t"])

    if sensor.is_orientation:
        return Orientation(values=values, timestamp_ns=timestamp_ns, sensor=sensor)
    if sensor == SensorType.GYROSCOPE:
        return AngularVelocity(values=values, timestamp_ns=timestamp_ns)
    return LinearAcceleration(values=values, timestamp_ns=timestamp_ns)
