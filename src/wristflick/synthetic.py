"""Deterministic synthetic sensor traces.

Builders for orientation poses, flick and clench bursts, shakes and quiet
stretches. They drive the CLI ``simulate`` and ``benchmark`` commands and
the tests; every builder is a pure function of its arguments.

Pose convention: a wrist at heading ``theta`` with tilt ``phi`` is the
rotation by ``phi`` about the horizontal axis (-cos theta, sin theta, 0).
Its screen normal then projects onto the ground plane as
(sin phi sin theta, sin phi cos theta), i.e. heading ``theta`` clockwise
from north.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np

from wristflick.aim import sector_center
from wristflick.config import AimConfig, EngineConfig
from wristflick.samples import (
    AngularVelocity,
    LinearAcceleration,
    Orientation,
    SensorSample,
    SensorType,
)

MS = 1_000_000  # ns
GRAVITY = 9.81


def pose_at_heading(
    heading: float,
    timestamp_ns: int = 0,
    tilt: float = 0.5,
    sensor: SensorType = SensorType.GAME_ROTATION_VECTOR,
) -> Orientation:
    """Orientation whose screen normal points at ``heading`` (radians)."""
    return Orientation.from_axis_angle(
        (-math.cos(heading), math.sin(heading), 0.0), tilt, timestamp_ns, sensor=sensor
    )


def _quat_mul(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array([
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    ])


def tilt_pose(pitch: float = 0.0, roll: float = 0.0, timestamp_ns: int = 0) -> Orientation:
    """Orientation with the given pitch and roll (radians).

    Exact when only one of the two is non-zero; a combined tilt is the roll
    applied after the pitch.
    """
    half_p = -pitch / 2.0
    half_r = roll / 2.0
    qx = np.array([math.sin(half_p), 0.0, 0.0, math.cos(half_p)])
    qy = np.array([0.0, math.sin(half_r), 0.0, math.cos(half_r)])
    return Orientation(values=_quat_mul(qx, qy), timestamp_ns=timestamp_ns)


def heading_for_angle(visible: float, config: Optional[AimConfig] = None) -> float:
    """Physical heading that settles to the visible ``angle`` under ``config``.

    Inverts the aim gain, left bias and per-side reach-assist gains, assuming
    no calibration offset.
    """
    config = config or AimConfig()
    target = math.remainder(visible, 2 * math.pi) / config.gain
    left = target < 0
    if left:
        target -= config.left_bias
    kx = config.left_gain if left else config.right_gain
    return math.atan2(math.sin(target) / kx, math.cos(target) / config.vertical_gain)


def orientation_stream(
    headings: Sequence[float],
    start_ns: int = 0,
    period_ms: float = 10.0,
    tilt: float = 0.5,
) -> list[Orientation]:
    step = int(period_ms * MS)
    return [pose_at_heading(h, start_ns + i * step, tilt) for i, h in enumerate(headings)]


def heading_sweep(
    start: float,
    end: float,
    steps: int,
    start_ns: int = 0,
    period_ms: float = 10.0,
    tilt: float = 0.5,
) -> list[Orientation]:
    """Linear sweep of headings from ``start`` to ``end`` inclusive."""
    return orientation_stream(np.linspace(start, end, steps).tolist(), start_ns, period_ms, tilt)


def _triangle(peak: float, rise_ms: float, fall_ms: float, step_ms: float) -> list[float]:
    values = []
    t = 0.0
    while t <= rise_ms + fall_ms + 1e-9:
        if t <= rise_ms:
            values.append(peak * t / rise_ms)
        else:
            values.append(peak * max(0.0, 1.0 - (t - rise_ms) / fall_ms))
        t += step_ms
    return values


def flick_trace(
    start_ns: int = 0,
    peak: float = 3.5,
    rise_ms: float = 20.0,
    fall_ms: float = 30.0,
    step_ms: float = 5.0,
    tail_ms: float = 20.0,
    axis: tuple[float, float, float] = (0.0, 0.0, 1.0),
) -> list[AngularVelocity]:
    """Triangular angular-velocity burst followed by a still tail.

    The default trace ramps 0 -> 3.5 rad/s over 20 ms and back to zero over
    30 ms at 200 Hz.
    """
    ax = np.asarray(axis, dtype=np.float64)
    ax = ax / np.linalg.norm(ax)
    step = int(step_ms * MS)
    mags = _triangle(peak, rise_ms, fall_ms, step_ms)
    mags += [0.0] * int(round(tail_ms / step_ms))
    return [AngularVelocity(values=ax * m, timestamp_ns=start_ns + i * step) for i, m in enumerate(mags)]


def clench_trace(
    start_ns: int = 0,
    peak: float = 18.0,
    rise_ms: float = 20.0,
    fall_ms: float = 30.0,
    step_ms: float = 5.0,
    tail_ms: float = 20.0,
) -> list[LinearAcceleration]:
    """Acceleration burst on top of gravity, settling back to rest."""
    step = int(step_ms * MS)
    excess = _triangle(peak - GRAVITY, rise_ms, fall_ms, step_ms)
    excess += [0.0] * int(round(tail_ms / step_ms))
    return [
        LinearAcceleration(values=(0.0, 0.0, GRAVITY + e), timestamp_ns=start_ns + i * step)
        for i, e in enumerate(excess)
    ]


def shake_trace(
    start_ns: int = 0,
    magnitude: float = 35.0,
    count: int = 3,
    step_ms: float = 20.0,
) -> list[LinearAcceleration]:
    """Sustained acceleration above the shake threshold."""
    step = int(step_ms * MS)
    return [
        LinearAcceleration(values=(magnitude, 0.0, 0.0), timestamp_ns=start_ns + i * step)
        for i in range(count)
    ]


def quiet_gyro(start_ns: int, duration_ms: float, step_ms: float = 5.0) -> list[AngularVelocity]:
    step = int(step_ms * MS)
    n = int(duration_ms / step_ms)
    return [AngularVelocity(values=(0.0, 0.0, 0.0), timestamp_ns=start_ns + i * step) for i in range(n)]


def resting_accel(start_ns: int, duration_ms: float, step_ms: float = 20.0) -> list[LinearAcceleration]:
    step = int(step_ms * MS)
    n = int(duration_ms / step_ms)
    return [LinearAcceleration(values=(0.0, 0.0, GRAVITY), timestamp_ns=start_ns + i * step) for i in range(n)]


def typing_session(
    arcs: Sequence[int],
    config: Optional[EngineConfig] = None,
    hold_ms: float = 400.0,
    shake_at_end: bool = True,
) -> list[SensorSample]:
    """A scripted session: aim at each arc in turn, then select it.

    For every arc the wrist holds the pose that lands the pointer on the arc
    center for ``hold_ms``, then performs a select burst with whichever
    select detector the configuration uses (flick preferred). Optionally
    ends with a shake. Samples are returned in timestamp order.
    """
    config = config or EngineConfig()
    aim = config.aim
    use_flick = "flick" in config.select_detectors
    burst_ms = 70.0

    orientations: list[SensorSample] = []
    gyro: list[SensorSample] = []
    accel: list[SensorSample] = []

    t = 0
    for arc in arcs:
        heading = heading_for_angle(sector_center(arc, aim.num_arcs), aim)
        segment_ms = hold_ms + burst_ms
        steps = int(segment_ms / 10.0)
        orientations += orientation_stream([heading] * steps, start_ns=t, period_ms=10.0)

        burst_start = t + int(hold_ms * MS)
        if use_flick:
            gyro += quiet_gyro(t, hold_ms)
            gyro += flick_trace(burst_start)
            accel += resting_accel(t, segment_ms)
        else:
            gyro += quiet_gyro(t, segment_ms)
            accel += resting_accel(t, hold_ms, step_ms=5.0)
            accel += clench_trace(burst_start)
        t += int(segment_ms * MS)

    if shake_at_end:
        accel += shake_trace(t)
        t += int(100 * MS)
        accel += resting_accel(t, 100.0)

    samples = orientations + gyro + accel
    samples.sort(key=lambda s: s.timestamp_ns)
    return samples
