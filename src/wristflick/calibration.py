"""Neutral-pose calibration.

The user holds the wrist in a comfortable neutral pose and taps; whatever
the aim estimator currently reports becomes the new zero. There is no
stationarity check, so calibration always succeeds.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

logger = logging.getLogger("wristflick.calibration")


@dataclass(frozen=True)
class CalibrationOffset:
    """Neutral pose, subtracted from live orientation. Radians."""
    angle: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0


class CalibrationStore:
    """Single-writer, multi-reader holder for the current calibration offset.

    Readers on any sensor thread get an immutable snapshot; ``capture`` swaps
    in a new one atomically.
    """

    def __init__(self, offset: CalibrationOffset | None = None):
        self._lock = threading.Lock()
        self._offset = offset or CalibrationOffset()
        self._captures = 0

    @property
    def offset(self) -> CalibrationOffset:
        with self._lock:
            return self._offset

    def capture(self, offset: CalibrationOffset) -> CalibrationOffset:
        with self._lock:
            self._offset = offset
            self._captures += 1
        logger.info(
            "Calibrated neutral pose: angle=%.3f pitch=%.3f roll=%.3f",
            offset.angle, offset.pitch, offset.roll,
        )
        return offset

    def reset(self):
        with self._lock:
            self._offset = CalibrationOffset()

    @property
    def captures(self) -> int:
        return self._captures
