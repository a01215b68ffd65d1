"""Sensor session recording and replay.

Recordings make sessions reproducible: a captured wrist session can be fed
back through the engine on a machine without any sensors, in CI, or with a
different configuration to compare tuning.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Iterator, Optional

import numpy as np

from wristflick.detectors import GestureEvent
from wristflick.samples import SensorSample, SensorType, sample_from_dict, sample_to_dict
from wristflick.sources import ReplaySource

logger = logging.getLogger("wristflick.recorder")

FORMAT_VERSION = 1

# Stable sensor codes for the compact format
_SENSOR_CODES = {s: i for i, s in enumerate(SensorType)}
_CODE_SENSORS = {i: s for s, i in _SENSOR_CODES.items()}


def _event_to_dict(event: GestureEvent) -> dict:
    return {
        "type": event.type.value,
        "detector": event.detector,
        "t": int(event.timestamp_ns),
        "magnitude": float(event.magnitude),
        "arc_index": event.arc_index,
    }


class SampleRecorder:
    """Captures sensor samples (and optionally the gestures they produced).

    Usage:
        recorder = SampleRecorder()
        recorder.start()
        source.register(SensorType.GYROSCOPE, recorder.add_sample, 5000)
        engine.on_gesture(recorder.add_gesture)
        ...
        recorder.stop()
        recorder.save("session.json")
    """

    def __init__(self):
        self._samples: list[SensorSample] = []
        self._gestures: list[dict] = []
        self._recording = False

    def start(self):
        """Begin a new recording session, discarding any previous one."""
        self._samples = []
        self._gestures = []
        self._recording = True

    def stop(self) -> int:
        """Stop recording. Returns number of samples captured."""
        self._recording = False
        return len(self._samples)

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def duration(self) -> float:
        """Span between first and last sample, in seconds."""
        return _span_seconds(self._samples)

    def add_sample(self, sample: SensorSample):
        if self._recording:
            self._samples.append(sample)

    def add_gesture(self, event: GestureEvent):
        if self._recording:
            self._gestures.append(_event_to_dict(event))

    def save(self, path: str | Path):
        """Save recording to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "version": FORMAT_VERSION,
            "sample_count": len(self._samples),
            "duration": self.duration,
            "samples": [sample_to_dict(s) for s in self._samples],
            "gestures": self._gestures,
        }
        with open(path, "w") as f:
            json.dump(data, f)
        logger.info("Saved %d samples to %s", len(self._samples), path)

    def save_compact(self, path: str | Path) -> Path:
        """Save in compact numpy npz format. Returns the path written."""
        path = Path(path).with_suffix(".npz")
        path.parent.mkdir(parents=True, exist_ok=True)

        n = len(self._samples)
        timestamps = np.array([s.timestamp_ns for s in self._samples], dtype=np.int64)
        sensors = np.array([_SENSOR_CODES[s.sensor] for s in self._samples], dtype=np.int8)
        # Orientation carries 3 or 4 values, motion sensors 3: pad to 4
        values = np.zeros((n, 4), dtype=np.float64)
        widths = np.zeros(n, dtype=np.int8)
        for i, s in enumerate(self._samples):
            values[i, :len(s.values)] = s.values
            widths[i] = len(s.values)

        np.savez_compressed(
            path,
            version=np.array([FORMAT_VERSION]),
            timestamps=timestamps,
            sensors=sensors,
            values=values,
            widths=widths,
            gesture_data=np.array([json.dumps(self._gestures)]),
        )
        logger.info("Saved %d samples to %s", n, path)
        return path


class SamplePlayer:
    """Replays a recorded sensor session.

    Usage:
        player = SamplePlayer.load("session.json")
        for sample in player.play():
            engine.process(sample)

        # Or through a sensor source:
        source = player.to_source()
        engine.start(source=source)
        source.play()
    """

    def __init__(self, samples: list[SensorSample], gestures: Optional[list[dict]] = None):
        self._samples = sorted(samples, key=lambda s: s.timestamp_ns)
        self.gestures = gestures or []

    @classmethod
    def load(cls, path: str | Path) -> SamplePlayer:
        """Load a recording from a JSON or npz file."""
        path = Path(path)
        if path.suffix == ".npz":
            return cls._load_compact(path)

        with open(path) as f:
            data = json.load(f)

        version = data.get("version", FORMAT_VERSION)
        if version != FORMAT_VERSION:
            raise ValueError(f"Unsupported recording version {version} in {path}")

        samples = [sample_from_dict(s) for s in data["samples"]]
        logger.info("Loaded %d samples from %s", len(samples), path)
        return cls(samples, data.get("gestures", []))

    @classmethod
    def _load_compact(cls, path: Path) -> SamplePlayer:
        data = np.load(path, allow_pickle=False)
        timestamps = data["timestamps"]
        sensors = data["sensors"]
        values = data["values"]
        widths = data["widths"]
        gestures = json.loads(str(data["gesture_data"][0]))

        samples = [
            sample_from_dict({
                "sensor": _CODE_SENSORS[int(sensors[i])].value,
                "t": int(timestamps[i]),
                "values": values[i, :int(widths[i])].tolist(),
            })
            for i in range(len(timestamps))
        ]
        logger.info("Loaded %d samples from %s", len(samples), path)
        return cls(samples, gestures)

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def duration(self) -> float:
        return _span_seconds(self._samples)

    def sensors(self) -> set[SensorType]:
        return {s.sensor for s in self._samples}

    def play(self) -> Iterator[SensorSample]:
        """Iterate through all samples instantly, in timestamp order."""
        yield from self._samples

    def play_realtime(self, speed: float = 1.0) -> Iterator[SensorSample]:
        """Replay at original timing (or scaled by speed factor).

        Args:
            speed: Playback speed multiplier (2.0 = double speed).
        """
        if not self._samples:
            return
        if speed <= 0:
            raise ValueError(f"speed must be positive, got {speed}")

        t_first = self._samples[0].timestamp_ns
        start = time.monotonic()
        for sample in self._samples:
            target = (sample.timestamp_ns - t_first) / 1e9 / speed
            elapsed = time.monotonic() - start
            if target > elapsed:
                time.sleep(target - elapsed)
            yield sample

    def get_sample(self, index: int) -> Optional[SensorSample]:
        if 0 <= index < len(self._samples):
            return self._samples[index]
        return None

    def to_source(self, sensors: Optional[set[SensorType]] = None) -> ReplaySource:
        """A replay source preloaded with this recording.

        By default the source offers every sensor the recording contains.
        """
        return ReplaySource(self._samples, sensors=sensors if sensors is not None else self.sensors())


def _span_seconds(samples: list[SensorSample]) -> float:
    if len(samples) < 2:
        return 0.0
    stamps = [s.timestamp_ns for s in samples]
    return (max(stamps) - min(stamps)) / 1e9
