"""wristflick - Wrist-motion text entry for smartwatches: aim with orientation, select with a flick."""

__version__ = "0.1.0"

from wristflick.config import (
    AimConfig,
    AimMode,
    ClenchConfig,
    ConfigError,
    EngineConfig,
    FlickConfig,
    SamplingConfig,
    ShakeConfig,
    get_preset,
    load_config,
    save_config,
)
from wristflick.samples import AngularVelocity, LinearAcceleration, Orientation, SensorType
from wristflick.aim import AimEstimator, Direction, quantize_arc
from wristflick.calibration import CalibrationOffset, CalibrationStore
from wristflick.detectors import (
    ClenchDetector,
    DetectorPhase,
    FlickDetector,
    GestureEvent,
    GestureType,
    ShakeDetector,
)
from wristflick.channel import EventChannel
from wristflick.sources import ReplaySource, SensorSource, SensorUnavailableError
from wristflick.engine import EngineStats, GestureEngine
from wristflick.recorder import SamplePlayer, SampleRecorder
from wristflick.profiler import LatencyProfiler
from wristflick.metrics import MetricsCollector
