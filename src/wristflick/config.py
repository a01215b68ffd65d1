"""Engine configuration: tuning constants, presets, and YAML loading.

Every threshold and window is plain configuration. Values are validated when
a config object is built, so a bad YAML file fails at load time instead of
producing a detector that silently never fires.

Usage:
    config = load_config("wrist.yml")           # or get_preset("clench")
    engine = GestureEngine(config)

YAML layout (all sections optional, unknown keys are rejected):

    preset: flick
    select_detectors: [flick, clench]
    aim:
      mode: vector
      gain: 1.6
    shake:
      energy_limit: 15.0
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("wristflick.config")


class ConfigError(ValueError):
    """Raised for missing, unknown, or out-of-range configuration values."""


class AimMode(Enum):
    VECTOR = "vector"          # continuous angle from the projected screen normal
    PITCH_ROLL = "pitch_roll"  # 4-way tilt, edge-triggered


SELECT_DETECTORS = ("flick", "clench")


def _require(condition: bool, message: str):
    if not condition:
        raise ConfigError(message)


def _check_positive(name: str, value: float):
    _require(math.isfinite(value) and value > 0, f"{name} must be > 0, got {value!r}")


def _check_non_negative(name: str, value: float):
    _require(math.isfinite(value) and value >= 0, f"{name} must be >= 0, got {value!r}")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_alpha(name: str, value: float):
    _require(0.0 < value <= 1.0, f"{name} must be in (0, 1], got {value!r}")


@dataclass(frozen=True)
class AimConfig:
    """Aim estimator tuning. Angles in radians."""
    mode: AimMode = AimMode.VECTOR
    alpha: float = 0.14          # smoothing, higher = snappier
    gain: float = 2.0            # boosts sweep so every arc is reachable
    left_gain: float = 1.65      # reach assist: leftward x component
    right_gain: float = 1.15
    vertical_gain: float = 1.0
    left_bias: float = 0.10      # widens the W/NW sectors (~6 deg)
    left_deadzone: float = 0.02
    right_deadzone: float = 0.04
    num_arcs: int = 4
    tilt_alpha: float = 0.2      # pitch/roll smoothing
    min_change: float = 0.15     # pitch/roll hysteresis

    def __post_init__(self):
        if not isinstance(self.mode, AimMode):
            try:
                object.__setattr__(self, "mode", AimMode(self.mode))
            except ValueError:
                raise ConfigError(
                    f"aim.mode must be one of {[m.value for m in AimMode]}, got {self.mode!r}"
                ) from None

        _check_alpha("aim.alpha", self.alpha)
        _check_alpha("aim.tilt_alpha", self.tilt_alpha)
        _require(math.isfinite(self.gain) and self.gain >= 1.0, f"aim.gain must be >= 1, got {self.gain!r}")
        _check_positive("aim.left_gain", self.left_gain)
        _check_positive("aim.right_gain", self.right_gain)
        _check_positive("aim.vertical_gain", self.vertical_gain)
        _require(math.isfinite(self.left_bias), "aim.left_bias must be finite")
        _check_non_negative("aim.left_deadzone", self.left_deadzone)
        _check_non_negative("aim.right_deadzone", self.right_deadzone)
        _check_non_negative("aim.min_change", self.min_change)
        _require(
            _is_int(self.num_arcs) and self.num_arcs >= 2,
            f"aim.num_arcs must be an integer >= 2, got {self.num_arcs!r}",
        )


def check_burst(prefix: str, start: float, peak: float, end: float,
                 min_arm_ms: float, max_window_ms: float, cooldown_ms: float, end_name: str):
    _check_positive(f"{prefix}.start_threshold", start)
    _check_positive(f"{prefix}.peak_threshold", peak)
    _check_positive(f"{prefix}.{end_name}", end)
    _require(end <= start, f"{prefix}.{end_name} ({end}) must not exceed start_threshold ({start})")
    _require(start <= peak, f"{prefix}.start_threshold ({start}) must not exceed peak_threshold ({peak})")
    _check_non_negative(f"{prefix}.min_arm_ms", min_arm_ms)
    _check_positive(f"{prefix}.max_window_ms", max_window_ms)
    _check_non_negative(f"{prefix}.cooldown_ms", cooldown_ms)
    _require(
        min_arm_ms <= max_window_ms,
        f"{prefix}.min_arm_ms ({min_arm_ms}) must not exceed max_window_ms ({max_window_ms})",
    )


@dataclass(frozen=True)
class FlickConfig:
    """Gyro-burst thresholds in rad/s."""
    start_threshold: float = 1.8
    peak_threshold: float = 2.8
    end_threshold: float = 1.2
    min_arm_ms: float = 30.0
    max_window_ms: float = 120.0
    cooldown_ms: float = 260.0

    def __post_init__(self):
        check_burst(
            "flick", self.start_threshold, self.peak_threshold, self.end_threshold,
            self.min_arm_ms, self.max_window_ms, self.cooldown_ms, "end_threshold",
        )


@dataclass(frozen=True)
class ClenchConfig:
    """Accelerometer-burst thresholds in m/s^2 (gravity included)."""
    start_threshold: float = 13.0
    peak_threshold: float = 16.0
    settle_threshold: float = 11.0  # near-gravity: the clench has released
    min_arm_ms: float = 20.0
    max_window_ms: float = 150.0
    cooldown_ms: float = 350.0

    def __post_init__(self):
        check_burst(
            "clench", self.start_threshold, self.peak_threshold, self.settle_threshold,
            self.min_arm_ms, self.max_window_ms, self.cooldown_ms, "settle_threshold",
        )


@dataclass(frozen=True)
class ShakeConfig:
    """Leaky-integrator shake detection in m/s^2."""
    threshold: float = 27.0
    energy_limit: float = 12.0
    decay: float = 0.9

    def __post_init__(self):
        _check_non_negative("shake.threshold", self.threshold)
        _check_positive("shake.energy_limit", self.energy_limit)
        _require(0.0 <= self.decay < 1.0, f"shake.decay must be in [0, 1), got {self.decay!r}")


@dataclass(frozen=True)
class SamplingConfig:
    """Requested sensor sampling periods in microseconds."""
    orientation_period_us: int = 10_000
    gyroscope_period_us: int = 5_000
    accelerometer_period_us: int = 20_000

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            _require(
                _is_int(value) and value > 0,
                f"sampling.{f.name} must be a positive integer, got {value!r}",
            )


_SECTIONS = {
    "aim": AimConfig,
    "flick": FlickConfig,
    "clench": ClenchConfig,
    "shake": ShakeConfig,
    "sampling": SamplingConfig,
}


@dataclass(frozen=True)
class EngineConfig:
    """Complete gesture engine configuration."""
    aim: AimConfig = field(default_factory=AimConfig)
    flick: FlickConfig = field(default_factory=FlickConfig)
    clench: ClenchConfig = field(default_factory=ClenchConfig)
    shake: ShakeConfig = field(default_factory=ShakeConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    select_detectors: tuple[str, ...] = ("flick",)
    delete_enabled: bool = True
    attach_arc_index: bool = False
    channel_capacity: int = 32

    def __post_init__(self):
        if isinstance(self.select_detectors, str):
            object.__setattr__(self, "select_detectors", (self.select_detectors,))
        elif isinstance(self.select_detectors, (list, tuple)):
            object.__setattr__(self, "select_detectors", tuple(self.select_detectors))
        else:
            raise ConfigError(
                f"select_detectors must be a name or a list of names, got {self.select_detectors!r}"
            )

        _require(len(self.select_detectors) > 0, "select_detectors must name at least one detector")
        unknown = [d for d in self.select_detectors if d not in SELECT_DETECTORS]
        _require(not unknown, f"Unknown select detector(s) {unknown}, expected {list(SELECT_DETECTORS)}")
        _require(
            len(set(self.select_detectors)) == len(self.select_detectors),
            f"select_detectors has duplicates: {list(self.select_detectors)}",
        )
        for name in ("delete_enabled", "attach_arc_index"):
            value = getattr(self, name)
            _require(isinstance(value, bool), f"{name} must be true or false, got {value!r}")
        _require(
            _is_int(self.channel_capacity) and self.channel_capacity >= 1,
            f"channel_capacity must be a positive integer, got {self.channel_capacity!r}",
        )
        for name, section_cls in _SECTIONS.items():
            _require(
                isinstance(getattr(self, name), section_cls),
                f"{name} must be a {section_cls.__name__}",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EngineConfig:
        """Build a config from a plain dict, starting from an optional preset."""
        data = dict(data or {})
        preset = data.pop("preset", None)
        base = get_preset(preset) if preset else cls()

        top_level = {f.name for f in fields(cls)} - set(_SECTIONS)
        overrides: dict[str, Any] = {}
        for key, value in data.items():
            if key in _SECTIONS:
                if not isinstance(value, dict):
                    raise ConfigError(f"Section '{key}' must be a mapping, got {type(value).__name__}")
                overrides[key] = _override_section(key, getattr(base, key), value)
            elif key in top_level:
                overrides[key] = value
            else:
                raise ConfigError(f"Unknown config key: {key}")

        return replace(base, **overrides)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["aim"]["mode"] = self.aim.mode.value
        data["select_detectors"] = list(self.select_detectors)
        return data


def _override_section(name: str, base: Any, values: dict[str, Any]) -> Any:
    known = {f.name for f in fields(base)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{name}': {unknown}")
    try:
        return replace(base, **values)
    except TypeError as e:
        raise ConfigError(f"Invalid '{name}' section: {e}") from e


# --- Presets ---

DEFAULT_CONFIG = EngineConfig()

PRESETS: dict[str, EngineConfig] = {
    "flick": DEFAULT_CONFIG,
    "clench": EngineConfig(select_detectors=("clench",)),
    "dual": EngineConfig(select_detectors=("flick", "clench")),
    "tilt": EngineConfig(aim=AimConfig(mode=AimMode.PITCH_ROLL)),
    "octant": EngineConfig(aim=AimConfig(num_arcs=8), attach_arc_index=True),
}


def get_preset(name: str) -> EngineConfig:
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigError(f"Unknown preset '{name}', expected one of {sorted(PRESETS)}") from None


def load_config(path: str | Path) -> EngineConfig:
    """Load an engine config from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f)

    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    config = EngineConfig.from_dict(data)
    logger.info("Loaded config from %s (select=%s, aim=%s)",
                path, ",".join(config.select_detectors), config.aim.mode.value)
    return config


def save_config(config: EngineConfig, path: str | Path):
    """Write a config to YAML."""
    with open(path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
