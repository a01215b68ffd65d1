"""Tests for the gesture engine: lifecycle, routing, calibration, delivery."""

import logging
import math

import pytest

from wristflick.aim import quantize_arc, sector_center
from wristflick.config import ConfigError, EngineConfig, get_preset
from wristflick.detectors import DetectorPhase, GestureType
from wristflick.engine import GestureEngine
from wristflick.metrics import MetricsCollector
from wristflick.samples import AngularVelocity, Orientation, SensorType
from wristflick.sources import ReplaySource, SensorUnavailableError
from wristflick.synthetic import (
    MS,
    clench_trace,
    flick_trace,
    heading_for_angle,
    pose_at_heading,
    shake_trace,
    typing_session,
)


def started(config=None, sensors=None):
    engine = GestureEngine(config)
    source = ReplaySource(sensors=sensors)
    engine.start(source=source)
    return engine, source


def push_all(source, samples):
    for s in samples:
        source.push(s)


class TestLifecycle:
    def test_start_registers_required_sensors(self):
        engine, source = started()
        assert engine.running
        assert source.listener_count() == 3
        assert source.requested_period(SensorType.GAME_ROTATION_VECTOR) == 10_000
        assert source.requested_period(SensorType.GYROSCOPE) == 5_000
        assert source.requested_period(SensorType.ACCELEROMETER) == 20_000
        assert source.requested_period(SensorType.ROTATION_VECTOR) is None
        assert engine.orientation_sensor == SensorType.GAME_ROTATION_VECTOR

    def test_falls_back_to_rotation_vector(self):
        engine, source = started(sensors={
            SensorType.ROTATION_VECTOR, SensorType.GYROSCOPE, SensorType.ACCELEROMETER,
        })
        assert engine.orientation_sensor == SensorType.ROTATION_VECTOR
        assert source.listener_count(SensorType.ROTATION_VECTOR) == 1

    def test_missing_gyroscope_fails_start(self):
        engine = GestureEngine()
        source = ReplaySource(sensors={SensorType.GAME_ROTATION_VECTOR, SensorType.ACCELEROMETER})
        with pytest.raises(SensorUnavailableError) as exc:
            engine.start(source=source)
        assert exc.value.missing == [SensorType.GYROSCOPE]
        assert not engine.running
        assert source.listener_count() == 0

    def test_missing_orientation_fails_start(self):
        engine = GestureEngine()
        source = ReplaySource(sensors={SensorType.GYROSCOPE, SensorType.ACCELEROMETER})
        with pytest.raises(SensorUnavailableError) as exc:
            engine.start(source=source)
        assert SensorType.GAME_ROTATION_VECTOR in exc.value.missing

    def test_clench_preset_needs_no_gyroscope(self):
        engine, source = started(get_preset("clench"), sensors={
            SensorType.GAME_ROTATION_VECTOR, SensorType.ACCELEROMETER,
        })
        assert engine.running
        assert source.listener_count() == 2

    def test_no_delete_no_clench_needs_no_accelerometer(self):
        config = EngineConfig(delete_enabled=False)
        engine, source = started(config, sensors={
            SensorType.GAME_ROTATION_VECTOR, SensorType.GYROSCOPE,
        })
        assert engine.shake is None
        assert source.listener_count() == 2

    def test_start_without_source(self):
        with pytest.raises(ConfigError):
            GestureEngine().start()

    def test_source_from_constructor(self):
        source = ReplaySource()
        engine = GestureEngine(source=source)
        engine.start()
        assert source.listener_count() == 3

    def test_double_start_ignored(self, caplog):
        engine, source = started()
        with caplog.at_level(logging.WARNING, logger="wristflick.engine"):
            engine.start(source=source)
        assert source.listener_count() == 3
        assert "already running" in caplog.text

    def test_stop_before_start(self):
        engine = GestureEngine()
        engine.stop()
        assert not engine.running

    def test_stop_twice(self):
        engine, source = started()
        engine.stop()
        engine.stop()
        assert not engine.running
        assert source.listener_count() == 0

    def test_nothing_emitted_after_stop(self):
        engine, source = started()
        gestures, angles = [], []
        engine.on_gesture(gestures.append)
        engine.on_aim(angles.append)
        engine.stop()

        assert engine.process(pose_at_heading(0.3)) == []
        for s in flick_trace(0):
            assert engine.process(s) == []
        assert gestures == []
        assert angles == []
        assert engine.events.drain() == []

    def test_restart_after_stop(self):
        engine, source = started()
        engine.stop()
        gestures = []
        engine.start(gestures.append, source=source)
        push_all(source, flick_trace(0))
        assert len(gestures) == 1

    def test_restart_discards_stale_events(self):
        engine, source = started()
        push_all(source, flick_trace(0))
        engine.stop()
        engine.start(source=source)
        assert engine.events.drain() == []

    def test_context_manager_stops(self):
        source = ReplaySource()
        with GestureEngine() as engine:
            engine.start(source=source)
            assert engine.running
        assert not engine.running
        assert source.listener_count() == 0


class TestRouting:
    def test_orientation_drives_aim(self):
        engine, source = started()
        angles = []
        engine.on_aim(angles.append)
        source.push(pose_at_heading(0.3))
        assert len(angles) == 1
        assert engine.aim_angle == angles[0]
        assert engine.arc_index() == quantize_arc(angles[0], 4)

    def test_rotation_vector_samples_accepted(self):
        engine, source = started(sensors={
            SensorType.ROTATION_VECTOR, SensorType.GYROSCOPE, SensorType.ACCELEROMETER,
        })
        angles = []
        engine.on_aim(angles.append)
        source.push(pose_at_heading(0.3, sensor=SensorType.ROTATION_VECTOR))
        assert len(angles) == 1

    def test_flick_emits_select(self):
        engine, source = started()
        gestures = []
        engine.on_gesture(gestures.append)
        push_all(source, flick_trace(0))
        assert [g.type for g in gestures] == [GestureType.SELECT]
        assert gestures[0].detector == "flick"

    def test_process_returns_events(self):
        engine, _ = started()
        returned = []
        for s in flick_trace(0):
            returned += engine.process(s)
        assert len(returned) == 1

    def test_start_callback_is_gesture_callback(self):
        engine = GestureEngine()
        source = ReplaySource()
        gestures = []
        engine.start(gestures.append, source=source)
        push_all(source, flick_trace(0))
        assert len(gestures) == 1

    def test_clench_emits_select(self):
        engine, source = started(get_preset("clench"))
        gestures = []
        engine.on_gesture(gestures.append)
        push_all(source, clench_trace(0))
        assert [(g.type, g.detector) for g in gestures] == [(GestureType.SELECT, "clench")]

    def test_clench_ignores_gyroscope(self):
        engine, source = started(get_preset("clench"))
        gestures = []
        engine.on_gesture(gestures.append)
        push_all(source, flick_trace(0))
        assert gestures == []

    def test_dual_accepts_both(self):
        engine, source = started(get_preset("dual"))
        gestures = []
        engine.on_gesture(gestures.append)
        push_all(source, flick_trace(0))
        push_all(source, clench_trace(500 * MS))
        assert sorted(g.detector for g in gestures) == ["clench", "flick"]

    def test_shake_emits_delete(self):
        engine, source = started()
        gestures = []
        engine.on_gesture(gestures.append)
        push_all(source, shake_trace(0))
        assert [g.type for g in gestures] == [GestureType.DELETE]

    def test_shake_disabled(self):
        engine, source = started(EngineConfig(delete_enabled=False))
        gestures = []
        engine.on_gesture(gestures.append)
        push_all(source, shake_trace(0))
        assert gestures == []

    def test_events_reach_channel(self):
        engine, source = started()
        push_all(source, flick_trace(0))
        events = engine.events.drain()
        assert len(events) == 1
        assert events[0].type == GestureType.SELECT

    def test_non_finite_motion_suppressed(self):
        engine, source = started()
        source.push(AngularVelocity(values=[math.nan, 0.0, 0.0], timestamp_ns=0))
        assert engine.stats.suppressed == 1
        assert engine.detector_states()["flick"].phase == DetectorPhase.IDLE

    def test_detector_states(self):
        engine, source = started(get_preset("dual"))
        source.push(AngularVelocity(values=[0.0, 0.0, 2.0], timestamp_ns=0))
        states = engine.detector_states()
        assert set(states) == {"flick", "clench", "shake"}
        assert states["flick"].phase == DetectorPhase.ARMING
        assert states["clench"].phase == DetectorPhase.IDLE
        assert states["shake"] == 0.0


class TestCalibration:
    def test_calibrate_zeroes_current_pose(self):
        engine, source = started()
        angles = []
        engine.on_aim(angles.append)
        for i in range(20):
            source.push(pose_at_heading(0.4, i * 10 * MS))
        assert angles[-1] != pytest.approx(0.0, abs=1e-3)

        offset = engine.calibrate()
        assert offset.angle == pytest.approx(engine.aim.state.smoothed)
        source.push(pose_at_heading(0.4, 300 * MS))
        assert angles[-1] == pytest.approx(0.0, abs=1e-9)
        assert engine.stats.calibrations == 1

    def test_calibrate_before_any_sample(self):
        engine, _ = started()
        offset = engine.calibrate()
        assert offset.angle == 0.0

    def test_calibration_does_not_change_gestures(self):
        engine, source = started()
        gestures = []
        engine.on_gesture(gestures.append)
        source.push(pose_at_heading(0.4))
        engine.calibrate()
        push_all(source, flick_trace(0))
        assert len(gestures) == 1
        assert gestures[0].arc_index is None

    def test_tilt_mode_calibration(self):
        engine, source = started(get_preset("tilt"))
        angles = []
        engine.on_aim(angles.append)
        tilted = Orientation.from_axis_angle((0.0, 1.0, 0.0), 0.5, 0)
        source.push(tilted)
        assert angles == [pytest.approx(math.pi / 2)]

        engine.calibrate()
        assert engine.calibration.offset.roll == pytest.approx(0.5)


class TestDirectionalPayload:
    def test_octant_attaches_arc_index(self):
        config = get_preset("octant")
        engine, source = started(config)
        gestures = []
        engine.on_gesture(gestures.append)

        heading = heading_for_angle(sector_center(2, 8), config.aim)
        for i in range(5):
            source.push(pose_at_heading(heading, i * 10 * MS))
        assert engine.arc_index() == 2

        push_all(source, flick_trace(100 * MS))
        assert len(gestures) == 1
        assert gestures[0].arc_index == 2

    def test_delete_has_no_arc(self):
        engine, source = started(get_preset("octant"))
        gestures = []
        engine.on_gesture(gestures.append)
        source.push(pose_at_heading(0.2))
        push_all(source, shake_trace(0))
        assert gestures[0].type == GestureType.DELETE
        assert gestures[0].arc_index is None


class TestDelivery:
    def test_channel_overflow_counted(self):
        metrics = MetricsCollector()
        engine = GestureEngine(EngineConfig(channel_capacity=1), metrics=metrics)
        source = ReplaySource()
        gestures = []
        engine.start(gestures.append, source=source)

        push_all(source, flick_trace(0))
        push_all(source, flick_trace(400 * MS))

        # Callbacks still see every event; the channel kept only the first
        assert len(gestures) == 2
        assert engine.events.dropped == 1
        assert engine.stats.events_dropped == 1
        assert metrics.events_dropped == 1
        assert len(engine.events.drain()) == 1

    def test_failing_callback_does_not_stop_delivery(self, caplog):
        engine, source = started()
        gestures = []

        def broken(event):
            raise RuntimeError("ui gone")

        engine.on_gesture(broken)
        engine.on_gesture(gestures.append)
        with caplog.at_level(logging.ERROR, logger="wristflick.engine"):
            push_all(source, flick_trace(0))
        assert len(gestures) == 1
        assert "Gesture callback error" in caplog.text

    def test_failing_aim_callback_logged(self, caplog):
        engine, source = started()
        engine.on_aim(lambda angle: 1 / 0)
        with caplog.at_level(logging.ERROR, logger="wristflick.engine"):
            source.push(pose_at_heading(0.3))
        assert "Aim callback error" in caplog.text
        assert engine.aim_angle is not None

    def test_reentrant_sample_dropped(self):
        engine, _ = started()
        # Simulate a delivery still in progress on the gyroscope thread
        with engine._locks["gyroscope"]:
            assert engine.process(AngularVelocity(values=[0.0, 0.0, 3.0], timestamp_ns=0)) == []
        assert engine.stats.busy_drops == 1
        assert engine.detector_states()["flick"].phase == DetectorPhase.IDLE

    def test_calibrate_during_orientation_delivery(self):
        engine, source = started()
        source.push(pose_at_heading(0.3))
        # An orientation sample is mid-flight; calibration must neither wait for it nor drop it
        with engine._locks["orientation"]:
            engine.calibrate()
        assert engine.stats.calibrations == 1
        assert engine.stats.busy_drops == 0

    def test_typing_session_selects_each_arc(self):
        engine, source = started()
        arcs = []
        deletes = []

        def on_gesture(event):
            if event.type == GestureType.SELECT:
                arcs.append(engine.arc_index())
            else:
                deletes.append(event)

        engine.on_gesture(on_gesture)
        source.extend(typing_session([0, 1, 2, 3]))
        source.play()
        assert arcs == [0, 1, 2, 3]
        assert len(deletes) == 1

    def test_clench_typing_session(self):
        config = get_preset("clench")
        engine, source = started(config)
        arcs = []
        engine.on_gesture(lambda e: arcs.append(engine.arc_index()))
        source.extend(typing_session([3, 1], config, shake_at_end=False))
        source.play()
        assert arcs == [3, 1]

    def test_threaded_delivery(self):
        engine, source = started()
        gestures = []
        engine.on_gesture(gestures.append)
        source.extend(typing_session([0, 1, 2, 3, 0, 1]))
        source.play_threaded()

        selects = [g for g in gestures if g.type == GestureType.SELECT]
        deletes = [g for g in gestures if g.type == GestureType.DELETE]
        assert len(selects) == 6
        assert len(deletes) == 1
        assert engine.stats.busy_drops == 0

    def test_stats(self):
        engine, source = started()
        source.extend(typing_session([0, 2]))
        source.play()
        stats = engine.stats
        assert stats.running
        assert stats.gestures == {"select": 2, "delete": 1}
        assert stats.samples["orientation"] > 0
        assert stats.samples["gyroscope"] > 0
        assert stats.samples["accelerometer"] > 0
        assert stats.aim_updates == stats.samples["orientation"]
        assert set(stats.profiler_summary) == {"orientation", "gyroscope", "accelerometer"}

    def test_reset_clears_state(self):
        engine, source = started()
        source.push(pose_at_heading(0.3))
        source.push(AngularVelocity(values=[0.0, 0.0, 2.0], timestamp_ns=0))
        engine.calibrate()
        engine.reset()
        assert engine.aim_angle is None
        assert engine.detector_states()["flick"].phase == DetectorPhase.IDLE
        assert engine.calibration.offset.angle == 0.0

    def test_reset_keeps_profiler_timings(self):
        engine, source = started()
        source.push(pose_at_heading(0.3))
        source.push(AngularVelocity(values=[0.0, 0.0, 2.0], timestamp_ns=0))
        engine.reset()
        summary = engine.profiler.summary()
        assert set(summary) == {"orientation", "gyroscope"}
