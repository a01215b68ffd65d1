"""Tests for the replay sensor source."""

import threading

import pytest

from wristflick.config import ConfigError
from wristflick.samples import AngularVelocity, LinearAcceleration, SensorType
from wristflick.sources import ReplaySource, SensorUnavailableError


def gyro(t):
    return AngularVelocity(values=[0.0, 0.0, 1.0], timestamp_ns=t)


def accel(t):
    return LinearAcceleration(values=[0.0, 0.0, 9.81], timestamp_ns=t)


class TestReplaySource:
    def test_offers_all_sensors_by_default(self):
        assert ReplaySource().available_sensors() == set(SensorType)

    def test_register_unavailable_sensor(self):
        source = ReplaySource(sensors={SensorType.ACCELEROMETER})
        with pytest.raises(SensorUnavailableError) as exc:
            source.register(SensorType.GYROSCOPE, lambda s: None, 5000)
        assert exc.value.missing == [SensorType.GYROSCOPE]

    def test_error_is_config_error(self):
        err = SensorUnavailableError([SensorType.GYROSCOPE, SensorType.ACCELEROMETER])
        assert isinstance(err, ConfigError)
        assert "accelerometer" in str(err)
        assert "gyroscope" in str(err)

    def test_push_routes_by_sensor(self):
        source = ReplaySource()
        got_gyro, got_accel = [], []
        source.register(SensorType.GYROSCOPE, got_gyro.append, 5000)
        source.register(SensorType.ACCELEROMETER, got_accel.append, 20000)

        source.push(gyro(1))
        source.push(accel(2))
        assert len(got_gyro) == 1
        assert len(got_accel) == 1
        assert source.requested_period(SensorType.GYROSCOPE) == 5000

    def test_play_in_timestamp_order(self):
        source = ReplaySource([gyro(30), gyro(10), gyro(20)])
        seen = []
        source.register(SensorType.GYROSCOPE, lambda s: seen.append(s.timestamp_ns), 5000)
        assert source.play() == 3
        assert seen == [10, 20, 30]
        assert source.delivered == 3
        # Queue is consumed
        assert source.play() == 0

    def test_unregister_removes_listener_everywhere(self):
        source = ReplaySource()
        seen = []
        source.register(SensorType.GYROSCOPE, seen.append, 5000)
        source.register(SensorType.ACCELEROMETER, seen.append, 20000)
        assert source.listener_count() == 2

        source.unregister(seen.append)
        assert source.listener_count() == 0
        source.push(gyro(1))
        assert seen == []
        assert source.requested_period(SensorType.GYROSCOPE) is None

    def test_play_threaded_uses_one_thread_per_sensor(self):
        source = ReplaySource([gyro(i) for i in range(50)] + [accel(i) for i in range(50)])
        threads = {SensorType.GYROSCOPE: set(), SensorType.ACCELEROMETER: set()}
        lock = threading.Lock()

        def listener(sample):
            with lock:
                threads[sample.sensor].add(threading.current_thread().name)

        source.register(SensorType.GYROSCOPE, listener, 5000)
        source.register(SensorType.ACCELEROMETER, listener, 20000)
        assert source.play_threaded() == 100
        assert threads[SensorType.GYROSCOPE] == {"sensor-gyroscope"}
        assert threads[SensorType.ACCELEROMETER] == {"sensor-accelerometer"}
        assert source.delivered == 100
