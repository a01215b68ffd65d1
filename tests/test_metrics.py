"""Tests for Prometheus metrics."""

from wristflick.metrics import MetricsCollector


class TestMetricsCollector:
    def test_record_gesture(self):
        m = MetricsCollector()
        m.record_gesture("select", "flick")
        m.record_gesture("select", "clench")
        m.record_gesture("delete", "shake")
        assert m.gesture_counts == {"select": 2, "delete": 1}

    def test_record_sample(self):
        m = MetricsCollector()
        m.record_sample("gyroscope", 0.0001)
        m.record_sample("gyroscope")
        m.record_sample("orientation", 0.0002)
        assert m.sample_counts == {"gyroscope": 2, "orientation": 1}

    def test_render_prometheus_format(self):
        m = MetricsCollector()
        m.record_gesture("select", "flick")
        m.record_sample("gyroscope", 0.0001)
        m.record_suppressed("aim_hold")
        m.record_dropped_event()
        m.record_calibration()

        output = m.render()
        assert 'wristflick_gestures_total{gesture="select",detector="flick"} 1' in output
        assert 'wristflick_samples_total{sensor="gyroscope"} 1' in output
        assert 'wristflick_samples_suppressed_total{reason="aim_hold"} 1' in output
        assert "wristflick_events_dropped_total 1" in output
        assert "wristflick_calibrations_total 1" in output
        assert "# HELP" in output
        assert "# TYPE" in output

    def test_histogram_is_cumulative(self):
        m = MetricsCollector()
        for _ in range(10):
            m.record_sample("gyroscope", 0.00003)
        m.record_sample("gyroscope", 0.003)
        output = m.render()
        assert 'wristflick_sample_latency_seconds_bucket{le="1e-05"} 0' in output
        assert 'wristflick_sample_latency_seconds_bucket{le="5e-05"} 10' in output
        assert 'wristflick_sample_latency_seconds_bucket{le="0.002"} 10' in output
        assert 'wristflick_sample_latency_seconds_bucket{le="0.005"} 11' in output
        assert 'wristflick_sample_latency_seconds_bucket{le="+Inf"} 11' in output
        assert "wristflick_sample_latency_seconds_count 11" in output

    def test_engine_feeds_metrics(self):
        from wristflick.engine import GestureEngine
        from wristflick.sources import ReplaySource
        from wristflick.synthetic import typing_session

        m = MetricsCollector()
        engine = GestureEngine(metrics=m)
        source = ReplaySource(typing_session([0]))
        engine.start(source=source)
        source.play()
        engine.calibrate()

        assert m.gesture_counts == {"select": 1, "delete": 1}
        assert 'detector="shake"' in m.render()
        assert "wristflick_calibrations_total 1" in m.render()
