"""
tests/test_alerting.py — Threshold alerts and the realtime payload.

Runs with:  poetry run pytest tests/test_alerting.py -v
"""
from __future__ import annotations

from fastapi_pulse import PulseConfig
from fastapi_pulse.alerting import evaluate_alerts, realtime_snapshot


def _stats(error_rate=0.0, cpu=0.0, avg=0.0, p99=0.0, memory_percent=12.345, rate=1.5):
    return {
        "request_rate": rate,
        "error_rate": error_rate,
        "average_response_time": avg,
        "response_time_percentiles": {"p50": avg, "p95": p99, "p99": p99},
        "resources": {
            "cpu": {"usage": cpu},
            "memory": {"process": {"percent": memory_percent}},
        },
    }


class TestEvaluateAlerts:
    def test_quiet_below_thresholds(self):
        stats = _stats(error_rate=5.0, cpu=80.0, avg=1000.0, p99=5000.0)
        assert evaluate_alerts(stats, PulseConfig()) == []

    def test_each_threshold(self):
        alerts = evaluate_alerts(
            _stats(error_rate=5.1, cpu=80.5, avg=1001.0, p99=5001.0), PulseConfig()
        )
        assert [(a.type, a.severity) for a in alerts] == [
            ("error_rate", "warning"),
            ("cpu_usage", "warning"),
            ("response_time", "warning"),
            ("response_time", "critical"),
        ]
        assert alerts[0].message == "High error rate: 5.1%"
        assert alerts[3].message == "Very high P99 response time: 5001.0ms"

    def test_thresholds_from_config(self):
        config = PulseConfig(alert_cpu_percent=50.0)
        alerts = evaluate_alerts(_stats(cpu=60.0), config)
        assert [a.type for a in alerts] == ["cpu_usage"]


class TestRealtimeSnapshot:
    def test_healthy(self):
        snapshot = realtime_snapshot(_stats(), PulseConfig())
        assert snapshot.status == "healthy"
        assert snapshot.alerts == []
        assert snapshot.metrics.requests_per_second == 1.5
        assert snapshot.metrics.memory_usage == 12.35

    def test_warning_only(self):
        snapshot = realtime_snapshot(_stats(error_rate=50.0), PulseConfig())
        assert snapshot.status == "warning"

    def test_critical_wins_over_warning(self):
        snapshot = realtime_snapshot(_stats(cpu=95.0, p99=9000.0), PulseConfig())
        assert snapshot.status == "critical"
        assert len(snapshot.alerts) == 2
