"""
tests/test_router.py — JSON API under /api/performance.

Runs with:  poetry run pytest tests/test_router.py -v

The aggregator is fed directly through ``record_request`` so durations and
statuses are exact; the HTTP layer is only exercised for the reads.
"""
from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fastapi_pulse import PulseConfig, setup

# ─── helpers ─────────────────────────────────────────────────────────────────


def _make_client(**config_kwargs):
    app = FastAPI()
    config = setup(app, config=PulseConfig(**config_kwargs))
    return TestClient(app, raise_server_exceptions=False), config


def _seed(config, rows):
    metrics = config.metrics_instance
    for method, path, status, duration in rows:
        metrics.record_request(
            method=method, path=path, status_code=status, duration_ms=duration,
        )


_ROWS = [
    ("GET", "/posts", 200, 30),
    ("GET", "/posts/{id}", 404, 5),
    ("POST", "/posts", 201, 1200),
    ("DELETE", "/posts/{id}", 500, 60),
]


# ═══════════════════════════════════════════════════════════════════════════════
# Envelope
# ═══════════════════════════════════════════════════════════════════════════════


class TestEnvelope:
    def test_success_envelope(self):
        client, config = _make_client()
        _seed(config, _ROWS)
        resp = client.get("/api/performance/stats")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert "timestamp" in body
        assert "error" not in body
        assert body["data"]["total_requests"] == 4
        assert body["data"]["requests_by_status"] == {"200": 1, "404": 1, "201": 1, "500": 1}

    def test_read_failure_becomes_500_envelope(self, monkeypatch):
        client, config = _make_client()

        def broken():
            raise RuntimeError("aggregator unavailable")

        monkeypatch.setattr(config.metrics_instance, "get_stats", broken)
        resp = client.get("/api/performance/stats")

        assert resp.status_code == 500
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "aggregator unavailable"
        assert "data" not in body

    def test_custom_prefix(self):
        client, _ = _make_client(api_prefix="/internal/perf")
        assert client.get("/internal/perf/stats").status_code == 200
        assert client.get("/api/performance/stats").status_code == 404


# ═══════════════════════════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════════════════════════


class TestRequestReads:
    def test_requests_filter_and_sort(self):
        client, config = _make_client()
        _seed(config, _ROWS)

        resp = client.get(
            "/api/performance/requests",
            params={"sortBy": "duration", "sortOrder": "asc", "path": "/posts"},
        )
        data = resp.json()["data"]
        assert [r["duration"] for r in data["requests"]] == [5, 30, 60, 1200]
        assert data["filters"]["sort_by"] == "duration"

        resp = client.get("/api/performance/requests", params={"statusCode": 404})
        data = resp.json()["data"]
        assert data["summary"]["total"] == 1
        assert data["requests"][0]["path"] == "/posts/{id}"

    def test_requests_rejects_unknown_sort_field(self):
        client, _ = _make_client()
        resp = client.get("/api/performance/requests", params={"sortBy": "ip"})
        assert resp.status_code == 422

    def test_slow_requests_threshold(self):
        client, config = _make_client()
        _seed(config, _ROWS)
        data = client.get(
            "/api/performance/slow-requests", params={"threshold": 1000}
        ).json()["data"]
        assert data["count"] == 1
        assert data["threshold"] == 1000
        assert data["slow_requests"][0]["method"] == "POST"

    def test_errors_with_filters(self):
        client, config = _make_client()
        _seed(config, _ROWS)

        data = client.get("/api/performance/errors").json()["data"]
        assert data["total"] == 2
        assert data["summary"] == {"404": 1, "500": 1}

        data = client.get(
            "/api/performance/errors", params={"statusCode": 500, "method": "delete"}
        ).json()["data"]
        assert data["total"] == 1


class TestAggregateReads:
    def test_endpoints_sorted(self):
        client, config = _make_client()
        _seed(config, _ROWS + [("GET", "/posts", 200, 50)])

        data = client.get("/api/performance/endpoints").json()["data"]
        assert data["endpoints"][0]["endpoint"] == "GET /posts"
        assert data["endpoints"][0]["total_requests"] == 2
        assert data["summary"]["total_endpoints"] == 4
        assert data["summary"]["slowest_endpoint"] == "POST /posts"
        assert data["summary"]["fastest_endpoint"] == "GET /posts/{id}"

        data = client.get(
            "/api/performance/endpoints",
            params={"sortBy": "average_duration", "sortOrder": "asc"},
        ).json()["data"]
        assert data["endpoints"][0]["endpoint"] == "GET /posts/{id}"

    def test_database(self):
        client, config = _make_client()
        config.metrics_instance.track_database_query("SELECT * FROM posts", 20)
        config.metrics_instance.track_database_query("UPDATE posts SET title = ?", 300)

        data = client.get("/api/performance/database").json()["data"]
        assert data["queries"]["total"] == 2
        assert data["queries"]["slow"] == 1
        assert data["performance"]["distribution"]["fast"] == 1
        assert data["performance"]["distribution"]["slow"] == 1

    def test_resources(self):
        client, config = _make_client()
        config.metrics_instance.sample_cpu()
        config.metrics_instance.sample_memory()

        data = client.get("/api/performance/resources").json()["data"]
        assert len(data["cpu"]["history"]) == 1
        assert data["memory"]["process"]["current"]["rss_mb"] >= 0
        assert set(data["memory"]["system"]["current"]) == {
            "total_mb", "free_mb", "used_mb", "percentage",
        }
        assert data["network"]["history"] == []


class TestRealtime:
    def test_healthy_without_traffic(self):
        client, _ = _make_client()
        data = client.get("/api/performance/realtime").json()["data"]
        assert data["status"] == "healthy"
        assert data["alerts"] == []
        assert set(data["metrics"]) == {
            "requests_per_second", "error_rate", "response_time", "cpu_usage", "memory_usage",
        }

    def test_warning_on_error_rate(self):
        client, config = _make_client()
        _seed(config, [("GET", "/posts", 500, 10), ("GET", "/posts", 200, 10)])
        data = client.get("/api/performance/realtime").json()["data"]
        assert data["status"] == "warning"
        assert [a["type"] for a in data["alerts"]] == ["error_rate"]

    def test_critical_on_p99(self):
        client, config = _make_client()
        _seed(config, [("GET", "/report", 200, 6000)])
        data = client.get("/api/performance/realtime").json()["data"]
        assert data["status"] == "critical"
        severities = {a["severity"] for a in data["alerts"]}
        assert severities == {"warning", "critical"}


# ═══════════════════════════════════════════════════════════════════════════════
# Reset
# ═══════════════════════════════════════════════════════════════════════════════


class TestReset:
    @pytest.mark.parametrize("body", [None, {}, {"apiKey": "wrong"}, {"apiKey": ""}])
    def test_rejected_without_valid_key(self, body):
        client, config = _make_client(api_key="secret")
        _seed(config, _ROWS)

        resp = client.post("/api/performance/reset", json=body)
        assert resp.status_code == 401
        assert resp.json()["success"] is False
        assert resp.json()["error"] == "Unauthorized"
        assert config.metrics_instance.total_requests == 4

    def test_rejected_when_no_key_configured(self):
        client, _ = _make_client()
        resp = client.post("/api/performance/reset", json={"apiKey": "anything"})
        assert resp.status_code == 401

    @pytest.mark.parametrize("field", ["apiKey", "api_key"])
    def test_reset_with_key(self, field):
        client, config = _make_client(api_key="secret")
        _seed(config, _ROWS)

        resp = client.post("/api/performance/reset", json={field: "secret"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Performance metrics reset successfully"

        stats = client.get("/api/performance/stats").json()["data"]
        assert stats["total_requests"] == 0
        assert stats["api"]["slow_requests"] == []
