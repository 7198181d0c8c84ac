"""
Threshold alerts for fastapi-pulse.
===================================

Single responsibility: turn a :meth:`PulseMetrics.get_stats` snapshot into a
live status plus the list of thresholds it currently breaches.

Alerts are derived on every read and never stored. This module knows nothing
about HTTP; it is consumed by :mod:`fastapi_pulse.router` (``/realtime``).
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi_pulse.schema import PulseAlert, PulseRealtime, PulseRealtimeMetrics

if TYPE_CHECKING:
    from fastapi_pulse.config import PulseConfig

# Numeric order for status comparison. A status never downgrades.
_STATUS_ORDER: dict[str, int] = {"healthy": 0, "warning": 1, "critical": 2}


def _escalate(current: str, severity: str) -> str:
    return severity if _STATUS_ORDER[severity] > _STATUS_ORDER[current] else current


def evaluate_alerts(stats: dict[str, Any], config: "PulseConfig") -> list[PulseAlert]:
    """Return every alert whose threshold ``stats`` currently exceeds."""
    alerts: list[PulseAlert] = []
    error_rate = stats["error_rate"]
    cpu = stats["resources"]["cpu"]["usage"]
    avg = stats["average_response_time"]
    p99 = stats["response_time_percentiles"]["p99"]

    if error_rate > config.alert_error_rate_percent:
        alerts.append(PulseAlert(
            type="error_rate", severity="warning",
            message=f"High error rate: {error_rate}%",
        ))
    if cpu > config.alert_cpu_percent:
        alerts.append(PulseAlert(
            type="cpu_usage", severity="warning",
            message=f"High CPU usage: {cpu}%",
        ))
    if avg > config.alert_response_time_ms:
        alerts.append(PulseAlert(
            type="response_time", severity="warning",
            message=f"Slow response time: {avg}ms",
        ))
    if p99 > config.alert_p99_ms:
        alerts.append(PulseAlert(
            type="response_time", severity="critical",
            message=f"Very high P99 response time: {p99}ms",
        ))
    return alerts


def realtime_snapshot(stats: dict[str, Any], config: "PulseConfig") -> PulseRealtime:
    """Build the ``/realtime`` payload: headline metrics, status and alerts."""
    alerts = evaluate_alerts(stats, config)
    status = "healthy"
    for alert in alerts:
        status = _escalate(status, alert.severity)

    process_memory = stats["resources"]["memory"]["process"]
    return PulseRealtime(
        status=status,
        alerts=alerts,
        metrics=PulseRealtimeMetrics(
            requests_per_second=stats["request_rate"],
            error_rate=stats["error_rate"],
            response_time=stats["average_response_time"],
            cpu_usage=stats["resources"]["cpu"]["usage"],
            memory_usage=round(process_memory.get("percent", 0.0), 2),
        ),
    )
