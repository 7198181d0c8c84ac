from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class PulseResponse(BaseModel):
    """
    JSON envelope shared by every route under ``api_prefix``.

    Exactly one of ``data`` / ``error`` is set; ``None`` fields are dropped
    from the serialised body by the router.
    """

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class PulseResetRequest(BaseModel):
    """Body of POST /api/performance/reset. Accepts ``api_key`` or ``apiKey``."""

    api_key: Optional[str] = Field(default=None, alias="apiKey")

    model_config = ConfigDict(populate_by_name=True)


class PulseAlert(BaseModel):
    """Threshold breach derived at read time. Never persisted."""

    type: Literal["error_rate", "cpu_usage", "response_time"]
    message: str
    severity: Literal["warning", "critical"]


class PulseRealtimeMetrics(BaseModel):
    requests_per_second: float
    error_rate: float
    response_time: float
    cpu_usage: float
    memory_usage: float


class PulseRealtime(BaseModel):
    """Live status returned by GET /api/performance/realtime."""

    timestamp: datetime = Field(default_factory=utcnow)
    status: Literal["healthy", "warning", "critical"] = "healthy"
    alerts: list[PulseAlert] = Field(default_factory=list)
    metrics: PulseRealtimeMetrics


class PulseLiveness(BaseModel):
    """Returned by GET /health/live."""

    status: Literal["alive"] = "alive"
    timestamp: datetime = Field(default_factory=utcnow)
    pid: int
    uptime: float


class PulseReadiness(BaseModel):
    """Returned by GET /health/ready."""

    status: Literal["ready", "not_ready"]
    timestamp: datetime = Field(default_factory=utcnow)
    database: Literal["connected", "not_configured", "disconnected"]
    error: Optional[str] = None


class PulseCheck(BaseModel):
    """One entry of GET /health/detailed."""

    status: Literal["healthy", "warning", "unhealthy", "unknown"]
    detail: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class PulseDetailedHealth(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    overall: Literal["healthy", "unhealthy"]
    checks: dict[str, PulseCheck]


class PulseMetricsSnapshot(BaseModel):
    """Flat counters returned by GET /metrics."""

    timestamp: datetime = Field(default_factory=utcnow)
    uptime_seconds: float
    total_requests: int
    memory_rss_bytes: int
    cpu_user_seconds: float
    cpu_system_seconds: float
    sampler_running: bool
