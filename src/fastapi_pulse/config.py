from __future__ import annotations

from typing import Any, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PulseConfig(BaseSettings):
    """
    Configuration for fastapi-pulse.

    All fields can be set via environment variables with the ``PULSE_`` prefix,
    or loaded from a ``.env`` file automatically.

    Example::

        PULSE_API_KEY=change-me
        PULSE_API_PREFIX=/api/performance
        PULSE_CPU_INTERVAL_SECONDS=5
    """

    # ── HTTP surface ─────────────────────────────────────────────────────────
    # Prefix for the performance router. Health routes are always mounted at
    # the application root (/health, /health/live, ..., /metrics).
    api_prefix: str = "/api/performance"
    include_health_routes: bool = True
    # Secret required in the body of POST {api_prefix}/reset.
    # When unset, every reset attempt is rejected with 401.
    #
    # Environment variable:
    #   PULSE_API_KEY=<secret>
    api_key: Optional[str] = None
    # When False, requests to api_prefix and the health routes are not recorded.
    track_own_routes: bool = False
    # Expose exception messages in 500 responses (development only).
    debug: bool = False

    # ── Bounded histories ────────────────────────────────────────────────────
    max_response_times: int = 1000
    max_slow_requests: int = 50
    max_errors: int = 100
    max_slow_queries: int = 50
    max_resource_samples: int = 100
    # Maximum number of distinct (method, path) aggregates. Once reached, new
    # keys are dropped from the per-endpoint table (global counters still move)
    # so scanners probing random URLs cannot grow memory without bound.
    max_endpoints: int = 500
    # Time-based eviction applied by the cleanup tick, independent of capacity.
    retention_seconds: int = 3600

    # ── Thresholds ───────────────────────────────────────────────────────────
    slow_request_ms: float = 1000.0
    slow_query_ms: float = 100.0
    query_text_max_length: int = 100

    # Alerts computed by GET {api_prefix}/realtime. Never stored.
    alert_error_rate_percent: float = 5.0
    alert_cpu_percent: float = 80.0
    alert_response_time_ms: float = 1000.0
    alert_p99_ms: float = 5000.0

    # ── Sampler intervals ────────────────────────────────────────────────────
    cpu_interval_seconds: float = 5.0
    memory_interval_seconds: float = 10.0
    network_interval_seconds: float = 15.0
    cleanup_interval_seconds: float = 3600.0

    # ── Database health ──────────────────────────────────────────────────────
    # Optional ``async def ping() -> None`` used by /health/ready, /health/db
    # and /health/detailed. Raise to signal the database is unreachable.
    database_ping: Optional[Any] = Field(default=None, exclude=True)

    # ── Runtime: set by setup(), never from env ────────────────────────────────
    metrics_instance: Optional[Any] = Field(default=None, exclude=True)
    sampler_instance: Optional[Any] = Field(default=None, exclude=True)

    model_config = SettingsConfigDict(
        env_prefix="PULSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
