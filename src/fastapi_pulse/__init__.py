"""
fastapi-pulse
=============

In-process performance monitoring for FastAPI: request latency percentiles,
per-endpoint aggregates, database query timing and CPU/memory/network
sampling, served as JSON under ``/api/performance``.

Quick start, zero config, works immediately::

    from fastapi import FastAPI
    from fastapi_pulse import setup

    app = FastAPI()
    setup(app)
    # Stats at http://localhost:8000/api/performance/stats
    # Health at http://localhost:8000/health

Custom configuration::

    from fastapi_pulse import setup, PulseConfig

    setup(app, config=PulseConfig(
        api_prefix="/internal/perf",
        api_key="change-me",          # required by POST /internal/perf/reset
        cpu_interval_seconds=2,
        slow_request_ms=500,
    ))

SQLAlchemy query timing (optional)::

    from fastapi_pulse.integrations.sqlalchemy import make_database_ping, setup_sqlalchemy

    config = setup(app, config=PulseConfig(database_ping=make_database_ping(engine)))
    setup_sqlalchemy(engine, config.metrics_instance)
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from fastapi_pulse.config import PulseConfig
from fastapi_pulse.metrics import PulseMetrics, RequestContext, RequestSample
from fastapi_pulse.sampler import PulseSampler
from fastapi_pulse.schema import PulseAlert, PulseRealtime, PulseResponse

__all__ = [
    "setup",
    "PulseConfig",
    "PulseMetrics",
    "PulseSampler",
    "RequestContext",
    "RequestSample",
    "PulseAlert",
    "PulseRealtime",
    "PulseResponse",
]
__version__ = "0.1.0"


def setup(
    app: FastAPI,
    *,
    config: Optional[PulseConfig] = None,
) -> PulseConfig:
    """
    Wire fastapi-pulse into a FastAPI application.

    This function must be called **after** creating the FastAPI instance
    and **before** the application starts serving requests.

    Steps performed:
      1. Build / validate the PulseConfig
      2. Instantiate the in-memory PulseMetrics aggregator
      3. Add PerformanceMiddleware (begin/end request observation)
      4. Register the generic exception handler (unhandled → 500 envelope)
      5. Include the performance router and the health router
      6. Wrap the app lifespan to start/stop the resource sampler

    :param app:    The FastAPI application instance.
    :param config: Full ``PulseConfig`` instance.  When omitted, config is
                   read from environment variables (``PULSE_*`` prefix) or
                   ``.env`` file.
    :returns:      The resolved ``PulseConfig`` (useful for introspection).
    """
    if config is None:
        config = PulseConfig()

    from fastapi_pulse.handlers import make_generic_exception_handler
    from fastapi_pulse.health import make_health_router
    from fastapi_pulse.middleware import PerformanceMiddleware
    from fastapi_pulse.router import make_router

    # ── Instantiate in-memory metrics aggregator ──────────────────────────
    if config.metrics_instance is None:
        config.metrics_instance = PulseMetrics.from_config(config)

    app.add_middleware(PerformanceMiddleware, config=config)
    app.add_exception_handler(Exception, make_generic_exception_handler(config))
    app.include_router(make_router(config))
    if config.include_health_routes:
        app.include_router(make_health_router(config))

    sampler = PulseSampler(config.metrics_instance, config)
    config.sampler_instance = sampler
    _wrap_lifespan(app, sampler)

    return config


def _wrap_lifespan(app: FastAPI, sampler: PulseSampler) -> None:
    """
    Run the resource sampler for exactly as long as the application lives.

    The app's own lifespan (FastAPI always installs one) is nested inside:
    sampling begins before user startup code, and the sampler tasks are
    cancelled and awaited even when user startup or shutdown raises, so no
    interval loop outlives the event loop.
    """
    inner_lifespan = app.router.lifespan_context

    @asynccontextmanager
    async def sampled_lifespan(app: FastAPI):
        sampler.start()
        try:
            async with inner_lifespan(app) as state:
                yield state
        finally:
            await sampler.stop()

    app.router.lifespan_context = sampled_lifespan
