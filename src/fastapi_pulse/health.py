"""
Liveness / readiness routes for fastapi-pulse.

Mounted at the application root (no prefix) and public by design so they can
be polled by load balancers, Kubernetes probes and deploy/rollback scripts:

  GET /health           -> process health summary (200 / 429 / 503)
  GET /health/live      -> liveness probe, always 200
  GET /health/ready     -> readiness probe (database ping)
  GET /health/detailed  -> per-check breakdown
  GET /health/db        -> database ping round-trip
  GET /metrics          -> flat counters for scrapers

The database is reached only through ``config.database_ping``, an
``async def ping() -> None`` that raises when the database is unreachable.
"""
from __future__ import annotations

import os
import platform
import time
from typing import Any, Optional

import psutil
from fastapi import APIRouter
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from fastapi_pulse.schema import (
    PulseCheck,
    PulseDetailedHealth,
    PulseLiveness,
    PulseMetricsSnapshot,
    PulseReadiness,
    utcnow,
)

_MB = 1024 * 1024


def _memory_check(percent: float) -> str:
    if percent < 90:
        return "healthy"
    return "warning" if percent < 95 else "unhealthy"


def _db_state(ok: Optional[bool]) -> str:
    if ok is None:
        return "not_configured"
    return "connected" if ok else "disconnected"


async def _ping(config) -> tuple[Optional[bool], Optional[str], Optional[float]]:
    """Returns (ok, error, elapsed_ms). ``ok`` is None when no ping is configured."""
    ping = getattr(config, "database_ping", None)
    if ping is None:
        return None, None, None
    start = time.perf_counter()
    try:
        await ping()
    except Exception as exc:
        return False, str(exc), None
    return True, None, round((time.perf_counter() - start) * 1000, 2)


def make_health_router(config) -> APIRouter:
    """Returns the health APIRouter. Called once during setup()."""
    router = APIRouter(tags=["health"])
    process = psutil.Process()

    def _process_uptime() -> float:
        return time.time() - process.create_time()

    @router.get("/health")
    async def health():
        mem = process.memory_info()
        mem_percent = process.memory_percent()
        vm = psutil.virtual_memory()
        cpu = process.cpu_times()
        uptime = _process_uptime()
        healthy = mem_percent < 95
        db_ok, _, _ = await _ping(config)

        body: dict[str, Any] = {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": utcnow(),
            "uptime": {"process": uptime, "system": time.time() - psutil.boot_time()},
            "services": {
                "database": _db_state(db_ok),
            },
            "performance": {
                "memory": {
                    "rss_mb": round(mem.rss / _MB),
                    "vms_mb": round(mem.vms / _MB),
                    "percent": round(mem_percent, 2),
                },
                "cpu": {
                    "user_seconds": cpu.user,
                    "system_seconds": cpu.system,
                    "load_average": [round(v, 2) for v in os.getloadavg()]
                    if hasattr(os, "getloadavg") else [],
                },
                "system": {
                    "total_memory_mb": round(vm.total / _MB),
                    "free_memory_mb": round(vm.available / _MB),
                    "used_memory_percent": round((vm.total - vm.available) / vm.total * 100),
                    "platform": platform.system().lower(),
                    "arch": platform.machine(),
                    "cpu_count": psutil.cpu_count() or 0,
                },
            },
            "checks": {
                "memory": _memory_check(mem_percent),
                "uptime": "healthy" if uptime > 60 else "warning",
            },
        }
        status_code = 200 if healthy else (429 if mem_percent < 98 else 503)
        return JSONResponse(status_code=status_code, content=jsonable_encoder(body))

    @router.get("/health/live", response_model=PulseLiveness)
    async def live() -> PulseLiveness:
        return PulseLiveness(pid=os.getpid(), uptime=_process_uptime())

    @router.get("/health/ready", response_model=PulseReadiness)
    async def ready():
        ok, error, _ = await _ping(config)
        if ok is False:
            report = PulseReadiness(status="not_ready", database="disconnected", error=error)
            return JSONResponse(status_code=503, content=jsonable_encoder(report))
        return PulseReadiness(
            status="ready", database="connected" if ok else "not_configured",
        )

    @router.get("/health/detailed", response_model=PulseDetailedHealth)
    async def detailed():
        checks: dict[str, PulseCheck] = {}

        ok, error, elapsed = await _ping(config)
        if ok is None:
            checks["database"] = PulseCheck(status="unknown", detail={"state": "not_configured"})
        elif ok:
            checks["database"] = PulseCheck(
                status="healthy", detail={"state": "connected", "response_time_ms": elapsed},
            )
        else:
            checks["database"] = PulseCheck(status="unhealthy", error=error)

        mem_percent = process.memory_percent()
        checks["memory"] = PulseCheck(
            status=_memory_check(mem_percent),
            detail={
                "rss_mb": round(process.memory_info().rss / _MB),
                "percent": round(mem_percent, 2),
            },
        )

        sampler = config.sampler_instance
        checks["sampler"] = PulseCheck(
            status="healthy" if sampler is not None and sampler.is_running else "warning",
            detail={"running": bool(sampler and sampler.is_running)},
        )

        unhealthy = any(c.status == "unhealthy" for c in checks.values())
        report = PulseDetailedHealth(overall="unhealthy" if unhealthy else "healthy", checks=checks)
        return JSONResponse(
            status_code=503 if unhealthy else 200, content=jsonable_encoder(report),
        )

    @router.get("/health/db")
    async def database():
        ok, error, elapsed = await _ping(config)
        if ok is None:
            return JSONResponse(status_code=503, content={
                "status": "unhealthy",
                "database": {"state": "not_configured", "error": "No database ping configured"},
                "timestamp": utcnow().isoformat(),
            })
        if not ok:
            return JSONResponse(status_code=503, content={
                "status": "unhealthy",
                "database": {"state": "disconnected", "error": error},
                "timestamp": utcnow().isoformat(),
            })
        return {
            "status": "healthy",
            "database": {"state": "connected", "response_time_ms": elapsed},
            "timestamp": utcnow().isoformat(),
        }

    @router.get("/metrics", response_model=PulseMetricsSnapshot)
    async def metrics_snapshot() -> PulseMetricsSnapshot:
        metrics = config.metrics_instance
        sampler = config.sampler_instance
        cpu = process.cpu_times()
        return PulseMetricsSnapshot(
            uptime_seconds=metrics.uptime if metrics else _process_uptime(),
            total_requests=metrics.total_requests if metrics else 0,
            memory_rss_bytes=process.memory_info().rss,
            cpu_user_seconds=cpu.user,
            cpu_system_seconds=cpu.system,
            sampler_running=bool(sampler and sampler.is_running),
        )

    return router
