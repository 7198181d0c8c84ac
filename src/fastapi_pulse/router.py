"""
FastAPI router for fastapi-pulse.

Registers routes under config.api_prefix (default ``/api/performance``):
  GET  /stats          -> full PulseMetrics.get_stats() snapshot
  GET  /requests       -> filtered/sorted request list + summary
  GET  /slow-requests  -> requests over a duration threshold
  GET  /errors         -> error requests + per-status summary
  GET  /endpoints      -> per-endpoint aggregates + summary
  GET  /database       -> query history, slow queries, duration buckets
  GET  /resources      -> CPU/memory/network snapshots + trends
  GET  /realtime       -> live status + threshold alerts
  POST /reset          -> clear request/query state (requires api_key)

Every response is wrapped in ``{success, data | error, timestamp}``.
The router speaks only to the metrics aggregator.
"""
from __future__ import annotations

import secrets
from typing import Any, Callable, Literal, Optional

from fastapi import APIRouter, Body, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from loguru import logger

from fastapi_pulse.alerting import realtime_snapshot
from fastapi_pulse.schema import PulseResetRequest, PulseResponse

SortOrder = Literal["asc", "desc"]
RequestSortField = Literal["timestamp", "duration", "status_code"]
EndpointSortField = Literal[
    "total_requests", "average_duration", "total_duration", "slowest", "fastest"
]


def _envelope(status_code: int = 200, **fields: Any) -> JSONResponse:
    body = PulseResponse(**fields).model_dump()
    # Drop unset envelope keys only; None values inside ``data`` are kept.
    body = {k: v for k, v in body.items() if v is not None}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def _guarded(name: str, read: Callable[[], Any]) -> JSONResponse:
    """Run a read and wrap it; any failure becomes a 500 envelope."""
    try:
        data = read()
    except Exception as exc:
        logger.exception(f"Performance endpoint '{name}' failed")
        return _envelope(500, success=False, error=str(exc))
    return _envelope(success=True, data=data)


def make_router(config) -> APIRouter:
    """Returns a configured APIRouter. Called once during setup()."""
    router = APIRouter(prefix=config.api_prefix, tags=["performance"])

    def metrics():
        return config.metrics_instance

    @router.get("/stats")
    async def get_stats():
        return _guarded("stats", lambda: metrics().get_stats())

    @router.get("/requests")
    async def get_requests(
        limit: int = Query(50, ge=1, le=1000),
        sort_by: RequestSortField = Query("timestamp", alias="sortBy"),
        sort_order: SortOrder = Query("desc", alias="sortOrder"),
        status_code: Optional[int] = Query(None, alias="statusCode"),
        method: Optional[str] = Query(None),
        path: Optional[str] = Query(None),
    ):
        return _guarded("requests", lambda: metrics().list_requests(
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
            status_code=status_code,
            method=method,
            path=path,
        ))

    @router.get("/slow-requests")
    async def get_slow_requests(
        limit: int = Query(20, ge=1, le=1000),
        threshold: float = Query(1000, ge=0),
    ):
        return _guarded(
            "slow-requests",
            lambda: metrics().list_slow_requests(limit=limit, threshold=threshold),
        )

    @router.get("/errors")
    async def get_errors(
        limit: int = Query(20, ge=1, le=1000),
        status_code: Optional[int] = Query(None, alias="statusCode"),
        method: Optional[str] = Query(None),
    ):
        return _guarded("errors", lambda: metrics().list_errors(
            limit=limit, status_code=status_code, method=method,
        ))

    @router.get("/endpoints")
    async def get_endpoints(
        sort_by: EndpointSortField = Query("total_requests", alias="sortBy"),
        sort_order: SortOrder = Query("desc", alias="sortOrder"),
    ):
        return _guarded(
            "endpoints",
            lambda: metrics().endpoint_report(sort_by=sort_by, sort_order=sort_order),
        )

    @router.get("/database")
    async def get_database():
        return _guarded("database", lambda: metrics().database_report())

    @router.get("/resources")
    async def get_resources():
        return _guarded("resources", lambda: metrics().resource_report())

    @router.get("/realtime")
    async def get_realtime():
        return _guarded("realtime", lambda: realtime_snapshot(metrics().get_stats(), config))

    @router.post("/reset")
    async def reset(body: Optional[PulseResetRequest] = Body(None)):
        supplied = body.api_key if body else None
        expected = config.api_key
        if not expected or not supplied or not secrets.compare_digest(supplied, expected):
            logger.warning("Rejected performance metrics reset: invalid api key")
            return _envelope(401, success=False, error="Unauthorized")
        try:
            metrics().reset()
        except Exception as exc:
            logger.exception("Performance metrics reset failed")
            return _envelope(500, success=False, error=str(exc))
        return _envelope(success=True, message="Performance metrics reset successfully")

    return router
