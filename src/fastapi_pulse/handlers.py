"""Exception handlers for fastapi-pulse."""
from __future__ import annotations

import time
from typing import TYPE_CHECKING, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger

from fastapi_pulse.schema import utcnow

if TYPE_CHECKING:
    from fastapi_pulse.config import PulseConfig


def _duration_ms(request: Request) -> Optional[float]:
    start = getattr(request.state, "start_time", None)
    if start is None:
        return None
    return round((time.perf_counter() - start) * 1000, 2)


def make_generic_exception_handler(config: "PulseConfig"):
    """
    Handler for all unhandled Python exceptions (500).

    Logs the traceback and answers with the ``{success, error, timestamp}``
    envelope. The exception message is only exposed when ``config.debug``.
    """
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error(
            f"Unhandled error on {request.method} {request.url.path} "
            f"(request_id={getattr(request.state, 'request_id', None)}, "
            f"duration_ms={_duration_ms(request)})"
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc) if config.debug else "Server Error",
                "timestamp": utcnow().isoformat(),
            },
        )

    return handler
