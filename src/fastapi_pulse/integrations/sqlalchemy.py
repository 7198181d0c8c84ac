"""
SQLAlchemy integration for fastapi-pulse.

Attaches SQLAlchemy Core/ORM engine event listeners that time every cursor
execution and feed it to :meth:`PulseMetrics.track_database_query`, and
builds a ``database_ping`` coroutine for the health routes.

Usage::

    from sqlalchemy.ext.asyncio import create_async_engine
    from fastapi_pulse import setup
    from fastapi_pulse.integrations.sqlalchemy import make_database_ping, setup_sqlalchemy

    engine = create_async_engine("postgresql+asyncpg://...")

    app = FastAPI()
    pulse_config = setup(app, config=PulseConfig(database_ping=make_database_ping(engine)))
    setup_sqlalchemy(engine, pulse_config.metrics_instance)

.. note::
    This module has zero hard dependencies on SQLAlchemy: it imports
    ``sqlalchemy`` only inside the functions below so that the rest of
    fastapi-pulse works without SQLAlchemy installed.
"""
from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from fastapi_pulse.metrics import PulseMetrics


def _require_sqlalchemy():
    try:
        import sqlalchemy  # type: ignore[import]
    except ImportError as exc:
        raise ImportError(
            "SQLAlchemy is required for fastapi_pulse.integrations.sqlalchemy. "
            "Install it with: pip install 'fastapi-pulse[sqlalchemy]'"
        ) from exc
    return sqlalchemy


def setup_sqlalchemy(engine: Any, metrics: "PulseMetrics") -> None:
    """
    Register ``before_cursor_execute`` / ``after_cursor_execute`` listeners
    on *engine* that report every statement's duration to *metrics*.

    :param engine:  A SQLAlchemy ``Engine`` or ``AsyncEngine`` instance.
    :param metrics: The aggregator created by ``setup()``.

    Listeners may fire on a worker thread; ``PulseMetrics`` is thread-safe.
    """
    sqlalchemy = _require_sqlalchemy()

    # AsyncEngine wraps a sync engine; unwrap if needed.
    sync_engine = getattr(engine, "sync_engine", engine)

    @sqlalchemy.event.listens_for(sync_engine, "before_cursor_execute")
    def _before(
        conn: Any,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        if context is not None:
            context._pulse_t0 = time.perf_counter()

    @sqlalchemy.event.listens_for(sync_engine, "after_cursor_execute")
    def _after(
        conn: Any,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        t0 = getattr(context, "_pulse_t0", None) if context is not None else None
        if t0 is None:
            return
        metrics.track_database_query(statement, (time.perf_counter() - t0) * 1000)


def make_database_ping(engine: Any) -> Callable[[], Awaitable[None]]:
    """
    Build an ``async def ping()`` running ``SELECT 1`` on *engine*.

    Works with both ``AsyncEngine`` and a plain ``Engine`` (run in a thread).
    """
    sqlalchemy = _require_sqlalchemy()
    statement = sqlalchemy.text("SELECT 1")

    if hasattr(engine, "sync_engine"):
        async def ping() -> None:
            async with engine.connect() as conn:
                await conn.execute(statement)
    else:
        from starlette.concurrency import run_in_threadpool

        def _sync_ping() -> None:
            with engine.connect() as conn:
                conn.execute(statement)

        async def ping() -> None:
            await run_in_threadpool(_sync_ping)

    return ping
