"""
tests/test_sqlalchemy.py — SQLAlchemy query timing and database ping.

Runs with:  poetry run pytest tests/test_sqlalchemy.py -v

Uses in-memory SQLite (sync engine and aiosqlite async engine).
"""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.ext.asyncio import create_async_engine

from fastapi_pulse.integrations.sqlalchemy import make_database_ping, setup_sqlalchemy
from fastapi_pulse.metrics import PulseMetrics


class TestQueryTiming:
    def test_sync_engine_statements_tracked(self):
        engine = create_engine("sqlite://")
        metrics = PulseMetrics()
        setup_sqlalchemy(engine, metrics)

        with engine.connect() as conn:
            conn.execute(text("CREATE TABLE posts (id INTEGER PRIMARY KEY, title TEXT)"))
            conn.execute(text("INSERT INTO posts (title) VALUES ('hello')"))
            conn.execute(text("SELECT title FROM posts"))

        report = metrics.database_report()
        assert report["queries"]["total"] >= 3
        queries = [q["query"] for q in report["queries"]["recent"]]
        assert "SELECT title FROM posts" in queries
        assert all(q["duration"] >= 0 for q in report["queries"]["recent"])

    def test_long_statement_truncated(self):
        engine = create_engine("sqlite://")
        metrics = PulseMetrics(query_text_max_length=20)
        setup_sqlalchemy(engine, metrics)

        with engine.connect() as conn:
            conn.execute(text("SELECT 1 AS a_rather_long_column_alias"))

        history = metrics.get_stats()["database"]["queries"]["history"]
        assert "SELECT 1 AS a_rather" in [q["query"] for q in history]
        assert all(len(q["query"]) <= 20 for q in history)

    @pytest.mark.asyncio
    async def test_async_engine_statements_tracked(self):
        engine = create_async_engine("sqlite+aiosqlite://")
        metrics = PulseMetrics()
        setup_sqlalchemy(engine, metrics)

        async with engine.connect() as conn:
            await conn.execute(text("SELECT 42"))
        await engine.dispose()

        assert metrics.get_stats()["database"]["queries"]["total"] >= 1


class TestDatabasePing:
    @pytest.mark.asyncio
    async def test_sync_engine_ping(self):
        engine = create_engine("sqlite://")
        ping = make_database_ping(engine)
        assert await ping() is None

    @pytest.mark.asyncio
    async def test_async_engine_ping(self):
        engine = create_async_engine("sqlite+aiosqlite://")
        ping = make_database_ping(engine)
        assert await ping() is None
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_ping_raises_when_unreachable(self):
        engine = create_engine("sqlite:////nonexistent-dir/pulse.db")
        ping = make_database_ping(engine)
        with pytest.raises(Exception):
            await ping()
