"""
fastapi-pulse — SQLite + SQLAlchemy async ORM example.

Shows the full wiring:
  - setup(app) with an api key for POST /api/performance/reset
  - setup_sqlalchemy(engine, ...) so every query shows up under /database
  - make_database_ping(engine) for /health/ready, /health/db and /health/detailed

Run::

    poetry run uvicorn examples.example:app --reload --port 8002

Routes::

    GET    /                          → index
    GET    /products                  → list products (SELECT)
    POST   /products                  → create product (INSERT)
    GET    /products/{id}             → get product (404 when missing)
    DELETE /products/{id}             → delete product (404 when missing)
    GET    /slow                      → sleeps 1.2 s (shows up in /slow-requests)
    GET    /boom                      → RuntimeError 500
    GET    /api/performance/stats     → full snapshot
    GET    /api/performance/realtime  → live status + alerts
    GET    /health/detailed           → per-check breakdown
"""
from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import Float, Integer, String, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from fastapi_pulse import PulseConfig, setup
from fastapi_pulse.integrations.sqlalchemy import make_database_ping, setup_sqlalchemy

# ── Database connection ────────────────────────────────────────────────────────
SQLITE_URL = "sqlite+aiosqlite:///./pulse_example.sqlite"

engine = create_async_engine(SQLITE_URL, echo=False)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


class Product(Base):
    __tablename__ = "products"

    id:    Mapped[int]   = mapped_column(Integer, primary_key=True, autoincrement=True)
    name:  Mapped[str]   = mapped_column(String(120), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


# ── App & Pulse setup ──────────────────────────────────────────────────────────

app = FastAPI(title="fastapi-pulse example", lifespan=lifespan)

pulse = setup(app, config=PulseConfig(
    api_key=os.getenv("PULSE_API_KEY", "change-me"),
    database_ping=make_database_ping(engine),
    cpu_interval_seconds=2,
    slow_request_ms=1000,
    slow_query_ms=50,
))

setup_sqlalchemy(engine, pulse.metrics_instance)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session


class ProductCreate(BaseModel):
    name:  str   = Field(..., min_length=1, max_length=120)
    price: float = Field(..., gt=0)


class ProductOut(BaseModel):
    id:    int
    name:  str
    price: float

    model_config = {"from_attributes": True}


# ── Routes ─────────────────────────────────────────────────────────────────────

@app.get("/")
async def root():
    return {
        "message": "fastapi-pulse + SQLite + SQLAlchemy",
        "stats": "/api/performance/stats",
        "health": "/health/detailed",
    }


@app.get("/products", response_model=list[ProductOut])
async def list_products(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Product).order_by(Product.id))
    return result.scalars().all()


@app.post("/products", response_model=ProductOut, status_code=201)
async def create_product(body: ProductCreate, db: AsyncSession = Depends(get_db)):
    product = Product(name=body.name, price=body.price)
    db.add(product)
    await db.commit()
    await db.refresh(product)
    return product


@app.get("/products/{product_id}", response_model=ProductOut)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    row = await db.get(Product, product_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return row


@app.delete("/products/{product_id}", status_code=204)
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db)):
    row = await db.get(Product, product_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    await db.delete(row)
    await db.commit()


@app.get("/slow")
async def slow():
    await asyncio.sleep(1.2)
    return {"slept": 1.2}


@app.get("/boom")
async def boom():
    raise RuntimeError("Boom! Test exception from the fastapi-pulse example")


if __name__ == "__main__":
    uvicorn.run("examples.example:app", host="0.0.0.0", port=8002, reload=True)
