"""
PulseSampler: background asyncio tasks that feed resource snapshots into
:class:`~fastapi_pulse.metrics.PulseMetrics`.

Lifecycle:
  - start() schedules one asyncio Task per resource class via ensure_future()
  - stop()  cancels every task together and awaits clean shutdown
  - Both are called by the lifespan wrapper in __init__.py

Ticks (defaults, all configurable on PulseConfig):
  - cpu      every 5 s   → PulseMetrics.sample_cpu
  - memory   every 10 s  → PulseMetrics.sample_memory (process + system)
  - network  every 15 s  → PulseMetrics.sample_network
  - cleanup  every 1 h   → PulseMetrics.cleanup_old_data

A failing tick is logged and skipped; the loop sleeps and tries again.
"""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable

from loguru import logger

if TYPE_CHECKING:
    from fastapi_pulse.config import PulseConfig
    from fastapi_pulse.metrics import PulseMetrics


class PulseSampler:
    def __init__(self, metrics: "PulseMetrics", config: "PulseConfig") -> None:
        self._metrics = metrics
        self._config = config
        self._tasks: dict[str, asyncio.Task] = {}
        self.tick_counts: dict[str, int] = {}
        self.failure_counts: dict[str, int] = {}

    def _schedule(self) -> list[tuple[str, Callable[[], object], float]]:
        config = self._config
        return [
            ("cpu", self._metrics.sample_cpu, config.cpu_interval_seconds),
            ("memory", self._metrics.sample_memory, config.memory_interval_seconds),
            ("network", self._metrics.sample_network, config.network_interval_seconds),
            ("cleanup", self._metrics.cleanup_old_data, config.cleanup_interval_seconds),
        ]

    # ── Internals ────────────────────────────────────────────────────────────

    def tick(self, name: str, sample: Callable[[], object]) -> bool:
        """Run one sample. Returns False when it failed (and was skipped)."""
        try:
            sample()
        except Exception as exc:
            self.failure_counts[name] = self.failure_counts.get(name, 0) + 1
            logger.warning(f"Performance sampler '{name}' tick failed: {exc}")
            return False
        self.tick_counts[name] = self.tick_counts.get(name, 0) + 1
        return True

    async def _loop(self, name: str, sample: Callable[[], object], interval: float) -> None:
        """Sleep-then-sample loop for one resource class. Runs until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.tick(name, sample)

    # ── Public lifecycle ─────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    def start(self) -> None:
        """Schedule every sampler loop as a background asyncio Task."""
        if self.is_running:
            return
        self._metrics.reset_baselines()
        self._tasks = {
            name: asyncio.ensure_future(self._loop(name, sample, interval))
            for name, sample, interval in self._schedule()
            if interval > 0
        }
        logger.info("Performance monitoring started")

    async def stop(self) -> None:
        """Cancel all sampler tasks together and wait for them to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            logger.info("Performance monitoring stopped")
        self._tasks = {}
