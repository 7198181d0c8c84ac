"""
tests/test_sampler.py — PulseSampler tick handling and task lifecycle.

Runs with:  poetry run pytest tests/test_sampler.py -v
"""
from __future__ import annotations

import asyncio

import pytest

from fastapi_pulse import PulseConfig
from fastapi_pulse.metrics import PulseMetrics
from fastapi_pulse.sampler import PulseSampler


class _FlakyMetrics:
    """Stands in for PulseMetrics; sample_cpu fails on its first call only."""

    def __init__(self) -> None:
        self.calls: dict[str, int] = {"cpu": 0, "memory": 0, "network": 0, "cleanup": 0}
        self.baseline_resets = 0

    def reset_baselines(self):
        self.baseline_resets += 1

    def sample_cpu(self):
        self.calls["cpu"] += 1
        if self.calls["cpu"] == 1:
            raise RuntimeError("cpu_times unavailable")

    def sample_memory(self):
        self.calls["memory"] += 1

    def sample_network(self):
        self.calls["network"] += 1

    def cleanup_old_data(self):
        self.calls["cleanup"] += 1
        return 0


def _fast_config(**overrides) -> PulseConfig:
    values = dict(
        cpu_interval_seconds=0.01,
        memory_interval_seconds=0.01,
        network_interval_seconds=0.01,
        cleanup_interval_seconds=0.01,
    )
    values.update(overrides)
    return PulseConfig(**values)


class TestTick:
    def test_success_counted(self):
        sampler = PulseSampler(_FlakyMetrics(), _fast_config())
        assert sampler.tick("memory", lambda: None) is True
        assert sampler.tick_counts == {"memory": 1}
        assert sampler.failure_counts == {}

    def test_failure_counted_and_swallowed(self):
        sampler = PulseSampler(_FlakyMetrics(), _fast_config())

        def boom():
            raise OSError("no /proc")

        assert sampler.tick("network", boom) is False
        assert sampler.failure_counts == {"network": 1}
        assert "network" not in sampler.tick_counts


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_failed_tick_does_not_stop_loop(self):
        metrics = _FlakyMetrics()
        sampler = PulseSampler(metrics, _fast_config())

        sampler.start()
        assert sampler.is_running
        await asyncio.sleep(0.1)
        await sampler.stop()

        assert sampler.failure_counts["cpu"] == 1
        assert metrics.calls["cpu"] >= 2
        assert sampler.tick_counts["cpu"] >= 1
        assert all(metrics.calls[name] >= 1 for name in ("memory", "network", "cleanup"))

    @pytest.mark.asyncio
    async def test_stop_cancels_everything(self):
        metrics = _FlakyMetrics()
        sampler = PulseSampler(metrics, _fast_config())
        sampler.start()
        await asyncio.sleep(0.03)
        await sampler.stop()

        assert not sampler.is_running
        seen = dict(metrics.calls)
        await asyncio.sleep(0.05)
        assert metrics.calls == seen

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self):
        sampler = PulseSampler(_FlakyMetrics(), _fast_config())
        await sampler.stop()
        assert not sampler.is_running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        sampler = PulseSampler(_FlakyMetrics(), _fast_config())
        sampler.start()
        first = dict(sampler._tasks)
        sampler.start()
        assert sampler._tasks == first
        await sampler.stop()

    @pytest.mark.asyncio
    async def test_zero_interval_disables_loop(self):
        sampler = PulseSampler(_FlakyMetrics(), _fast_config(cleanup_interval_seconds=0))
        sampler.start()
        assert set(sampler._tasks) == {"cpu", "memory", "network"}
        await sampler.stop()

    @pytest.mark.asyncio
    async def test_feeds_real_metrics(self):
        config = _fast_config(network_interval_seconds=0, cleanup_interval_seconds=0)
        metrics = PulseMetrics.from_config(config)
        sampler = PulseSampler(metrics, config)

        sampler.start()
        await asyncio.sleep(0.1)
        await sampler.stop()

        resources = metrics.get_stats()["resources"]
        assert len(resources["cpu"]["history"]) >= 1
        assert len(resources["memory"]["process"]["history"]) >= 1
        assert resources["memory"]["system"]["total"] > 0

    @pytest.mark.asyncio
    async def test_start_rebaselines_counters(self, monkeypatch):
        config = _fast_config(
            cpu_interval_seconds=60,
            memory_interval_seconds=60,
            network_interval_seconds=15,
            cleanup_interval_seconds=60,
        )
        metrics = PulseMetrics.from_config(config)
        # Counters as they were at setup() time, long before serving starts.
        metrics._last_network = (0, 0)
        monkeypatch.setattr(metrics, "_read_network_counters", lambda: (150_000, 30_000))

        sampler = PulseSampler(metrics, config)
        sampler.start()
        try:
            sample = metrics.sample_network()
        finally:
            await sampler.stop()

        assert sample.bytes_in == 0
        assert sample.bytes_in_per_second == 0

    @pytest.mark.asyncio
    async def test_restart_rebaselines_again(self):
        metrics = _FlakyMetrics()
        sampler = PulseSampler(metrics, _fast_config())
        sampler.start()
        sampler.start()
        await sampler.stop()
        sampler.start()
        await sampler.stop()
        assert metrics.baseline_resets == 2
