"""
In-memory performance metrics aggregator for fastapi-pulse.
===========================================================

Fed by ``PerformanceMiddleware`` on every HTTP response, by the SQLAlchemy
integration on every query, and by ``PulseSampler`` on fixed intervals.
Data lives in process memory and resets on restart.

Design goals
------------
- Bounded memory: every history is a ring buffer (``deque(maxlen=...)``)
  except the query history, which the hourly cleanup trims by age.
- Ingestion never raises: observability must not break the request it observes.
- One ``threading.RLock`` guards all state. Middleware runs on the event loop
  but SQLAlchemy listeners may run on worker threads.
- Reads return plain-dict copies (no Pydantic here, to keep the aggregator
  independent of the schema layer). Callers never hold live references.
"""
from __future__ import annotations

import math
import threading
import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

import psutil
from loguru import logger

if TYPE_CHECKING:
    from fastapi_pulse.config import PulseConfig

_MB = 1024 * 1024
# Queries returned inline by get_stats() and database_report().
_RECENT_QUERIES = 20


def percentile(sorted_values: list[float], fraction: float) -> float:
    """Value at ``floor(fraction * len)`` of an ascending list; 0 when empty."""
    if not sorted_values:
        return 0
    idx = min(int(math.floor(fraction * len(sorted_values))), len(sorted_values) - 1)
    return sorted_values[idx]


def _r2(value: float) -> float:
    return round(value, 2)


def _percentiles(durations: Iterable[float]) -> dict[str, float]:
    ordered = sorted(durations)
    return {
        "p50": _r2(percentile(ordered, 0.50)),
        "p95": _r2(percentile(ordered, 0.95)),
        "p99": _r2(percentile(ordered, 0.99)),
    }


# ── Samples ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RequestSample:
    """One completed HTTP request. ``duration`` is in fractional milliseconds."""

    id: str
    method: str
    path: str
    status_code: int
    duration: float
    timestamp: float
    ip: Optional[str] = None
    user: Optional[str] = None
    user_agent: Optional[str] = None
    memory_delta: Optional[int] = None


@dataclass(frozen=True)
class QuerySample:
    id: str
    query: str
    duration: float
    timestamp: float


@dataclass(frozen=True)
class CpuSample:
    timestamp: float
    usage: float
    user_time: float
    system_time: float


@dataclass(frozen=True)
class ProcessMemorySample:
    timestamp: float
    rss: int
    vms: int
    percent: float


@dataclass(frozen=True)
class SystemMemorySample:
    timestamp: float
    total: int
    free: int
    used: int
    percentage: float


@dataclass(frozen=True)
class NetworkSample:
    timestamp: float
    bytes_in: int
    bytes_out: int
    bytes_in_per_second: float
    bytes_out_per_second: float


@dataclass
class RequestContext:
    """Opaque handle returned by :meth:`PulseMetrics.begin_request`."""

    start: float
    start_rss: Optional[int] = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))


# ── Per-endpoint aggregate ───────────────────────────────────────────────────


@dataclass
class _EndpointStats:
    method: str
    path: str
    total_requests: int = 0
    total_duration: float = 0.0
    average_duration: float = 0.0
    slowest: float = 0.0
    fastest: float = math.inf
    status_codes: dict[int, int] = field(default_factory=dict)

    def record(self, duration: float, status_code: int) -> None:
        self.total_requests += 1
        self.total_duration += duration
        self.average_duration = self.total_duration / self.total_requests
        self.status_codes[status_code] = self.status_codes.get(status_code, 0) + 1
        if duration > self.slowest:
            self.slowest = duration
        if duration < self.fastest:
            self.fastest = duration

    def as_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "path": self.path,
            "total_requests": self.total_requests,
            "total_duration": _r2(self.total_duration),
            "average_duration": _r2(self.average_duration),
            "status_codes": dict(self.status_codes),
            "slowest": _r2(self.slowest),
            "fastest": _r2(self.fastest) if self.total_requests else 0.0,
        }


def endpoint_key(method: str, path: str) -> str:
    return f"{method.upper()} {path}"


# ── Aggregator ───────────────────────────────────────────────────────────────


class PulseMetrics:
    """
    Process-wide performance metrics store.

    Created once by :func:`fastapi_pulse.setup` and injected into the
    middleware, sampler and routers through ``PulseConfig.metrics_instance``.

    Usage::

        metrics = PulseMetrics()
        ctx = metrics.begin_request()
        ...
        metrics.end_request(ctx, 200, meta={"method": "GET", "path": "/users"})
        stats = metrics.get_stats()

    ``clock`` returns wall-clock epoch seconds and is injectable for tests.
    """

    def __init__(
        self,
        *,
        max_response_times: int = 1000,
        max_slow_requests: int = 50,
        max_errors: int = 100,
        max_slow_queries: int = 50,
        max_resource_samples: int = 100,
        max_endpoints: int = 500,
        slow_request_ms: float = 1000.0,
        slow_query_ms: float = 100.0,
        query_text_max_length: int = 100,
        retention_seconds: float = 3600.0,
        network_interval_seconds: float = 15.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.RLock()
        self._clock = clock
        self._process = psutil.Process()

        self._max_response_times = max_response_times
        self._max_slow_requests = max_slow_requests
        self._max_errors = max_errors
        self._max_slow_queries = max_slow_queries
        self._max_resource_samples = max_resource_samples
        self._max_endpoints = max_endpoints
        self._slow_request_ms = slow_request_ms
        self._slow_query_ms = slow_query_ms
        self._query_text_max_length = query_text_max_length
        self._retention_seconds = retention_seconds
        self._network_interval_seconds = network_interval_seconds

        self._init_request_state()
        self._init_query_state()

        # Endpoint aggregates survive reset(), like the resource histories.
        self._endpoints: dict[str, _EndpointStats] = {}

        # Resource state
        self._cpu_history: deque[CpuSample] = deque(maxlen=max_resource_samples)
        self._cpu_current: dict[str, float] = {"user": 0.0, "system": 0.0, "idle": 0.0}
        self._cpu_usage: float = 0.0
        self._last_cpu_times = self._read_cpu_times()
        self._last_cpu_at = time.monotonic()

        self._process_memory: dict[str, float] = {"rss": 0, "vms": 0, "percent": 0.0}
        self._process_memory_history: deque[ProcessMemorySample] = deque(
            maxlen=max_resource_samples
        )
        self._system_memory: dict[str, float] = {
            "total": 0, "free": 0, "used": 0, "percentage": 0.0,
        }
        self._system_memory_history: deque[SystemMemorySample] = deque(
            maxlen=max_resource_samples
        )

        self._network_totals: dict[str, int] = {"bytes_in": 0, "bytes_out": 0}
        self._network_history: deque[NetworkSample] = deque(maxlen=max_resource_samples)
        self._last_network = self._read_network_counters()

    @classmethod
    def from_config(cls, config: "PulseConfig", **kwargs: Any) -> "PulseMetrics":
        return cls(
            max_response_times=config.max_response_times,
            max_slow_requests=config.max_slow_requests,
            max_errors=config.max_errors,
            max_slow_queries=config.max_slow_queries,
            max_resource_samples=config.max_resource_samples,
            max_endpoints=config.max_endpoints,
            slow_request_ms=config.slow_request_ms,
            slow_query_ms=config.slow_query_ms,
            query_text_max_length=config.query_text_max_length,
            retention_seconds=config.retention_seconds,
            network_interval_seconds=config.network_interval_seconds,
            **kwargs,
        )

    def _init_request_state(self) -> None:
        self._start_time = self._clock()
        self._total_requests = 0
        self._by_method: dict[str, int] = {}
        self._by_status: dict[int, int] = {}
        self._response_times: deque[RequestSample] = deque(maxlen=self._max_response_times)
        self._slow_requests: deque[RequestSample] = deque(maxlen=self._max_slow_requests)
        self._errors: deque[RequestSample] = deque(maxlen=self._max_errors)

    def _init_query_state(self) -> None:
        self._query_total = 0
        self._query_slow = 0
        self._query_average = 0.0
        # Not capacity-bounded: the cleanup tick trims it by age.
        self._query_history: list[QuerySample] = []
        self._slow_queries: deque[QuerySample] = deque(maxlen=self._max_slow_queries)

    # ── Request ingestion ────────────────────────────────────────────────────

    def begin_request(self) -> RequestContext:
        """Capture the start time and memory footprint. Touches no shared state."""
        return RequestContext(start=time.perf_counter(), start_rss=self._current_rss())

    def end_request(
        self,
        context: Optional[RequestContext],
        status_code: int,
        duration_ms: Optional[float] = None,
        meta: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Record a finished request observed through :meth:`begin_request`.

        ``meta`` must carry ``method`` and ``path`` and may carry ``ip``,
        ``user`` and ``user_agent``. When ``duration_ms`` is omitted it is
        measured from the context. A malformed context is ignored.
        """
        try:
            start = getattr(context, "start", None)
            if start is None:
                logger.debug("pulse: end_request without a start time, ignoring")
                return
            meta = meta or {}
            method = meta.get("method")
            path = meta.get("path")
            if not method or not path:
                logger.debug("pulse: end_request without method/path, ignoring")
                return
            if duration_ms is None:
                duration_ms = (time.perf_counter() - start) * 1000
            memory_delta = None
            start_rss = getattr(context, "start_rss", None)
            if start_rss is not None:
                end_rss = self._current_rss()
                if end_rss is not None:
                    memory_delta = end_rss - start_rss
            self.record_request(
                method=method,
                path=path,
                status_code=int(status_code),
                duration_ms=float(duration_ms),
                request_id=getattr(context, "request_id", None),
                ip=meta.get("ip"),
                user=meta.get("user"),
                user_agent=meta.get("user_agent"),
                memory_delta=memory_delta,
            )
        except Exception as exc:  # noqa: BLE001
            logger.debug(f"pulse: failed to record request: {exc}")

    def record_request(
        self,
        *,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        request_id: Optional[str] = None,
        ip: Optional[str] = None,
        user: Optional[str] = None,
        user_agent: Optional[str] = None,
        memory_delta: Optional[int] = None,
    ) -> RequestSample:
        method = method.upper()
        sample = RequestSample(
            id=request_id or str(uuid.uuid4()),
            method=method,
            path=path,
            status_code=status_code,
            duration=duration_ms,
            timestamp=self._clock(),
            ip=ip,
            user=user,
            user_agent=user_agent,
            memory_delta=memory_delta,
        )
        with self._lock:
            self._total_requests += 1
            self._by_method[method] = self._by_method.get(method, 0) + 1
            self._by_status[status_code] = self._by_status.get(status_code, 0) + 1
            self._response_times.append(sample)
            if duration_ms >= self._slow_request_ms:
                self._slow_requests.append(sample)
            if status_code >= 400:
                self._errors.append(sample)
            self.track_api_endpoint(path, method, duration_ms, status_code)

        if duration_ms >= self._slow_request_ms:
            logger.warning(f"Slow request: {method} {path} took {duration_ms:.2f}ms")
        return sample

    def track_api_endpoint(
        self, path: str, method: str, duration_ms: float, status_code: int
    ) -> None:
        """Update the (method, path) aggregate, creating it on first sight."""
        key = endpoint_key(method, path)
        with self._lock:
            stats = self._endpoints.get(key)
            if stats is None:
                if len(self._endpoints) >= self._max_endpoints:
                    return  # cap reached, drop unknown endpoint
                stats = self._endpoints[key] = _EndpointStats(method=method.upper(), path=path)
            stats.record(duration_ms, status_code)

    # ── Database queries ─────────────────────────────────────────────────────

    def track_database_query(self, query: str, duration_ms: float) -> None:
        sample = QuerySample(
            id=str(uuid.uuid4()),
            query=(query or "")[: self._query_text_max_length],
            duration=float(duration_ms),
            timestamp=self._clock(),
        )
        with self._lock:
            self._query_total += 1
            self._query_history.append(sample)
            if sample.duration > self._slow_query_ms:
                self._query_slow += 1
                self._slow_queries.append(sample)
            n = self._query_total
            self._query_average = (self._query_average * (n - 1) + sample.duration) / n

    # ── Resource sampling (driven by PulseSampler) ───────────────────────────

    def _current_rss(self) -> Optional[int]:
        try:
            return self._process.memory_info().rss
        except (psutil.Error, OSError):
            return None

    def _read_cpu_times(self) -> tuple[float, float]:
        times = self._process.cpu_times()
        return times.user, times.system

    @staticmethod
    def _read_network_counters() -> tuple[int, int]:
        counters = psutil.net_io_counters()
        if counters is None:
            return 0, 0
        return counters.bytes_recv, counters.bytes_sent

    def reset_baselines(self) -> None:
        """Re-read the CPU and network counters the next samples are measured against.

        Called when the sampler starts so the first tick covers one interval.
        """
        cpu_times = self._read_cpu_times()
        network = self._read_network_counters()
        with self._lock:
            self._last_cpu_times = cpu_times
            self._last_cpu_at = time.monotonic()
            self._last_network = network

    def sample_cpu(self) -> CpuSample:
        user, system = self._read_cpu_times()
        now = time.monotonic()
        with self._lock:
            user_delta = max(0.0, user - self._last_cpu_times[0])
            system_delta = max(0.0, system - self._last_cpu_times[1])
            elapsed = now - self._last_cpu_at
            busy = user_delta + system_delta
            usage = busy / elapsed * 100 if elapsed > 0 else 0.0
            sample = CpuSample(
                timestamp=self._clock(),
                usage=usage,
                user_time=user_delta,
                system_time=system_delta,
            )
            self._cpu_current = {
                "user": user_delta,
                "system": system_delta,
                "idle": max(0.0, elapsed - busy),
            }
            self._cpu_usage = usage
            self._cpu_history.append(sample)
            self._last_cpu_times = (user, system)
            self._last_cpu_at = now
        return sample

    def sample_memory(self) -> tuple[ProcessMemorySample, SystemMemorySample]:
        """Sample process and system memory on the same tick."""
        info = self._process.memory_info()
        process_percent = self._process.memory_percent()
        vm = psutil.virtual_memory()
        used = vm.total - vm.available
        now = self._clock()
        process_sample = ProcessMemorySample(
            timestamp=now, rss=info.rss, vms=info.vms, percent=process_percent
        )
        system_sample = SystemMemorySample(
            timestamp=now,
            total=vm.total,
            free=vm.available,
            used=used,
            percentage=used / vm.total * 100 if vm.total else 0.0,
        )
        with self._lock:
            self._process_memory = {
                "rss": info.rss, "vms": info.vms, "percent": process_percent,
            }
            self._process_memory_history.append(process_sample)
            self._system_memory = {
                "total": system_sample.total,
                "free": system_sample.free,
                "used": system_sample.used,
                "percentage": system_sample.percentage,
            }
            self._system_memory_history.append(system_sample)
        return process_sample, system_sample

    def sample_network(self) -> NetworkSample:
        bytes_in, bytes_out = self._read_network_counters()
        interval = self._network_interval_seconds or 1
        with self._lock:
            # Counters can wrap or reset when interfaces go away.
            delta_in = max(0, bytes_in - self._last_network[0])
            delta_out = max(0, bytes_out - self._last_network[1])
            sample = NetworkSample(
                timestamp=self._clock(),
                bytes_in=delta_in,
                bytes_out=delta_out,
                bytes_in_per_second=delta_in / interval,
                bytes_out_per_second=delta_out / interval,
            )
            self._network_history.append(sample)
            self._network_totals["bytes_in"] += delta_in
            self._network_totals["bytes_out"] += delta_out
            self._last_network = (bytes_in, bytes_out)
        return sample

    def cleanup_old_data(self) -> int:
        """Drop request, slow, error and query entries older than the retention window.

        Returns the number of entries removed.
        """
        cutoff = self._clock() - self._retention_seconds
        with self._lock:
            before = (
                len(self._response_times) + len(self._slow_requests)
                + len(self._errors) + len(self._query_history)
            )
            self._response_times = deque(
                (s for s in self._response_times if s.timestamp > cutoff),
                maxlen=self._max_response_times,
            )
            self._slow_requests = deque(
                (s for s in self._slow_requests if s.timestamp > cutoff),
                maxlen=self._max_slow_requests,
            )
            self._errors = deque(
                (s for s in self._errors if s.timestamp > cutoff),
                maxlen=self._max_errors,
            )
            self._query_history = [q for q in self._query_history if q.timestamp > cutoff]
            after = (
                len(self._response_times) + len(self._slow_requests)
                + len(self._errors) + len(self._query_history)
            )
        removed = before - after
        logger.info(f"Performance data cleanup completed ({removed} entries removed)")
        return removed

    # ── Read path ────────────────────────────────────────────────────────────

    def get_stats(self) -> dict[str, Any]:
        """Full snapshot with derived rates and percentiles. Never mutates state."""
        with self._lock:
            uptime = self._clock() - self._start_time
            total = self._total_requests
            durations = [s.duration for s in self._response_times]
            request_rate = total / uptime if uptime > 0 else 0.0
            # Retained errors over lifetime total: an approximation once the
            # error buffer has evicted entries.
            error_rate = len(self._errors) / total * 100 if total else 0.0
            avg = sum(durations) / len(durations) if durations else 0.0

            return {
                "uptime": uptime,
                "request_rate": _r2(request_rate),
                "total_requests": total,
                "requests_by_method": dict(self._by_method),
                "requests_by_status": dict(self._by_status),
                "error_rate": _r2(error_rate),
                "average_response_time": _r2(avg),
                "response_time_percentiles": _percentiles(durations),
                "resources": self._resources_locked(),
                "database": {
                    "queries": {
                        "total": self._query_total,
                        "slow": self._query_slow,
                        "average_time": _r2(self._query_average),
                        "history": [asdict(q) for q in self._query_history[-_RECENT_QUERIES:]],
                    },
                    "slow_queries": [asdict(q) for q in self._slow_queries],
                },
                "api": {
                    "endpoints": {k: s.as_dict() for k, s in self._endpoints.items()},
                    "slow_requests": [asdict(s) for s in list(self._slow_requests)[:10]],
                    "errors": [asdict(s) for s in list(self._errors)[:10]],
                },
            }

    def _resources_locked(self) -> dict[str, Any]:
        return {
            "cpu": {
                "usage": _r2(self._cpu_usage),
                "current": dict(self._cpu_current),
                "history": [asdict(s) for s in self._cpu_history],
            },
            "memory": {
                "process": {
                    **self._process_memory,
                    "history": [asdict(s) for s in self._process_memory_history],
                },
                "system": {
                    **self._system_memory,
                    "history": [asdict(s) for s in self._system_memory_history],
                },
            },
            "network": {
                **self._network_totals,
                "history": [asdict(s) for s in self._network_history],
            },
        }

    def list_requests(
        self,
        *,
        limit: int = 50,
        sort_by: str = "timestamp",
        sort_order: str = "desc",
        status_code: Optional[int] = None,
        method: Optional[str] = None,
        path: Optional[str] = None,
    ) -> dict[str, Any]:
        with self._lock:
            requests = list(self._response_times)

        if status_code is not None:
            requests = [r for r in requests if r.status_code == status_code]
        if method:
            requests = [r for r in requests if r.method == method.upper()]
        if path:
            requests = [r for r in requests if path in r.path]

        requests.sort(
            key=lambda r: getattr(r, sort_by, 0) or 0,
            reverse=sort_order != "asc",
        )
        requests = requests[:limit]

        durations = [r.duration for r in requests]
        return {
            "requests": [asdict(r) for r in requests],
            "summary": {
                "total": len(requests),
                "average": _r2(sum(durations) / len(durations)) if durations else 0,
                "min": _r2(min(durations)) if durations else 0,
                "max": _r2(max(durations)) if durations else 0,
                "percentiles": _percentiles(durations),
            },
            "filters": {
                "status_code": status_code,
                "method": method,
                "path": path,
                "limit": limit,
                "sort_by": sort_by,
                "sort_order": sort_order,
            },
        }

    def list_slow_requests(self, *, limit: int = 20, threshold: float = 1000) -> dict[str, Any]:
        with self._lock:
            slow = [s for s in self._slow_requests if s.duration >= threshold]
        slow.sort(key=lambda s: s.duration, reverse=True)
        slow = slow[:limit]
        return {
            "slow_requests": [asdict(s) for s in slow],
            "count": len(slow),
            "threshold": threshold,
        }

    def list_errors(
        self,
        *,
        limit: int = 20,
        status_code: Optional[int] = None,
        method: Optional[str] = None,
    ) -> dict[str, Any]:
        with self._lock:
            errors = list(self._errors)
        if status_code is not None:
            errors = [e for e in errors if e.status_code == status_code]
        if method:
            errors = [e for e in errors if e.method == method.upper()]
        errors.sort(key=lambda e: e.timestamp, reverse=True)
        errors = errors[:limit]

        summary: dict[int, int] = {}
        for e in errors:
            summary[e.status_code] = summary.get(e.status_code, 0) + 1
        return {
            "errors": [asdict(e) for e in errors],
            "summary": summary,
            "total": len(errors),
        }

    def endpoint_report(
        self, *, sort_by: str = "total_requests", sort_order: str = "desc"
    ) -> dict[str, Any]:
        with self._lock:
            endpoints = [
                {"endpoint": key, **stats.as_dict()} for key, stats in self._endpoints.items()
            ]
        endpoints.sort(
            key=lambda e: e.get(sort_by, 0) or 0,
            reverse=sort_order != "asc",
        )
        total_requests = sum(e["total_requests"] for e in endpoints)
        avg = (
            sum(e["average_duration"] for e in endpoints) / len(endpoints)
            if endpoints else 0.0
        )
        by_latency = sorted(endpoints, key=lambda e: e["average_duration"], reverse=True)
        return {
            "endpoints": endpoints,
            "summary": {
                "total_endpoints": len(endpoints),
                "total_requests": total_requests,
                "average_response_time": _r2(avg),
                "slowest_endpoint": by_latency[0]["endpoint"] if by_latency else None,
                "fastest_endpoint": by_latency[-1]["endpoint"] if by_latency else None,
            },
            "sort_by": sort_by,
            "sort_order": sort_order,
        }

    def database_report(self) -> dict[str, Any]:
        with self._lock:
            recent = self._query_history[-_RECENT_QUERIES:][::-1]
            slow = sorted(self._slow_queries, key=lambda q: q.duration, reverse=True)[:10]
            total, slow_count, average = self._query_total, self._query_slow, self._query_average

        times = [q.duration for q in recent]
        return {
            "queries": {
                "total": total,
                "slow": slow_count,
                "average_time": _r2(average),
                "recent": [asdict(q) for q in recent],
                "slow_queries": [asdict(q) for q in slow],
            },
            "performance": {
                "average_query_time": _r2(sum(times) / len(times)) if times else 0,
                "distribution": {
                    "fast": sum(1 for t in times if t < 50),
                    "medium": sum(1 for t in times if 50 <= t < 200),
                    "slow": sum(1 for t in times if 200 <= t < 500),
                    "very_slow": sum(1 for t in times if t >= 500),
                },
            },
        }

    def resource_report(self, *, window: int = 20) -> dict[str, Any]:
        """Current resource values, the last ``window`` samples and trend deltas."""
        with self._lock:
            cpu_history = list(self._cpu_history)[-window:]
            process_history = list(self._process_memory_history)[-window:]
            system_history = list(self._system_memory_history)[-window:]
            network_history = list(self._network_history)[-window:]
            cpu_usage = self._cpu_usage
            cpu_current = dict(self._cpu_current)
            process = dict(self._process_memory)
            system = dict(self._system_memory)
            network = dict(self._network_totals)

        cpu_trend = cpu_history[-1].usage - cpu_history[0].usage if len(cpu_history) >= 2 else 0
        memory_trend = (
            process_history[-1].percent - process_history[0].percent
            if len(process_history) >= 2 else 0
        )
        return {
            "cpu": {
                "current": {"usage": _r2(cpu_usage), **cpu_current},
                "history": [asdict(s) for s in cpu_history],
                "trend": _r2(cpu_trend),
            },
            "memory": {
                "process": {
                    "current": {
                        "rss_mb": round(process["rss"] / _MB),
                        "vms_mb": round(process["vms"] / _MB),
                        "percent": _r2(process["percent"]),
                    },
                    "history": [asdict(s) for s in process_history],
                },
                "system": {
                    "current": {
                        "total_mb": round(system["total"] / _MB),
                        "free_mb": round(system["free"] / _MB),
                        "used_mb": round(system["used"] / _MB),
                        "percentage": _r2(system["percentage"]),
                    },
                    "history": [asdict(s) for s in system_history],
                },
                "trend": _r2(memory_trend),
            },
            "network": {
                "current": network,
                "history": [asdict(s) for s in network_history],
            },
        }

    # ── Counters ─────────────────────────────────────────────────────────────

    @property
    def uptime(self) -> float:
        return self._clock() - self._start_time

    @property
    def total_requests(self) -> int:
        return self._total_requests

    @property
    def endpoint_count(self) -> int:
        return len(self._endpoints)

    @property
    def at_capacity(self) -> bool:
        """True when the endpoint cap has been reached."""
        return len(self._endpoints) >= self._max_endpoints

    def reset(self) -> None:
        """Clear request and query state and restart the uptime clock.

        Resource histories and endpoint aggregates are kept.
        """
        with self._lock:
            self._init_request_state()
            self._init_query_state()
        logger.info("Performance metrics reset")
