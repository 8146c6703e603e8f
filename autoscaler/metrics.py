"""Prometheus-style metrics: counters, histograms, gauges and instrumentation."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Union

from autoscaler.types import (
    Instance,
    InstanceCreateOpts,
    Provider,
    ServerState,
    ServerStore,
)

StartTime = Union[float, int, datetime]

_SERVER_TIME_BUCKETS = (60.0, 150.0, 300.0, 600.0, 900.0, 1200.0)


def _format_value(value: float) -> str:
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if math.isnan(value):
        return "NaN"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help: str) -> None:
        self.name = name
        self.help = help
        self._lock = threading.Lock()

    def snapshot(self) -> MetricSnapshot:
        raise NotImplementedError

    def _sample_lines(self) -> list[str]:
        raise NotImplementedError


class Counter(_Metric):
    """A monotonically increasing counter."""

    kind = "counter"

    def __init__(self, name: str, help: str) -> None:
        super().__init__(name, help)
        self._value = 0.0

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def inc(self, amount: float = 1.0) -> None:
        """Increase the counter; a negative amount is an error."""
        if amount < 0:
            raise ValueError("counter cannot decrease in value")
        with self._lock:
            self._value += amount

    def snapshot(self) -> MetricSnapshot:
        return MetricSnapshot(self.name, self.kind, self.help, self.value)

    def _sample_lines(self) -> list[str]:
        return [f"{self.name} {_format_value(self.value)}"]


class Histogram(_Metric):
    """A histogram with fixed upper bucket bounds."""

    kind = "histogram"

    def __init__(self, name: str, help: str, buckets: tuple[float, ...] = _SERVER_TIME_BUCKETS) -> None:
        super().__init__(name, help)
        bounds = sorted(float(b) for b in buckets if not math.isinf(b))
        self.buckets: tuple[float, ...] = tuple(bounds)
        self._counts = [0] * len(self.buckets)
        self._sum = 0.0
        self._count = 0

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def bucket_counts(self) -> dict[float, int]:
        """Cumulative observation counts keyed by upper bound, including +Inf."""
        with self._lock:
            counts = dict(zip(self.buckets, self._counts))
            counts[math.inf] = self._count
            return counts

    def observe(self, value: float) -> None:
        """Record one observation."""
        with self._lock:
            for index, bound in enumerate(self.buckets):
                if value <= bound:
                    self._counts[index] += 1
            self._sum += value
            self._count += 1

    def snapshot(self) -> MetricSnapshot:
        with self._lock:
            counts = dict(zip(self.buckets, self._counts))
            counts[math.inf] = self._count
            return MetricSnapshot(
                self.name, self.kind, self.help, self._sum,
                count=self._count, buckets=counts,
            )

    def _sample_lines(self) -> list[str]:
        snap = self.snapshot()
        lines = [
            f'{self.name}_bucket{{le="{_format_value(bound)}"}} {total}'
            for bound, total in snap.buckets.items()
        ]
        lines.append(f"{self.name}_sum {_format_value(snap.value)}")
        lines.append(f"{self.name}_count {snap.count}")
        return lines


class GaugeFunc(_Metric):
    """A gauge whose value is computed by a function when read."""

    kind = "gauge"

    def __init__(self, name: str, help: str, func: Callable[[], float]) -> None:
        super().__init__(name, help)
        self._func = func

    @property
    def value(self) -> float:
        return float(self._func())

    def snapshot(self) -> MetricSnapshot:
        return MetricSnapshot(self.name, self.kind, self.help, self.value)

    def _sample_lines(self) -> list[str]:
        return [f"{self.name} {_format_value(self.value)}"]


@dataclass(frozen=True)
class MetricSnapshot:
    """The state of one metric at the moment it was gathered."""

    name: str
    type: str
    help: str
    value: float
    count: int | None = None
    buckets: dict[float, int] = field(default_factory=dict)


class Registry:
    """A collection of uniquely named metrics."""

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def register(self, metric: _Metric) -> _Metric:
        """Add a metric; a name registered twice is an error."""
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"duplicate metrics collector registration attempted: {metric.name}")
            self._metrics[metric.name] = metric
        return metric

    def _sorted(self) -> list[_Metric]:
        with self._lock:
            return [self._metrics[name] for name in sorted(self._metrics)]

    def gather(self) -> list[MetricSnapshot]:
        """Return snapshots of every registered metric, sorted by name."""
        return [metric.snapshot() for metric in self._sorted()]

    def exposition(self) -> str:
        """Render every metric in the Prometheus text exposition format."""
        lines: list[str] = []
        for metric in self._sorted():
            lines.append(f"# HELP {metric.name} {_escape_help(metric.help)}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            lines.extend(metric._sample_lines())
        return "".join(line + "\n" for line in lines)


_DEFAULT_REGISTRY = Registry()


def default_registry() -> Registry:
    """Return the process-wide registry."""
    return _DEFAULT_REGISTRY


def _elapsed_seconds(start: StartTime) -> float:
    started = start.timestamp() if isinstance(start, datetime) else float(start)
    elapsed = time.time() - started
    # round half away from zero to whole seconds
    return float(math.copysign(math.floor(abs(elapsed) + 0.5), elapsed))


class Prometheus:
    """Metrics collector backed by a registry."""

    def __init__(self, registry: Registry | None = None) -> None:
        registry = registry if registry is not None else default_registry()
        self.server_create_time = Histogram(
            "drone_server_create_time_seconds", "Elapsed time creating a server.")
        self.server_init_time = Histogram(
            "drone_server_boot_time_seconds", "Elapsed time initializing a server.")
        self.server_setup_time = Histogram(
            "drone_server_install_time_seconds",
            "Elapsed time installing software on a server.")
        self.server_create_errors = Counter(
            "drone_server_create_errors_total",
            "Total number of errors initializing a server.")
        self.server_init_errors = Counter(
            "drone_server_boot_errors_total",
            "Total number of errors initializing a server.")
        self.server_setup_errors = Counter(
            "drone_server_install_errors_total",
            "Total number of errors installing software on a server.")
        for metric in (
            self.server_create_time, self.server_init_time, self.server_setup_time,
            self.server_create_errors, self.server_init_errors, self.server_setup_errors,
        ):
            registry.register(metric)

    def track_server_create_time(self, start: StartTime) -> None:
        """Record the time taken to provision a server."""
        self.server_create_time.observe(_elapsed_seconds(start))

    def track_server_init_time(self, start: StartTime) -> None:
        """Record the time taken for a server to accept connections."""
        self.server_init_time.observe(_elapsed_seconds(start))

    def track_server_setup_time(self, start: StartTime) -> None:
        """Record the time taken to install software on a server."""
        self.server_setup_time.observe(_elapsed_seconds(start))

    def incr_server_create_error(self) -> None:
        """Count an error provisioning a server."""
        self.server_create_errors.inc()

    def incr_server_init_error(self) -> None:
        """Count an error connecting to a new server."""
        self.server_init_errors.inc()

    def incr_server_setup_error(self) -> None:
        """Count an error installing software on a server."""
        self.server_setup_errors.inc()


class NopCollector:
    """A metrics collector whose measurements are never exported.

    Measurements go to a private registry that no exporter sees, so using
    it has no visible effect on the process-wide metrics.
    """

    def __init__(self) -> None:
        self._sink = Prometheus(Registry())

    def track_server_create_time(self, start: StartTime) -> None:
        self._sink.track_server_create_time(start)

    def track_server_init_time(self, start: StartTime) -> None:
        self._sink.track_server_init_time(start)

    def track_server_setup_time(self, start: StartTime) -> None:
        self._sink.track_server_setup_time(start)

    def incr_server_create_error(self) -> None:
        self._sink.incr_server_create_error()

    def incr_server_init_error(self) -> None:
        self._sink.incr_server_init_error()

    def incr_server_setup_error(self) -> None:
        self._sink.incr_server_setup_error()


def _running(store: ServerStore) -> list:
    try:
        return store.list_state(ServerState.RUNNING) or []
    except Exception:
        return []


def server_capacity(store: ServerStore, registry: Registry | None = None) -> ServerStore:
    """Register a gauge of the total capacity of running servers."""
    registry = registry if registry is not None else default_registry()
    registry.register(GaugeFunc(
        "drone_server_capacity",
        "Total capacity of active servers.",
        lambda: float(sum(server.capacity for server in _running(store))),
    ))
    return store


def server_count(store: ServerStore, registry: Registry | None = None) -> ServerStore:
    """Register a gauge of the number of running servers."""
    registry = registry if registry is not None else default_registry()
    registry.register(GaugeFunc(
        "drone_server_count",
        "Total number of active servers.",
        lambda: float(len(_running(store))),
    ))
    return store


class _CreateCounter(Provider):
    def __init__(self, provider: Provider, created: Counter, errors: Counter) -> None:
        self._provider = provider
        self._created = created
        self._errors = errors

    def create(self, opts: InstanceCreateOpts) -> Instance:
        try:
            instance = self._provider.create(opts)
        except Exception:
            self._errors.inc()
            raise
        self._created.inc()
        return instance

    def destroy(self, instance: Instance) -> None:
        self._provider.destroy(instance)


class _DestroyCounter(Provider):
    def __init__(self, provider: Provider, deleted: Counter, errors: Counter) -> None:
        self._provider = provider
        self._deleted = deleted
        self._errors = errors

    def create(self, opts: InstanceCreateOpts) -> Instance:
        return self._provider.create(opts)

    def destroy(self, instance: Instance) -> None:
        try:
            self._provider.destroy(instance)
        except Exception:
            self._errors.inc()
            raise
        self._deleted.inc()


def server_create(provider: Provider, registry: Registry | None = None) -> Provider:
    """Wrap a provider so that server creations and failures are counted."""
    registry = registry if registry is not None else default_registry()
    created = Counter("drone_servers_created", "Total number of servers created.")
    errors = Counter("drone_servers_created_err", "Total number of server creation errors.")
    registry.register(created)
    registry.register(errors)
    return _CreateCounter(provider, created, errors)


def server_delete(provider: Provider, registry: Registry | None = None) -> Provider:
    """Wrap a provider so that server deletions and failures are counted."""
    registry = registry if registry is not None else default_registry()
    deleted = Counter("drone_servers_deleted", "Total number of servers deleted.")
    errors = Counter("drone_servers_deleted_err", "Total number of server deletion errors.")
    registry.register(deleted)
    registry.register(errors)
    return _DestroyCounter(provider, deleted, errors)