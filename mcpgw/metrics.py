"""Minimal in-process metrics: counters, gauges, histograms and a registry."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


@dataclass
class MetricSample:
    """One labelled series. ``buckets`` maps upper bound to cumulative count for histograms."""

    labels: dict[str, str]
    value: float = 0.0
    count: int = 0
    buckets: dict[float, int] = field(default_factory=dict)


@dataclass
class MetricFamily:
    """All series of one metric."""

    name: str
    type: str
    help: str
    samples: list[MetricSample]


def _full_name(namespace: str, name: str) -> str:
    return f"{namespace}_{name}" if namespace else name


class _Metric:
    type = ""

    def __init__(self, name: str, help: str, labelnames=(), namespace: str = "") -> None:
        self.name = _full_name(namespace, name)
        self.help = help
        self.labelnames = tuple(labelnames)
        self._lock = threading.Lock()
        self._children: dict[tuple[str, ...], object] = {}

    def _child(self, values: tuple[str, ...]):
        if len(values) != len(self.labelnames):
            raise ValueError(f"{self.name}: expected {len(self.labelnames)} label values")
        with self._lock:
            if values not in self._children:
                self._children[values] = self._new_child()
            return self._children[values]

    def _new_child(self):
        raise NotImplementedError

    def _sample(self, labels: dict[str, str], child) -> MetricSample:
        raise NotImplementedError

    def collect(self) -> MetricFamily:
        with self._lock:
            items = list(self._children.items())
        samples = [self._sample(dict(zip(self.labelnames, k)), c) for k, c in items]
        return MetricFamily(self.name, self.type, self.help, samples)


class _Value:
    def __init__(self) -> None:
        self.value = 0.0
        self.lock = threading.Lock()


class _CounterChild(_Value):
    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counter cannot decrease")
        with self.lock:
            self.value += amount


class Counter(_Metric):
    """A monotonically increasing value, optionally labelled."""

    type = "counter"

    def _new_child(self):
        return _CounterChild()

    def _sample(self, labels, child) -> MetricSample:
        return MetricSample(labels, child.value)

    def labels(self, *args: str) -> _CounterChild:
        return self._child(tuple(args))

    def inc(self, amount: float = 1.0) -> None:
        self._child(()).inc(amount)

    def collect(self) -> MetricFamily:
        return super().collect()


class Gauge(_Metric):
    """A value that can go up and down."""

    type = "gauge"

    def __init__(self, name: str, help: str, namespace: str = "") -> None:
        super().__init__(name, help, (), namespace)
        self._value = self._child(())

    def _new_child(self):
        return _Value()

    def _sample(self, labels, child) -> MetricSample:
        return MetricSample(labels, child.value)

    def inc(self, amount: float = 1.0) -> None:
        with self._value.lock:
            self._value.value += amount

    def dec(self, amount: float = 1.0) -> None:
        self.inc(-amount)

    def set(self, value: float) -> None:
        with self._value.lock:
            self._value.value = float(value)

    def collect(self) -> MetricFamily:
        return super().collect()


class _HistogramChild:
    def __init__(self, bounds: tuple[float, ...]) -> None:
        self.bounds = bounds
        self.counts = [0] * len(bounds)
        self.sum = 0.0
        self.count = 0
        self.lock = threading.Lock()

    def observe(self, value: float) -> None:
        with self.lock:
            self.sum += value
            self.count += 1
            for i, bound in enumerate(self.bounds):
                if value <= bound:
                    self.counts[i] += 1


class Histogram(_Metric):
    """Observations counted into cumulative buckets."""

    type = "histogram"

    def __init__(self, name: str, help: str, labelnames=(), namespace: str = "",
                 buckets=DEFAULT_BUCKETS) -> None:
        super().__init__(name, help, labelnames, namespace)
        self.bounds = tuple(sorted(float(b) for b in buckets))

    def _new_child(self):
        return _HistogramChild(self.bounds)

    def _sample(self, labels, child) -> MetricSample:
        with child.lock:
            return MetricSample(labels, child.sum, child.count, dict(zip(child.bounds, child.counts)))

    def labels(self, *args: str) -> _HistogramChild:
        return self._child(tuple(args))

    def observe(self, value: float) -> None:
        self._child(()).observe(value)

    def collect(self) -> MetricFamily:
        return super().collect()


class Registry:
    """Holds metrics by name and gathers their current values."""

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def register(self, *args: _Metric) -> None:
        with self._lock:
            for metric in args:
                if metric.name in self._metrics:
                    raise ValueError(f"duplicate metric {metric.name!r}")
            for metric in args:
                self._metrics[metric.name] = metric

    def __contains__(self, name: str) -> bool:
        return name in self._metrics

    def gather(self) -> list[MetricFamily]:
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda m: m.name)
        return [m.collect() for m in metrics]


REQUESTS_TOTAL = Counter("requests_total", "Processed requests", ("method", "action"), "mcpgw")
REQUEST_DURATION = Histogram("request_duration_seconds", "Request duration in seconds",
                             ("method",), "mcpgw")
ACTIVE_SESSIONS = Gauge("active_sessions", "Active sessions", "mcpgw")
UPSTREAM_ERRORS = Counter("upstream_errors_total", "Upstream communication errors", (), "mcpgw")
CIRCUIT_BREAKER_TRIPS = Counter("circuit_breaker_trips_total",
                                "Requests rejected by the circuit breaker", (), "mcpgw")
AUDIT_LOG_ERRORS = Counter("audit_log_errors_total", "Audit log write failures", (), "mcpgw")
SERVER_EVALUATIONS_TOTAL = Counter("server_evaluations_total", "MCP server evaluations",
                                   ("risk_level", "status"), "mcpgw")

DEFAULT_REGISTRY = Registry()

_ALL = (REQUESTS_TOTAL, REQUEST_DURATION, ACTIVE_SESSIONS, UPSTREAM_ERRORS,
        CIRCUIT_BREAKER_TRIPS, AUDIT_LOG_ERRORS, SERVER_EVALUATIONS_TOTAL)


def register_defaults(registry: Registry | None = None) -> Registry:
    """Register the gateway metrics with a registry once; returns the registry."""
    registry = registry if registry is not None else DEFAULT_REGISTRY
    missing = [m for m in _ALL if m.name not in registry]
    if missing:
        registry.register(*missing)
    return registry