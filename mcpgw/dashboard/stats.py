"""Summary statistics computed from the gateway metrics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from mcpgw import metrics
from mcpgw.metrics import MetricFamily, Registry

_DURATION = "mcpgw_request_duration_seconds"


@dataclass
class Stats:
    """Dashboard statistics snapshot."""

    requests_total: float = 0.0
    requests_blocked: float = 0.0
    blocked_rate: float = 0.0
    active_sessions: float = 0.0
    upstream_errors: float = 0.0
    circuit_breaker_trips: float = 0.0
    latency_p50: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0
    requests_by_method: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests_total": self.requests_total,
            "requests_blocked": self.requests_blocked,
            "blocked_rate": self.blocked_rate,
            "active_sessions": self.active_sessions,
            "upstream_errors": self.upstream_errors,
            "circuit_breaker_trips": self.circuit_breaker_trips,
            "latency_p50": self.latency_p50,
            "latency_p95": self.latency_p95,
            "latency_p99": self.latency_p99,
            "requests_by_method": dict(self.requests_by_method),
        }


def _first_value(families: Mapping[str, MetricFamily], name: str) -> float:
    family = families.get(name)
    if family is None or not family.samples:
        return 0.0
    return family.samples[0].value


def histogram_quantile(families: Mapping[str, MetricFamily], name: str, q: float) -> float:
    """Upper bound of the first bucket holding quantile ``q``, merged over all label sets."""
    family = families.get(name)
    if family is None:
        return 0.0
    merged: dict[float, int] = {}
    total = 0
    for sample in family.samples:
        total += sample.count
        for bound, count in sample.buckets.items():
            merged[bound] = merged.get(bound, 0) + count
    if total == 0:
        return 0.0
    buckets = sorted(merged.items())
    rank = q * total
    for bound, count in buckets:
        if count >= rank:
            return bound
    return buckets[-1][0] if buckets else 0.0


def collect_stats(registry: Registry | None = None) -> Stats:
    """Gather the registry (the default one if None) and summarise it."""
    registry = registry if registry is not None else metrics.DEFAULT_REGISTRY
    families = {family.name: family for family in registry.gather()}

    total = 0.0
    blocked = 0.0
    by_method: dict[str, float] = {}
    requests = families.get("mcpgw_requests_total")
    if requests is not None:
        for sample in requests.samples:
            total += sample.value
            if sample.labels.get("action") == "block":
                blocked += sample.value
            method = sample.labels.get("method", "")
            if method:
                by_method[method] = by_method.get(method, 0.0) + sample.value

    return Stats(
        requests_total=total,
        requests_blocked=blocked,
        blocked_rate=blocked / total if total > 0 else 0.0,
        active_sessions=_first_value(families, "mcpgw_active_sessions"),
        upstream_errors=_first_value(families, "mcpgw_upstream_errors_total"),
        circuit_breaker_trips=_first_value(families, "mcpgw_circuit_breaker_trips_total"),
        latency_p50=histogram_quantile(families, _DURATION, 0.50),
        latency_p95=histogram_quantile(families, _DURATION, 0.95),
        latency_p99=histogram_quantile(families, _DURATION, 0.99),
        requests_by_method=by_method,
    )