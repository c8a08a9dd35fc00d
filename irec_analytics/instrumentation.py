# irec_analytics/instrumentation.py
"""
Safe metric registry helpers.

Creates/gets Prometheus collectors for the analytics engine and avoids
duplicate registration errors when modules are reloaded (common during tests).
"""
from __future__ import annotations
from prometheus_client import REGISTRY, Counter, Gauge, Histogram
from typing import Callable, Any


def _get_or_create(name: str, factory: Callable[..., Any], *args, **kwargs):
    """
    Return an existing metric from the global REGISTRY if present,
    otherwise create one using factory and return it.
    """
    # REGISTRY._names_to_collectors is internal API but widely used for this purpose.
    if name in REGISTRY._names_to_collectors:
        return REGISTRY._names_to_collectors[name]
    return factory(*args, **kwargs)


# Counter names are registered with a _total suffix
cache_requests_total = _get_or_create(
    "irec_cache_requests_total",
    Counter,
    "irec_cache_requests",
    "Analytics cache lookups by dataset kind and result (hit, miss, error)",
    ["dataset", "result"],
)

events_synthesized_total = _get_or_create(
    "irec_events_synthesized_total",
    Counter,
    "irec_events_synthesized",
    "Itemized events synthesized by kind",
    ["kind"],
)

aggregation_duration_seconds = _get_or_create(
    "irec_aggregation_duration_seconds",
    Histogram,
    "irec_aggregation_duration_seconds",
    "Time spent composing an analytics dataset (seconds)",
    ["dataset"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1, 5),
)

cache_entries = _get_or_create(
    "irec_cache_entries",
    Gauge,
    "irec_cache_entries",
    "Entries currently held by the analytics cache",
)

# Export for convenience
metrics_registry = {
    "irec_cache_requests_total": cache_requests_total,
    "irec_events_synthesized_total": events_synthesized_total,
    "irec_aggregation_duration_seconds": aggregation_duration_seconds,
    "irec_cache_entries": cache_entries,
}
