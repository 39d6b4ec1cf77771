from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from prometheus_client import REGISTRY, Counter, Gauge, Histogram

NAMESPACE = "aaa"


def _fullname(name: str, namespace: str | None) -> str:
    return f"{namespace}_{name}" if namespace else name


def _get_existing(fullname: str) -> Any | None:
    # Re-importing a module (tests, reloads) must reuse the registered collector
    reg = getattr(REGISTRY, "_names_to_collectors", {})
    if isinstance(reg, dict):
        return reg.get(fullname)
    return None


def safe_counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] = (),
    namespace: str | None = NAMESPACE,
) -> Counter:
    existing = _get_existing(_fullname(name, namespace))
    if existing is not None:
        return existing
    return Counter(name, documentation, list(labelnames), namespace=namespace or "")


def safe_gauge(
    name: str,
    documentation: str,
    labelnames: Sequence[str] = (),
    namespace: str | None = NAMESPACE,
) -> Gauge:
    existing = _get_existing(_fullname(name, namespace))
    if existing is not None:
        return existing
    return Gauge(name, documentation, list(labelnames), namespace=namespace or "")


def safe_histogram(
    name: str,
    documentation: str,
    buckets: Sequence[float],
    namespace: str | None = NAMESPACE,
) -> Histogram:
    existing = _get_existing(_fullname(name, namespace))
    if existing is not None:
        return existing
    return Histogram(
        name, documentation, buckets=tuple(buckets), namespace=namespace or ""
    )


# Accounting lifecycle
accounting_events_total = safe_counter(
    "accounting_events_total",
    "Accounting events processed, by kind and outcome",
    ["kind", "outcome"],
)
accounting_latency_seconds = safe_histogram(
    "accounting_latency_seconds",
    "Latency of accounting event persistence",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.2, 0.5, 1, 2, 5],
)
active_sessions = safe_gauge(
    "active_sessions",
    "Open accounting sessions as last observed by the query facade",
)

# Authorization path
authorization_total = safe_counter(
    "authorization_total",
    "Authorization decisions, by outcome",
    ["outcome"],
)

# Retention
retention_deleted_total = safe_counter(
    "retention_deleted_sessions_total",
    "Closed accounting sessions purged by the retention sweep",
)
retention_runs_total = safe_counter(
    "retention_runs_total",
    "Retention sweeps executed, by outcome",
    ["outcome"],
)
