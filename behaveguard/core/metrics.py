"""Prometheus metrics for the behaveguard runtime.

All metric objects are module-level singletons registered on the default
registry; ``/metrics`` on the collector renders them.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import Counter, Gauge, Histogram, generate_latest

SNAPSHOTS_ENQUEUED_TOTAL = Counter(
    "behaveguard_snapshots_enqueued_total", "Snapshots accepted by a delivery queue"
)
SNAPSHOTS_DROPPED_TOTAL = Counter(
    "behaveguard_snapshots_dropped_total",
    "Snapshots discarded by the overflow policy",
    ["policy"],
)
DELIVERY_ATTEMPTS_TOTAL = Counter(
    "behaveguard_delivery_attempts_total",
    "Delivery attempts against the collection endpoint",
    ["path", "outcome"],
)
DELIVERY_DURATION_SECONDS = Histogram(
    "behaveguard_delivery_duration_seconds",
    "Duration of a single delivery attempt in seconds",
    ["path"],
)
BATCHES_REQUEUED_TOTAL = Counter(
    "behaveguard_batches_requeued_total", "Batches pushed back after exhausting retries"
)
PENDING_SNAPSHOTS = Gauge(
    "behaveguard_pending_snapshots",
    "Snapshots not yet delivered by a delivery queue",
    ["queue"],
)
RECORDS_SKIPPED_TOTAL = Counter(
    "behaveguard_records_skipped_total", "Unparseable records skipped on read or reconciliation"
)
ASSESSMENTS_TOTAL = Counter(
    "behaveguard_assessments_total", "Risk assessments computed", ["tier"]
)
metrics_generate_latest = generate_latest


@contextmanager
def observe_delivery(path: str) -> Iterator[None]:
    """Observe the duration of one delivery attempt, even when it raises."""
    start = time.monotonic()
    try:
        yield
    finally:
        DELIVERY_DURATION_SECONDS.labels(path=path).observe(time.monotonic() - start)


__all__ = [
    "ASSESSMENTS_TOTAL",
    "BATCHES_REQUEUED_TOTAL",
    "DELIVERY_ATTEMPTS_TOTAL",
    "DELIVERY_DURATION_SECONDS",
    "PENDING_SNAPSHOTS",
    "RECORDS_SKIPPED_TOTAL",
    "SNAPSHOTS_DROPPED_TOTAL",
    "SNAPSHOTS_ENQUEUED_TOTAL",
    "metrics_generate_latest",
    "observe_delivery",
]
