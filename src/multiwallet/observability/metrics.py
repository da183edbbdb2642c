"""
Prometheus metrics for observability.

Covers the balance cache (hits, misses, fetches, evictions) and the
batch transfer pipeline (per-item outcomes, batch duration).

Usage:
    from multiwallet.observability.metrics import record_transfer_outcome

    record_transfer_outcome("SUBMITTED")
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager

from prometheus_client import Counter, Histogram

# =============================================================================
# Metric Definitions
# =============================================================================

cache_lookups_total = Counter(
    "multiwallet_cache_lookups_total",
    "Balance cache lookups",
    ["result"],  # hit | miss
)

balance_fetches_total = Counter(
    "multiwallet_balance_fetches_total",
    "Balance queries sent to the ledger",
    ["result"],  # ok | error | timeout
)

cache_evictions_total = Counter(
    "multiwallet_cache_evictions_total",
    "Cache entries evicted after a failed refresh",
)

transfer_outcomes_total = Counter(
    "multiwallet_transfer_outcomes_total",
    "Per-item batch transfer outcomes",
    ["status"],
)

batch_duration_seconds = Histogram(
    "multiwallet_batch_duration_seconds",
    "Wall time of one batch transfer run",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

batch_size = Histogram(
    "multiwallet_batch_size",
    "Aligned requests per batch",
    buckets=(1, 2, 5, 10, 20, 50, 100, 250, 500),
)


# =============================================================================
# Helpers
# =============================================================================


def record_cache_lookup(hit: bool) -> None:
    cache_lookups_total.labels(result="hit" if hit else "miss").inc()


def record_balance_fetch(result: str) -> None:
    """Record one ledger balance query (`ok`, `error` or `timeout`)."""
    balance_fetches_total.labels(result=result).inc()


def record_eviction() -> None:
    cache_evictions_total.inc()


def record_transfer_outcome(status: str) -> None:
    transfer_outcomes_total.labels(status=status).inc()


@contextmanager
def track_batch(size: int) -> Generator[None, None, None]:
    """Time a batch run and record its size."""
    batch_size.observe(size)
    started = time.perf_counter()
    try:
        yield
    finally:
        batch_duration_seconds.observe(time.perf_counter() - started)
