"""
Unit tests for Prometheus metric helpers.
"""

from __future__ import annotations

from prometheus_client import REGISTRY

from multiwallet.observability.metrics import (
    record_balance_fetch,
    record_cache_lookup,
    record_eviction,
    record_transfer_outcome,
    track_batch,
)


def _value(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricHelpers:
    def test_cache_lookup_labels(self):
        hits = _value("multiwallet_cache_lookups_total", {"result": "hit"})
        misses = _value("multiwallet_cache_lookups_total", {"result": "miss"})

        record_cache_lookup(hit=True)
        record_cache_lookup(hit=False)
        record_cache_lookup(hit=False)

        assert _value("multiwallet_cache_lookups_total", {"result": "hit"}) == hits + 1
        assert _value("multiwallet_cache_lookups_total", {"result": "miss"}) == misses + 2

    def test_fetch_and_eviction_counters(self):
        timeouts = _value("multiwallet_balance_fetches_total", {"result": "timeout"})
        evictions = _value("multiwallet_cache_evictions_total")

        record_balance_fetch("timeout")
        record_eviction()

        assert _value("multiwallet_balance_fetches_total", {"result": "timeout"}) == timeouts + 1
        assert _value("multiwallet_cache_evictions_total") == evictions + 1

    def test_transfer_outcome_by_status(self):
        before = _value("multiwallet_transfer_outcomes_total", {"status": "BUILD_FAILED"})
        record_transfer_outcome("BUILD_FAILED")
        assert _value("multiwallet_transfer_outcomes_total", {"status": "BUILD_FAILED"}) == before + 1

    def test_track_batch_observes_size_and_duration(self):
        sizes = _value("multiwallet_batch_size_count")
        durations = _value("multiwallet_batch_duration_seconds_count")

        with track_batch(3):
            pass

        assert _value("multiwallet_batch_size_count") == sizes + 1
        assert _value("multiwallet_batch_duration_seconds_count") == durations + 1

    def test_track_batch_records_on_error(self):
        durations = _value("multiwallet_batch_duration_seconds_count")
        try:
            with track_batch(1):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert _value("multiwallet_batch_duration_seconds_count") == durations + 1
