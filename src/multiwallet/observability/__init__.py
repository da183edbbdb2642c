"""Observability: logging, metrics."""

from multiwallet.observability.logging import (
    LOG_TAG_CACHE,
    LOG_TAG_CONFIRM,
    LOG_TAG_TRANSFER,
    get_logger,
    setup_logging,
)
from multiwallet.observability.metrics import (
    record_balance_fetch,
    record_cache_lookup,
    record_eviction,
    record_transfer_outcome,
    track_batch,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "LOG_TAG_TRANSFER",
    "LOG_TAG_CACHE",
    "LOG_TAG_CONFIRM",
    # Metrics helpers
    "record_cache_lookup",
    "record_balance_fetch",
    "record_eviction",
    "record_transfer_outcome",
    "track_batch",
]
