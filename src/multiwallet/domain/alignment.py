"""
Broadcast alignment of batch transfer inputs.

Sources, amounts and destinations may have different lengths:
- a length-1 sequence is broadcast across the batch
- otherwise the batch length is the MINIMUM of the lengths greater than 1
- longer sequences are truncated to that length (logged, and reported)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from multiwallet.domain.errors import BatchShapeError
from multiwallet.domain.models import AlignedTransferRequest
from multiwallet.observability.logging import LOG_TAG_TRANSFER, get_logger

if TYPE_CHECKING:
    from multiwallet.ports.account import AccountPort

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AlignmentResult:
    """Aligned requests plus how many entries each input lost to truncation."""

    requests: tuple[AlignedTransferRequest, ...]
    discarded: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.requests)

    def __iter__(self):
        return iter(self.requests)

    @property
    def truncated(self) -> bool:
        return any(self.discarded.values())


def common_length(*lengths: int) -> int:
    """Batch length under broadcast rules: min of lengths > 1, else 1."""
    multi = [n for n in lengths if n > 1]
    return min(multi) if multi else 1


def _pick(items: Sequence[T], index: int) -> T:
    return items[0] if len(items) == 1 else items[index]


def align_transfers(
    sources: Sequence[AccountPort],
    amounts: Sequence[int],
    destinations: Sequence[bytes],
) -> AlignmentResult:
    """
    Broadcast three input sequences into one sequence of aligned requests.

    Raises:
        BatchShapeError if any sequence is empty or an item is invalid.
    """
    inputs = {"sources": sources, "amounts": amounts, "destinations": destinations}
    for name, items in inputs.items():
        if len(items) == 0:
            raise BatchShapeError(f"Cannot align transfers: '{name}' is empty")

    n = common_length(len(sources), len(amounts), len(destinations))

    discarded: dict[str, int] = {}
    for name, items in inputs.items():
        extra = len(items) - n if len(items) > 1 else 0
        if extra > 0:
            discarded[name] = extra
            logger.warning(
                f"{LOG_TAG_TRANSFER} Truncating {name}: {extra} trailing entries discarded "
                f"(indices {n}..{len(items) - 1}, batch length {n})"
            )

    requests = tuple(
        AlignedTransferRequest(
            source=_pick(sources, i),
            amount=_pick(amounts, i),
            destination=_pick(destinations, i),
        )
        for i in range(n)
    )
    return AlignmentResult(requests=requests, discarded=discarded)
