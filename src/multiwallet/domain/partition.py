"""
Split aligned requests into fundable and unfundable sets.

Uses one balance snapshot for the whole batch; performs no I/O.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from multiwallet.domain.models import AlignedTransferRequest, OutcomeStatus


@dataclass(frozen=True, slots=True)
class Unfundable:
    """A request that will not be built, with the reason why."""

    index: int
    request: AlignedTransferRequest
    reason: OutcomeStatus
    available: int | None = None


@dataclass(slots=True)
class Partition:
    """Fundable (index, request) pairs and unfundable entries, input order preserved."""

    fundable: list[tuple[int, AlignedTransferRequest]] = field(default_factory=list)
    unfundable: list[Unfundable] = field(default_factory=list)

    @property
    def fundable_requests(self) -> list[AlignedTransferRequest]:
        return [r for _, r in self.fundable]

    @property
    def unfundable_requests(self) -> list[AlignedTransferRequest]:
        return [u.request for u in self.unfundable]


def divide_by_sufficiency(
    snapshot: Mapping[str, int],
    requests: Sequence[AlignedTransferRequest],
) -> Partition:
    """
    Classify each request against the snapshot.

    Unfundable when the source identifier is absent from the snapshot or its
    balance is not strictly greater than the amount.
    """
    partition = Partition()
    for index, request in enumerate(requests):
        balance = snapshot.get(request.identifier)
        if balance is None:
            partition.unfundable.append(Unfundable(index, request, OutcomeStatus.BALANCE_UNKNOWN))
        elif balance <= request.amount:
            partition.unfundable.append(
                Unfundable(index, request, OutcomeStatus.INSUFFICIENT_FUNDS, available=balance)
            )
        else:
            partition.fundable.append((index, request))
    return partition
