"""
Batch Transfer Pipeline.

Collect -> Align -> SnapshotBalances -> Partition -> Build -> Sign -> Submit -> (Confirm)

Every aligned request yields exactly one TransferOutcome, in original
order. Per-item failures are data; only a structurally invalid batch
(BatchShapeError) or a misconfigured call raises.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from multiwallet.config.settings import Settings, get_settings
from multiwallet.domain.alignment import align_transfers
from multiwallet.domain.errors import (
    BalanceUnknownError,
    BuildFailureError,
    DomainError,
    InsufficientFundsError,
)
from multiwallet.domain.models import (
    AlignedTransferRequest,
    AnchorReference,
    BatchResult,
    FinalityResult,
    OutcomeStatus,
    PreparedTransfer,
    TransferOutcome,
)
from multiwallet.domain.partition import Unfundable, divide_by_sufficiency
from multiwallet.observability.logging import LOG_TAG_CONFIRM, LOG_TAG_TRANSFER, get_logger
from multiwallet.observability.metrics import record_transfer_outcome, track_batch
from multiwallet.ports.account import AccountPort
from multiwallet.ports.confirmation import ConfirmationTrackerPort
from multiwallet.ports.ledger import LedgerPort
from multiwallet.services.balance_cache import BalanceCache
from multiwallet.services.builder import prepare_transfers
from multiwallet.services.submitter import submit_many_detailed

logger = get_logger(__name__)


class MultiTransferService:
    """
    Moves value from many source accounts to many destinations in one batch.

    All balance decisions inside one batch read a single cache snapshot,
    and all transfers of one batch share a single anchor.
    """

    def __init__(
        self,
        ledger: LedgerPort,
        cache: BalanceCache | None = None,
        *,
        confirmer: ConfirmationTrackerPort | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.ledger = ledger
        self.cache = cache if cache is not None else BalanceCache.from_settings(ledger, self.settings)
        self.confirmer = confirmer

    # =========================================================================
    # Planning
    # =========================================================================

    async def _snapshot_and_partition(
        self,
        requests: Sequence[AlignedTransferRequest],
        check_balances: bool,
    ) -> tuple[list[tuple[int, AlignedTransferRequest]], list[Unfundable]]:
        if not check_balances:
            return list(enumerate(requests)), []

        snapshot = await self.cache.get_batch(r.source for r in requests)
        partition = divide_by_sufficiency(snapshot, requests)
        if partition.unfundable:
            logger.info(
                f"{LOG_TAG_TRANSFER} {len(partition.unfundable)} of {len(requests)} transfers discarded "
                f"for unknown or insufficient balance: "
                f"{', '.join(u.request.identifier for u in partition.unfundable)}"
            )
        return partition.fundable, partition.unfundable

    async def _fetch_anchor(self) -> AnchorReference:
        return await asyncio.wait_for(
            self.ledger.get_latest_anchor(),
            timeout=self.settings.ledger.request_timeout_seconds,
        )

    @staticmethod
    def _unfundable_error(item: Unfundable) -> DomainError:
        request = item.request
        if item.reason is OutcomeStatus.INSUFFICIENT_FUNDS:
            return InsufficientFundsError(
                f"{request.identifier} does not have more than {request.amount} to send "
                f"(available {item.available})",
                required=request.amount,
                available=item.available or 0,
                identifier=request.identifier,
            )
        return BalanceUnknownError(
            f"Balance of {request.identifier} could not be determined",
            identifier=request.identifier,
        )

    def _unfundable_outcome(self, item: Unfundable) -> TransferOutcome:
        return TransferOutcome(
            index=item.index,
            request=item.request,
            status=item.reason,
            error=self._unfundable_error(item),
        )

    @staticmethod
    def _anchor_failure(request: AlignedTransferRequest, e: Exception) -> BuildFailureError:
        return BuildFailureError(f"Anchor unavailable: {e}", identifier=request.identifier)

    async def prepare_many(
        self,
        sources: Sequence[AccountPort],
        amounts: Sequence[int],
        destinations: Sequence[bytes],
        *,
        sign_and_encode: bool | None = None,
        check_balances: bool | None = None,
    ) -> list[PreparedTransfer]:
        """
        Align, filter by balance and build, without submitting.

        Returns one PreparedTransfer per aligned request, in order. Requests
        that were filtered out or could not be built carry their error.
        """
        sign_and_encode = self._default(sign_and_encode, self.settings.transfer.sign_and_encode)
        check_balances = self._default(check_balances, self.settings.transfer.check_balances)

        alignment = align_transfers(sources, amounts, destinations)
        slots: list[PreparedTransfer | None] = [None] * len(alignment.requests)

        fundable, unfundable = await self._snapshot_and_partition(alignment.requests, check_balances)
        for item in unfundable:
            slots[item.index] = PreparedTransfer(None, self._unfundable_error(item))

        if fundable:
            try:
                anchor = await self._fetch_anchor()
            except Exception as e:
                logger.error(f"{LOG_TAG_TRANSFER} Could not fetch anchor, {len(fundable)} transfers not built: {e}")
                for index, request in fundable:
                    slots[index] = PreparedTransfer(None, self._anchor_failure(request, e))
            else:
                prepared = prepare_transfers([r for _, r in fundable], anchor, sign_and_encode)
                for (index, _), item in zip(fundable, prepared):
                    slots[index] = item

        return [slot for slot in slots if slot is not None]

    # =========================================================================
    # Execution
    # =========================================================================

    async def transfer_many(
        self,
        sources: Sequence[AccountPort],
        amounts: Sequence[int],
        destinations: Sequence[bytes],
        *,
        sign_and_encode: bool | None = None,
        check_balances: bool | None = None,
        confirm: bool = False,
    ) -> BatchResult:
        """
        Run the full pipeline for one batch.

        Raises:
            BatchShapeError if the inputs cannot be aligned.
            ValueError if `confirm` is requested without a confirmer.
        """
        if confirm and self.confirmer is None:
            raise ValueError("confirm=True requires a ConfirmationTrackerPort")
        sign_and_encode = self._default(sign_and_encode, self.settings.transfer.sign_and_encode)
        check_balances = self._default(check_balances, self.settings.transfer.check_balances)

        alignment = align_transfers(sources, amounts, destinations)
        requests = alignment.requests
        slots: list[TransferOutcome | None] = [None] * len(requests)

        with track_batch(len(requests)):
            fundable, unfundable = await self._snapshot_and_partition(requests, check_balances)
            for item in unfundable:
                slots[item.index] = self._unfundable_outcome(item)

            if fundable:
                await self._build_and_submit(fundable, slots, sign_and_encode)

            outcomes = [slot for slot in slots if slot is not None]
            if confirm:
                await self._confirm_all(outcomes)

        for outcome in outcomes:
            record_transfer_outcome(outcome.status.value)

        result = BatchResult(outcomes=outcomes, discarded=dict(alignment.discarded))
        logger.info(
            f"{LOG_TAG_TRANSFER} Batch done: {len(result.succeeded)}/{len(outcomes)} submitted"
            + (f", truncated {result.discarded}" if result.discarded else "")
        )
        return result

    async def _build_and_submit(
        self,
        fundable: list[tuple[int, AlignedTransferRequest]],
        slots: list[TransferOutcome | None],
        sign_and_encode: bool,
    ) -> None:
        try:
            anchor = await self._fetch_anchor()
        except Exception as e:
            logger.error(f"{LOG_TAG_TRANSFER} Could not fetch anchor, {len(fundable)} transfers not built: {e}")
            for index, request in fundable:
                error = self._anchor_failure(request, e)
                slots[index] = TransferOutcome(index, request, OutcomeStatus.BUILD_FAILED, error=error)
            return

        prepared = prepare_transfers([r for _, r in fundable], anchor, sign_and_encode)

        pending = []
        for (index, request), item in zip(fundable, prepared):
            if item.failed:
                slots[index] = TransferOutcome(index, request, OutcomeStatus.BUILD_FAILED, error=item.error)
            else:
                pending.append((index, request, item.transfer))

        results = await submit_many_detailed(
            self.ledger,
            [transfer for _, _, transfer in pending],
            timeout_seconds=self.settings.transfer.submit_timeout_seconds,
            max_concurrent=self.settings.transfer.max_concurrent_submissions,
        )
        for (index, request, _), result in zip(pending, results):
            if isinstance(result, str):
                slots[index] = TransferOutcome(index, request, OutcomeStatus.SUBMITTED, signature=result)
            elif isinstance(result, BuildFailureError):
                slots[index] = TransferOutcome(index, request, OutcomeStatus.BUILD_FAILED, error=result)
            else:
                slots[index] = TransferOutcome(index, request, OutcomeStatus.SUBMISSION_FAILED, error=result)

    async def _confirm_one(self, outcome: TransferOutcome) -> None:
        signature = outcome.signature or ""
        try:
            outcome.finality = await self.confirmer.confirm(signature)
        except Exception as e:
            logger.warning(f"{LOG_TAG_CONFIRM} Confirmation of {signature} failed: {e}")
            outcome.finality = FinalityResult(signature=signature, success=False, error=str(e))

    async def _confirm_all(self, outcomes: list[TransferOutcome]) -> None:
        submitted = [o for o in outcomes if o.ok]
        if submitted:
            await asyncio.gather(*[self._confirm_one(o) for o in submitted])

    # =========================================================================
    # Single-item helpers
    # =========================================================================

    async def transfer_one(
        self,
        source: AccountPort,
        amount: int,
        destination: bytes,
        *,
        check_balance: bool = True,
        sign_and_encode: bool | None = None,
        confirm: bool = False,
    ) -> TransferOutcome:
        """Single transfer through the same pipeline."""
        result = await self.transfer_many(
            [source],
            [amount],
            [destination],
            sign_and_encode=sign_and_encode,
            check_balances=check_balance,
            confirm=confirm,
        )
        return result.outcomes[0]

    async def airdrop(self, account: AccountPort, amount: int, *, confirm: bool = False) -> str:
        """
        Request test funds for `account`.

        The cached balance for the account is dropped, it is about to change.
        """
        if confirm and self.confirmer is None:
            raise ValueError("confirm=True requires a ConfirmationTrackerPort")
        signature = await self.ledger.request_airdrop(account.address, amount)
        self.cache.invalidate(account.identifier)
        if confirm:
            result = await self.confirmer.confirm(signature)
            logger.info(
                f"{LOG_TAG_CONFIRM} Airdrop to {account.identifier} confirmation is "
                f"{'successful' if result.success else 'failed'}"
            )
        return signature

    @staticmethod
    def _default(value: bool | None, fallback: bool) -> bool:
        return fallback if value is None else value
