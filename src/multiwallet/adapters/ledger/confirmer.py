"""
Signature Confirmer.

Polls the ledger until a submitted signature reaches the requested
commitment, fails on-chain, or the timeout elapses.
"""

from __future__ import annotations

import asyncio

from multiwallet.config.settings import Settings
from multiwallet.domain.models import Commitment, FinalityResult
from multiwallet.observability.logging import LOG_TAG_CONFIRM, get_logger
from multiwallet.ports.confirmation import ConfirmationTrackerPort
from multiwallet.ports.ledger import LedgerPort

logger = get_logger(__name__)


class SignatureConfirmer(ConfirmationTrackerPort):
    """ConfirmationTrackerPort implemented by polling `get_signature_status`."""

    def __init__(
        self,
        ledger: LedgerPort,
        *,
        commitment: Commitment | str = Commitment.FINALIZED,
        poll_interval_seconds: float = 0.5,
        timeout_seconds: float = 60.0,
    ):
        self.ledger = ledger
        self.commitment = Commitment(commitment)
        self.poll_interval_seconds = poll_interval_seconds
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, ledger: LedgerPort, settings: Settings) -> SignatureConfirmer:
        return cls(
            ledger,
            commitment=settings.confirmation.commitment,
            poll_interval_seconds=settings.confirmation.poll_interval_seconds,
            timeout_seconds=settings.confirmation.timeout_seconds,
        )

    async def confirm(self, signature: str) -> FinalityResult:
        """
        Wait for `signature`.

        Never raises for ledger errors; a timeout yields a failed result.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds

        while True:
            try:
                status = await self.ledger.get_signature_status(signature)
            except Exception as e:
                # Transient, keep polling until the deadline
                logger.debug(f"{LOG_TAG_CONFIRM} Status lookup for {signature} failed: {e}")
                status = None

            if status is not None:
                if status.err is not None:
                    logger.warning(f"{LOG_TAG_CONFIRM} {signature} failed on ledger: {status.err}")
                    return FinalityResult(signature, success=False, slot=status.slot, error=str(status.err))
                if self.commitment.reached_by(status.confirmation_status):
                    logger.info(f"{LOG_TAG_CONFIRM} {signature} {status.confirmation_status} at slot {status.slot}")
                    return FinalityResult(signature, success=True, slot=status.slot)

            if loop.time() >= deadline:
                logger.warning(
                    f"{LOG_TAG_CONFIRM} {signature} not {self.commitment.value} after {self.timeout_seconds}s"
                )
                return FinalityResult(
                    signature,
                    success=False,
                    error=f"Not {self.commitment.value} within {self.timeout_seconds}s",
                )
            await asyncio.sleep(self.poll_interval_seconds)
