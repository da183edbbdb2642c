"""
Concurrent submission of prepared transfers.

One result slot per input, in input order, regardless of completion order.
A failing item never cancels or blocks its siblings.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from multiwallet.domain.errors import BuildFailureError, DomainError, SubmissionFailureError
from multiwallet.domain.models import SignedTransfer, UnsignedTransfer
from multiwallet.observability.logging import LOG_TAG_TRANSFER, get_logger
from multiwallet.ports.ledger import LedgerPort
from multiwallet.services.builder import sign_unsigned

logger = get_logger(__name__)

SubmissionResult = str | DomainError


async def _submit_one(
    ledger: LedgerPort,
    transfer: SignedTransfer | UnsignedTransfer,
    *,
    timeout_seconds: float | None,
    semaphore: asyncio.Semaphore | None,
) -> SubmissionResult:
    if isinstance(transfer, UnsignedTransfer):
        identifier = transfer.account.identifier
        try:
            transfer = sign_unsigned(transfer)
        except BuildFailureError as e:
            logger.warning(f"{LOG_TAG_TRANSFER} Deferred signing for {identifier} failed: {e}")
            return e
        except Exception as e:
            logger.warning(f"{LOG_TAG_TRANSFER} Deferred signing for {identifier} failed: {e}")
            failure = BuildFailureError(f"Signing failed: {type(e).__name__}: {e}", identifier=identifier)
            failure.__cause__ = e
            return failure

    signer = transfer.signer
    try:
        if semaphore is not None:
            async with semaphore:
                signature = await _send(ledger, transfer, timeout_seconds)
        else:
            signature = await _send(ledger, transfer, timeout_seconds)
    except SubmissionFailureError as e:
        logger.warning(f"{LOG_TAG_TRANSFER} Submission from {signer} failed: {e}")
        return e
    except TimeoutError:
        logger.warning(f"{LOG_TAG_TRANSFER} Submission from {signer} timed out after {timeout_seconds}s")
        return SubmissionFailureError(f"Submission timed out after {timeout_seconds}s", identifier=signer)
    except Exception as e:
        logger.warning(f"{LOG_TAG_TRANSFER} Submission from {signer} failed: {e}")
        return _as_submission_failure(e, signer)

    if not signature:
        return SubmissionFailureError("Ledger returned an empty signature", identifier=signer)
    logger.info(f"{LOG_TAG_TRANSFER} Submitted {transfer.instruction.amount} from {signer}: {signature}")
    return signature


async def _send(ledger: LedgerPort, transfer: SignedTransfer, timeout_seconds: float | None) -> str:
    if timeout_seconds:
        return await asyncio.wait_for(ledger.send_transaction(transfer), timeout=timeout_seconds)
    return await ledger.send_transaction(transfer)


def _as_submission_failure(error: Exception, signer: str) -> SubmissionFailureError:
    failure = SubmissionFailureError(f"{type(error).__name__}: {error}", identifier=signer)
    failure.__cause__ = error
    return failure


async def submit_many_detailed(
    ledger: LedgerPort,
    transfers: Sequence[SignedTransfer | UnsignedTransfer],
    *,
    timeout_seconds: float | None = None,
    max_concurrent: int | None = None,
) -> list[SubmissionResult]:
    """
    Submit every transfer concurrently.

    Unsigned transfers are signed first; a signing failure occupies that
    slot as a BuildFailureError.

    Returns:
        Per input slot: the submission signature, or the typed error.
    """
    if not transfers:
        return []
    semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent else None
    # gather preserves argument order, whatever the completion order
    return list(
        await asyncio.gather(
            *[
                _submit_one(ledger, transfer, timeout_seconds=timeout_seconds, semaphore=semaphore)
                for transfer in transfers
            ]
        )
    )


async def submit_many(
    ledger: LedgerPort,
    transfers: Sequence[SignedTransfer | UnsignedTransfer],
    *,
    timeout_seconds: float | None = None,
    max_concurrent: int | None = None,
) -> list[str]:
    """
    Submit every transfer concurrently.

    Returns:
        Per input slot: the submission signature, or the stringified error.
    """
    results = await submit_many_detailed(
        ledger,
        transfers,
        timeout_seconds=timeout_seconds,
        max_concurrent=max_concurrent,
    )
    return [r if isinstance(r, str) else str(r) for r in results]
