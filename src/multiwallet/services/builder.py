"""
Transfer construction and signing.

Purely computational: builds a transfer instruction bound to the batch
anchor and optionally signs it with the source account. Never raises for
a single item; every failure comes back as a BuildFailureError in the
PreparedTransfer.
"""

from __future__ import annotations

from collections.abc import Iterable

from multiwallet.domain.errors import BuildFailureError
from multiwallet.domain.models import (
    AlignedTransferRequest,
    AnchorReference,
    PreparedTransfer,
    SignedTransfer,
    TransferInstruction,
    UnsignedTransfer,
)
from multiwallet.observability.logging import get_logger
from multiwallet.ports.account import AccountPort

logger = get_logger(__name__)


def sign_instruction(
    account: AccountPort,
    instruction: TransferInstruction,
    anchor: AnchorReference,
) -> SignedTransfer:
    """
    Sign `instruction` with `account`.

    Raises:
        BuildFailureError if the account cannot sign, or returns anything
        other than non-empty bytes.
    """
    if account.address != instruction.source_address:
        raise BuildFailureError(
            "Signing account does not own the transfer source",
            identifier=account.identifier,
        )
    try:
        signature = account.sign(instruction.message(anchor))
    except Exception as e:
        raise BuildFailureError(f"Signing failed: {e}", identifier=account.identifier) from e
    if not isinstance(signature, (bytes, bytearray)):
        raise BuildFailureError(
            f"Signing returned {type(signature).__name__}, expected bytes",
            identifier=account.identifier,
        )
    if not signature:
        raise BuildFailureError("Signing produced an empty signature", identifier=account.identifier)
    return SignedTransfer(
        instruction=instruction,
        anchor=anchor,
        signature=bytes(signature),
        signer=account.identifier,
    )


def sign_unsigned(unsigned: UnsignedTransfer) -> SignedTransfer:
    """Complete a deferred transfer with its owning account's signature."""
    return sign_instruction(unsigned.account, unsigned.instruction, unsigned.anchor)


def prepare_transfer(
    request: AlignedTransferRequest,
    anchor: AnchorReference,
    sign_and_encode: bool = True,
) -> PreparedTransfer:
    """
    Build one transfer from `request` bound to `anchor`.

    Returns a SignedTransfer when `sign_and_encode` is set, otherwise an
    UnsignedTransfer paired with its source account.
    """
    source = request.source
    try:
        instruction = TransferInstruction(
            source_address=source.address,
            destination=bytes(request.destination),
            amount=request.amount,
        )
        if not sign_and_encode:
            return PreparedTransfer(UnsignedTransfer(instruction=instruction, anchor=anchor, account=source))
        return PreparedTransfer(sign_instruction(source, instruction, anchor))
    except BuildFailureError as e:
        logger.warning(f"Could not build transfer from {source.identifier} ({request.amount}): {e}")
        return PreparedTransfer(None, e)
    except Exception as e:
        error = BuildFailureError(f"Transfer construction failed: {e}", identifier=source.identifier)
        logger.warning(f"Could not build transfer from {source.identifier} ({request.amount}): {e}")
        return PreparedTransfer(None, error)


def prepare_transfers(
    requests: Iterable[AlignedTransferRequest],
    anchor: AnchorReference,
    sign_and_encode: bool = True,
) -> list[PreparedTransfer]:
    """prepare_transfer over many requests, in order."""
    return [prepare_transfer(request, anchor, sign_and_encode) for request in requests]
