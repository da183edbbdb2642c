"""
Canonical Domain Models.

Amounts are integers in the smallest currency unit, never fractional.
Addresses are raw public-key bytes; identifiers are normalized strings.
"""

from __future__ import annotations

import struct
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from multiwallet.domain.errors import BatchShapeError, DomainError

if TYPE_CHECKING:
    from multiwallet.ports.account import AccountPort

# Signing payload framing version
MESSAGE_PREFIX = b"MWT1"


def normalize_identifier(identifier: str) -> str:
    """Fold case and surrounding whitespace so lookups are stable."""
    return unicodedata.normalize("NFKC", identifier.strip()).lower()


def short_address(address: bytes) -> str:
    """Abbreviated hex form for log lines."""
    hexed = address.hex()
    if len(hexed) <= 12:
        return hexed
    return f"{hexed[:6]}..{hexed[-4:]}"


# =============================================================================
# ENUMS
# =============================================================================


class OutcomeStatus(str, Enum):
    """Per-item result of a batch transfer."""

    SUBMITTED = "SUBMITTED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    BALANCE_UNKNOWN = "BALANCE_UNKNOWN"
    BUILD_FAILED = "BUILD_FAILED"
    SUBMISSION_FAILED = "SUBMISSION_FAILED"

    def is_success(self) -> bool:
        return self is OutcomeStatus.SUBMITTED


class Commitment(str, Enum):
    """Ledger confirmation levels, weakest first."""

    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    def reached_by(self, status: str | None) -> bool:
        """Check whether a reported status satisfies this commitment."""
        if status is None:
            return False
        order = [c.value for c in Commitment]
        try:
            return order.index(status) >= order.index(self.value)
        except ValueError:
            return False


# =============================================================================
# VALUE OBJECTS
# =============================================================================


@dataclass(frozen=True, slots=True)
class BalanceCacheEntry:
    """Cached balance with the (monotonic) time it was fetched."""

    identifier: str
    balance: int
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        """Fresh iff age is strictly below the TTL."""
        return self.age(now) < ttl_seconds


@dataclass(frozen=True, slots=True)
class AnchorReference:
    """Short-lived ledger-state token shared by every transfer in one batch."""

    hash: str
    last_valid_height: int


@dataclass(frozen=True, slots=True)
class AlignedTransferRequest:
    """One (source, amount, destination) triple produced by alignment."""

    source: AccountPort
    amount: int
    destination: bytes

    def __post_init__(self) -> None:
        if self.source is None:
            raise BatchShapeError("Transfer request has no source account")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise BatchShapeError(
                f"Amount must be an integer, got {type(self.amount).__name__}",
                identifier=self.source.identifier,
            )
        if self.amount < 0:
            raise BatchShapeError(
                f"Amount must be non-negative, got {self.amount}",
                identifier=self.source.identifier,
            )
        if not isinstance(self.destination, (bytes, bytearray)) or not self.destination:
            raise BatchShapeError(
                "Destination must be a non-empty address (bytes)",
                identifier=self.source.identifier,
            )

    @property
    def identifier(self) -> str:
        return self.source.identifier

    def describe(self) -> str:
        return f"{self.identifier} -> {short_address(self.destination)} ({self.amount})"


@dataclass(frozen=True, slots=True)
class TransferInstruction:
    """Move `amount` from `source_address` to `destination`."""

    source_address: bytes
    destination: bytes
    amount: int

    def message(self, anchor: AnchorReference) -> bytes:
        """
        Deterministic payload the source account signs.

        Layout: prefix | len+anchor hash | u64 expiry | len+source | len+destination | u64 amount
        """
        anchor_hash = anchor.hash.encode("utf-8")
        return b"".join(
            (
                MESSAGE_PREFIX,
                struct.pack("<H", len(anchor_hash)),
                anchor_hash,
                struct.pack("<Q", anchor.last_valid_height),
                struct.pack("<B", len(self.source_address)),
                self.source_address,
                struct.pack("<B", len(self.destination)),
                self.destination,
                struct.pack("<Q", self.amount),
            )
        )


@dataclass(frozen=True, slots=True)
class UnsignedTransfer:
    """Built transfer paired with its owning account for deferred signing."""

    instruction: TransferInstruction
    anchor: AnchorReference
    account: AccountPort


@dataclass(frozen=True, slots=True)
class SignedTransfer:
    """Submission-ready transfer."""

    instruction: TransferInstruction
    anchor: AnchorReference
    signature: bytes
    signer: str

    @property
    def message(self) -> bytes:
        return self.instruction.message(self.anchor)


@dataclass(frozen=True, slots=True)
class PreparedTransfer:
    """Builder result: a transfer, or the error that kept it from being built."""

    transfer: SignedTransfer | UnsignedTransfer | None
    error: DomainError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None or self.transfer is None


@dataclass(frozen=True, slots=True)
class SignatureStatus:
    """Status of a submitted signature as reported by the ledger."""

    slot: int
    confirmation_status: str | None
    err: Any = None


@dataclass(frozen=True, slots=True)
class FinalityResult:
    """Outcome of waiting for a signature to reach the requested commitment."""

    signature: str
    success: bool
    slot: int | None = None
    error: str | None = None


# =============================================================================
# BATCH RESULTS
# =============================================================================


@dataclass(slots=True)
class TransferOutcome:
    """Explicit result for one aligned request, never a silent drop."""

    index: int
    request: AlignedTransferRequest
    status: OutcomeStatus
    signature: str | None = None
    error: DomainError | None = None
    finality: FinalityResult | None = None

    @property
    def ok(self) -> bool:
        return self.status.is_success() and bool(self.signature)

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None


@dataclass(slots=True)
class BatchResult:
    """All outcomes of one pipeline run, in original aligned order."""

    outcomes: list[TransferOutcome] = field(default_factory=list)
    discarded: dict[str, int] = field(default_factory=dict)

    @property
    def signatures(self) -> list[str]:
        return [o.signature for o in self.outcomes if o.ok and o.signature]

    @property
    def succeeded(self) -> list[TransferOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[TransferOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def by_status(self, status: OutcomeStatus) -> list[TransferOutcome]:
        return [o for o in self.outcomes if o.status is status]
