"""
Domain Layer: Core entities, value objects, and batch rules.

This layer has NO external dependencies (no ledger SDK types, no HTTP types).
All types here are canonical and used throughout the application.
"""

from multiwallet.domain.alignment import AlignmentResult, align_transfers, common_length
from multiwallet.domain.errors import (
    BalanceUnknownError,
    BatchShapeError,
    BuildFailureError,
    DomainError,
    InsufficientFundsError,
    LedgerError,
    LedgerRpcError,
    SubmissionFailureError,
    ValidationError,
)
from multiwallet.domain.models import (
    AlignedTransferRequest,
    AnchorReference,
    BalanceCacheEntry,
    BatchResult,
    Commitment,
    FinalityResult,
    OutcomeStatus,
    PreparedTransfer,
    SignatureStatus,
    SignedTransfer,
    TransferInstruction,
    TransferOutcome,
    UnsignedTransfer,
    normalize_identifier,
)
from multiwallet.domain.partition import Partition, Unfundable, divide_by_sufficiency

__all__ = [
    # Enums
    "OutcomeStatus",
    "Commitment",
    # Models
    "AlignedTransferRequest",
    "AnchorReference",
    "BalanceCacheEntry",
    "BatchResult",
    "FinalityResult",
    "PreparedTransfer",
    "SignatureStatus",
    "SignedTransfer",
    "TransferInstruction",
    "TransferOutcome",
    "UnsignedTransfer",
    "normalize_identifier",
    # Rules
    "AlignmentResult",
    "align_transfers",
    "common_length",
    "Partition",
    "Unfundable",
    "divide_by_sufficiency",
    # Errors
    "DomainError",
    "ValidationError",
    "BatchShapeError",
    "BalanceUnknownError",
    "InsufficientFundsError",
    "BuildFailureError",
    "SubmissionFailureError",
    "LedgerError",
    "LedgerRpcError",
]
