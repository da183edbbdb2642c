"""
Domain Error Taxonomy.

All domain-specific exceptions with clear categorization.
Per-item failures inside a batch are carried as data (instances of these
classes), only BatchShapeError is ever raised out of a batch call.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """
    Base class for all domain errors.

    Includes structured error info for logging and debugging.
    """

    error_code: str = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        *,
        identifier: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.identifier = identifier
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for logging."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "identifier": self.identifier,
            "details": self.details,
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(DomainError):
    """Invalid input or state."""

    error_code = "VALIDATION_ERROR"


class BatchShapeError(ValidationError):
    """Batch inputs are structurally inconsistent (empty sequence, negative amount, missing source)."""

    error_code = "BATCH_SHAPE"


# =============================================================================
# Balance Errors
# =============================================================================


class BalanceUnknownError(DomainError):
    """Balance could not be determined (cache miss or refresh failure)."""

    error_code = "BALANCE_UNKNOWN"


class InsufficientFundsError(DomainError):
    """Determinable balance does not strictly exceed the requested amount."""

    error_code = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        message: str,
        *,
        required: int,
        available: int,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.required = required
        self.available = available
        self.details["required"] = required
        self.details["available"] = available


# =============================================================================
# Transfer Errors
# =============================================================================


class BuildFailureError(DomainError):
    """Transfer construction or signing failed."""

    error_code = "BUILD_FAILURE"


class SubmissionFailureError(DomainError):
    """Ledger rejected the transfer or the network call failed."""

    error_code = "SUBMISSION_FAILURE"


# =============================================================================
# Ledger/API Errors
# =============================================================================


class LedgerError(DomainError):
    """Error talking to the ledger."""

    error_code = "LEDGER_ERROR"


class LedgerRpcError(LedgerError):
    """JSON-RPC error object returned by the ledger node."""

    error_code = "LEDGER_RPC_ERROR"

    def __init__(self, message: str, *, code: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = code
        self.details["rpc_code"] = code
