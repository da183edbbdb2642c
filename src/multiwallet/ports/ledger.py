"""
Ledger Port: Abstract interface for the ledger client.

All methods are async and use domain types.
Implementations own encoding, transport and connection pooling.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from multiwallet.domain.models import AnchorReference, SignatureStatus, SignedTransfer


class LedgerPort(ABC):
    """Abstract ledger client."""

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Open connections. Default implementation does nothing."""
        return

    async def close(self) -> None:
        """Close connections. Default implementation does nothing."""
        return

    async def __aenter__(self) -> LedgerPort:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # =========================================================================
    # Reads
    # =========================================================================

    @abstractmethod
    async def get_balance(self, address: bytes) -> int:
        """
        Current balance of `address` in the smallest currency unit.

        Raises:
            LedgerError if the balance cannot be fetched.
        """
        ...

    @abstractmethod
    async def get_latest_anchor(self) -> AnchorReference:
        """Fetch a fresh anchor (recent ledger-state hash + expiry)."""
        ...

    @abstractmethod
    async def get_signature_status(self, signature: str) -> SignatureStatus | None:
        """
        Look up a submitted signature.

        Returns None while the ledger has not seen it.
        """
        ...

    # =========================================================================
    # Writes
    # =========================================================================

    @abstractmethod
    async def send_transaction(self, transfer: SignedTransfer) -> str:
        """
        Submit a signed transfer.

        Returns:
            The submission signature reported by the ledger.

        Raises:
            LedgerError if the ledger rejects the transfer.
        """
        ...

    async def request_airdrop(self, address: bytes, amount: int) -> str:
        """
        Ask a test ledger to credit `address`.

        Default implementation is unsupported.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support airdrops")
