"""
Account Port: Abstract interface for anything that can own and sign transfers.

The core only reads `identifier` and `address` and invokes `sign`;
key storage and construction live entirely in adapters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AccountPort(ABC):
    """
    Abstract signing account.

    Implementations must return an already-normalized identifier
    (see `multiwallet.domain.models.normalize_identifier`).
    """

    @property
    @abstractmethod
    def identifier(self) -> str:
        """Normalized unique name of this account."""
        ...

    @property
    @abstractmethod
    def address(self) -> bytes:
        """Public verification key."""
        ...

    @abstractmethod
    def sign(self, message: bytes) -> bytes:
        """
        Produce a detached signature over `message`.

        Treated as fast and synchronous by the builder.
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(identifier={self.identifier!r})"
