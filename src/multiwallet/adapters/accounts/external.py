"""
Account whose key lives elsewhere (hardware wallet, remote signer, KMS).
"""

from __future__ import annotations

from collections.abc import Callable

from multiwallet.domain.models import normalize_identifier
from multiwallet.ports.account import AccountPort

Signer = Callable[[bytes], bytes]


class ExternalSignerAccount(AccountPort):
    """Delegates `sign` to a callable; the address is supplied by the caller."""

    def __init__(self, identifier: str, address: bytes, signer: Signer):
        if not address:
            raise ValueError("address must not be empty")
        self._identifier = normalize_identifier(identifier)
        self._address = bytes(address)
        self._signer = signer

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def address(self) -> bytes:
        return self._address

    def sign(self, message: bytes) -> bytes:
        return self._signer(message)
