"""
In-memory ed25519 account backed by PyNaCl.
"""

from __future__ import annotations

import json
from pathlib import Path

import nacl.exceptions
import nacl.signing

from multiwallet.domain.models import normalize_identifier
from multiwallet.observability.logging import get_logger
from multiwallet.ports.account import AccountPort

logger = get_logger(__name__)

SEED_LENGTH = 32
KEYPAIR_LENGTH = 64


class KeypairAccount(AccountPort):
    """
    Account holding its own signing key.

    The identifier defaults to the hex address when no name is given.
    """

    def __init__(self, signing_key: nacl.signing.SigningKey, identifier: str | None = None):
        self._signing_key = signing_key
        self._address = signing_key.verify_key.encode()
        self._identifier = normalize_identifier(identifier if identifier is not None else self._address.hex())

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def generate(cls, identifier: str | None = None) -> KeypairAccount:
        """New random keypair."""
        return cls(nacl.signing.SigningKey.generate(), identifier)

    @classmethod
    def from_secret_key(cls, secret_key: bytes, identifier: str | None = None) -> KeypairAccount:
        """
        Load from raw key material.

        Accepts a 32-byte seed, or a 64-byte seed+public key pair whose
        public half must match the seed.
        """
        secret_key = bytes(secret_key)
        if len(secret_key) == KEYPAIR_LENGTH:
            seed, public = secret_key[:SEED_LENGTH], secret_key[SEED_LENGTH:]
            signing_key = nacl.signing.SigningKey(seed)
            if signing_key.verify_key.encode() != public:
                raise ValueError("Public key half does not match the secret seed")
            return cls(signing_key, identifier)
        if len(secret_key) == SEED_LENGTH:
            return cls(nacl.signing.SigningKey(secret_key), identifier)
        raise ValueError(
            f"Secret key must be {SEED_LENGTH} or {KEYPAIR_LENGTH} bytes, got {len(secret_key)}"
        )

    @classmethod
    def from_keypair_file(cls, path: str | Path, identifier: str | None = None) -> KeypairAccount:
        """
        Load from a JSON key file holding an array of 64 integers (0-255).

        The identifier defaults to the file stem.
        """
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)

        if not isinstance(raw, list) or not all(
            isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in raw
        ):
            raise ValueError(f"Key file {path} must contain a JSON array of byte values")

        account = cls.from_secret_key(bytes(raw), identifier if identifier is not None else path.stem)
        logger.info(f"Loaded account {account.identifier} from {path.name}")
        return account

    # =========================================================================
    # AccountPort
    # =========================================================================

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def address(self) -> bytes:
        return self._address

    def sign(self, message: bytes) -> bytes:
        return self._signing_key.sign(message).signature

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Check a detached signature against this account's address."""
        try:
            self._signing_key.verify_key.verify(message, signature)
        except nacl.exceptions.BadSignatureError:
            return False
        return True
