"""
Account Vault.

Bounded in-memory registry of signing accounts keyed by normalized
identifier, with free-form tags for grouping accounts into batches.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from enum import Enum

from multiwallet.config.settings import Settings
from multiwallet.domain.models import normalize_identifier
from multiwallet.observability.logging import get_logger
from multiwallet.ports.account import AccountPort

logger = get_logger(__name__)

DEFAULT_CAPACITY = 10


class VaultSetResult(str, Enum):
    SUCCESSFUL = "SUCCESSFUL"
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    FULL = "FULL"


class VaultDeleteResult(str, Enum):
    SUCCESSFUL = "SUCCESSFUL"
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    NO_SUCH_ACCOUNT = "NO_SUCH_ACCOUNT"


class TaggingResult(str, Enum):
    SUCCESSFUL = "SUCCESSFUL"
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    INVALID_TAG = "INVALID_TAG"
    NO_SUCH_ACCOUNT = "NO_SUCH_ACCOUNT"


def normalize_tag(tag: str) -> str:
    return normalize_identifier(tag)


class AccountVault:
    """
    Registry of accounts available to the transfer service.

    Mutations go through an asyncio.Lock so concurrent tasks see a
    consistent capacity check. Reads are lock-free.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._accounts: dict[str, AccountPort] = {}
        self._tags: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> AccountVault:
        return cls(capacity=settings.vault.capacity)

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[AccountPort]:
        return iter(list(self._accounts.values()))

    def __contains__(self, identifier: object) -> bool:
        return isinstance(identifier, str) and normalize_identifier(identifier) in self._accounts

    @property
    def is_full(self) -> bool:
        return len(self._accounts) >= self.capacity

    def get(self, identifier: str) -> AccountPort | None:
        if not identifier or not identifier.strip():
            return None
        return self._accounts.get(normalize_identifier(identifier))

    def tags_of(self, identifier: str) -> frozenset[str]:
        return frozenset(self._tags.get(normalize_identifier(identifier), ()))

    def with_tag(self, tag: str) -> list[AccountPort]:
        """Accounts carrying `tag`, in insertion order."""
        wanted = normalize_tag(tag)
        return [
            account
            for identifier, account in self._accounts.items()
            if wanted in self._tags.get(identifier, ())
        ]

    async def set(self, account: AccountPort) -> VaultSetResult:
        identifier = normalize_identifier(account.identifier or "")
        if not identifier:
            return VaultSetResult.INVALID_IDENTIFIER

        async with self._lock:
            if identifier in self._accounts:
                return VaultSetResult.ALREADY_EXISTS
            if self.is_full:
                logger.warning(f"Vault is full ({self.capacity}), rejecting {identifier}")
                return VaultSetResult.FULL
            self._accounts[identifier] = account
            self._tags[identifier] = set()

        logger.info(f"Added {identifier} to vault ({len(self._accounts)}/{self.capacity})")
        return VaultSetResult.SUCCESSFUL

    async def delete(self, identifier: str) -> VaultDeleteResult:
        if not identifier or not identifier.strip():
            return VaultDeleteResult.INVALID_IDENTIFIER
        key = normalize_identifier(identifier)

        async with self._lock:
            if self._accounts.pop(key, None) is None:
                return VaultDeleteResult.NO_SUCH_ACCOUNT
            self._tags.pop(key, None)

        logger.info(f"Removed {key} from vault")
        return VaultDeleteResult.SUCCESSFUL

    async def tag(self, identifier: str, tag: str) -> TaggingResult:
        if not identifier or not identifier.strip():
            return TaggingResult.INVALID_IDENTIFIER
        if not tag or not tag.strip():
            return TaggingResult.INVALID_TAG
        key = normalize_identifier(identifier)

        async with self._lock:
            if key not in self._accounts:
                return TaggingResult.NO_SUCH_ACCOUNT
            self._tags[key].add(normalize_tag(tag))
        return TaggingResult.SUCCESSFUL

    async def untag(self, identifier: str, tag: str) -> TaggingResult:
        if not identifier or not identifier.strip():
            return TaggingResult.INVALID_IDENTIFIER
        if not tag or not tag.strip():
            return TaggingResult.INVALID_TAG
        key = normalize_identifier(identifier)

        async with self._lock:
            if key not in self._accounts:
                return TaggingResult.NO_SUCH_ACCOUNT
            self._tags[key].discard(normalize_tag(tag))
        return TaggingResult.SUCCESSFUL
