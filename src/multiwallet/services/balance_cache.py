"""
Balance Cache.

Time-bounded cache of account balances in front of the ledger.

- Fresh entries (age < TTL) are answered locally, no I/O
- Stale or missing entries are refreshed with one concurrent fan-out
- Fail-closed: a failed refresh evicts the entry instead of keeping stale data
- Writes for one identifier are serialised by a per-identifier lock
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager

from multiwallet.config.settings import Settings
from multiwallet.domain.models import BalanceCacheEntry
from multiwallet.observability.logging import LOG_TAG_CACHE, get_logger
from multiwallet.observability.metrics import (
    record_balance_fetch,
    record_cache_lookup,
    record_eviction,
)
from multiwallet.ports.account import AccountPort
from multiwallet.ports.ledger import LedgerPort

logger = get_logger(__name__)

ONE_HOUR_SECONDS = 3600.0


class BalanceCache:
    """
    Concurrent, TTL-bounded balance cache.

    Construct one per process (or per ledger) and inject it where needed;
    there is no module-level instance.
    """

    def __init__(
        self,
        ledger: LedgerPort,
        *,
        ttl_seconds: float = ONE_HOUR_SECONDS,
        fetch_timeout_seconds: float | None = 10.0,
        max_concurrent_fetches: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.ledger = ledger
        self.ttl_seconds = ttl_seconds
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self._clock = clock
        self._entries: dict[str, BalanceCacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent_fetches))

    @classmethod
    def from_settings(cls, ledger: LedgerPort, settings: Settings, **kwargs) -> BalanceCache:
        return cls(
            ledger,
            ttl_seconds=settings.cache.ttl_seconds,
            fetch_timeout_seconds=settings.cache.fetch_timeout_seconds,
            max_concurrent_fetches=settings.cache.max_concurrent_fetches,
            **kwargs,
        )

    # =========================================================================
    # Local reads (no I/O)
    # =========================================================================

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def entry(self, identifier: str) -> BalanceCacheEntry | None:
        """Raw entry regardless of freshness."""
        return self._entries.get(identifier)

    def is_fresh(self, identifier: str) -> bool:
        entry = self._entries.get(identifier)
        return entry is not None and entry.is_fresh(self._clock(), self.ttl_seconds)

    def get(self, account: AccountPort) -> int | None:
        """
        Cached balance if fresh, else None.

        Never performs network I/O.
        """
        entry = self._entries.get(account.identifier)
        if entry is None or not entry.is_fresh(self._clock(), self.ttl_seconds):
            record_cache_lookup(hit=False)
            return None
        record_cache_lookup(hit=True)
        return entry.balance

    def _divide_fresh_and_due(
        self, accounts: Iterable[AccountPort]
    ) -> tuple[dict[str, int], list[AccountPort]]:
        """Split into usable cached balances and accounts that need a fetch."""
        usable: dict[str, int] = {}
        due: dict[str, AccountPort] = {}
        for account in accounts:
            balance = self.get(account)
            if balance is None:
                due[account.identifier] = account
            else:
                usable[account.identifier] = balance
        return usable, list(due.values())

    # =========================================================================
    # Eviction
    # =========================================================================

    def invalidate(self, identifier: str) -> bool:
        """Drop one entry. Returns True if something was removed."""
        return self._entries.pop(identifier, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    # =========================================================================
    # Network refresh
    # =========================================================================

    @asynccontextmanager
    async def _locked(self, identifier: str) -> AsyncIterator[None]:
        """Per-identifier lock, dropped once its last holder or waiter leaves."""
        lock = self._locks.get(identifier)
        if lock is None:
            lock = self._locks[identifier] = asyncio.Lock()
        self._lock_users[identifier] = self._lock_users.get(identifier, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[identifier] -= 1
            if not self._lock_users[identifier]:
                del self._lock_users[identifier]
                del self._locks[identifier]

    async def _query(self, account: AccountPort) -> int | None:
        """One ledger query; every failure maps to None."""
        identifier = account.identifier
        try:
            async with self._semaphore:
                if self.fetch_timeout_seconds:
                    balance = await asyncio.wait_for(
                        self.ledger.get_balance(account.address),
                        timeout=self.fetch_timeout_seconds,
                    )
                else:
                    balance = await self.ledger.get_balance(account.address)
        except TimeoutError:
            record_balance_fetch("timeout")
            logger.warning(
                f"{LOG_TAG_CACHE} Balance query for {identifier} timed out after {self.fetch_timeout_seconds}s"
            )
            return None
        except Exception as e:
            record_balance_fetch("error")
            logger.warning(f"{LOG_TAG_CACHE} Balance query for {identifier} failed: {e}")
            return None

        if isinstance(balance, bool) or not isinstance(balance, int) or balance < 0:
            record_balance_fetch("error")
            logger.warning(f"{LOG_TAG_CACHE} Ledger returned invalid balance for {identifier}: {balance!r}")
            return None

        record_balance_fetch("ok")
        return balance

    async def _refresh_one(self, account: AccountPort, *, reuse_fresh: bool) -> tuple[str, int | None]:
        identifier = account.identifier
        async with self._locked(identifier):
            # A concurrent run may have refreshed this identifier while we waited
            if reuse_fresh and self.is_fresh(identifier):
                return identifier, self._entries[identifier].balance

            balance = await self._query(account)
            if balance is None:
                if self._entries.pop(identifier, None) is not None:
                    record_eviction()
                    logger.debug(f"{LOG_TAG_CACHE} Evicted {identifier} after failed refresh")
                return identifier, None

            self._entries[identifier] = BalanceCacheEntry(
                identifier=identifier,
                balance=balance,
                fetched_at=self._clock(),
            )
            return identifier, balance

    async def _refresh(self, accounts: Iterable[AccountPort], *, reuse_fresh: bool) -> dict[str, int]:
        # Duplicate identifiers collapse onto one query and one entry
        unique = {account.identifier: account for account in accounts}
        if not unique:
            return {}

        results = await asyncio.gather(
            *[self._refresh_one(account, reuse_fresh=reuse_fresh) for account in unique.values()]
        )
        return {identifier: balance for identifier, balance in results if balance is not None}

    async def refresh_batch(self, accounts: Iterable[AccountPort]) -> dict[str, int]:
        """
        Query the ledger for every account concurrently.

        Each account's failure is isolated: success writes (balance, now),
        failure evicts any existing entry.

        Returns:
            identifier -> balance for the accounts that were fetched successfully.
        """
        return await self._refresh(accounts, reuse_fresh=False)

    async def get_batch(self, accounts: Iterable[AccountPort]) -> dict[str, int]:
        """
        Balances for `accounts`: fresh cache entries plus one refresh pass.

        Accounts that still have no balance after the refresh are omitted
        from the result and logged.
        """
        accounts = list(accounts)
        if not accounts:
            return {}

        balances, due = self._divide_fresh_and_due(accounts)
        if due:
            balances.update(await self._refresh(due, reuse_fresh=True))

        unresolved = sorted({a.identifier for a in due} - balances.keys())
        if unresolved:
            logger.warning(
                f"{LOG_TAG_CACHE} Balance fetch was partial: {len(unresolved)} unresolved ({', '.join(unresolved)})"
            )
        return balances

    async def get_balance(self, account: AccountPort) -> int | None:
        """Single-account form of get_batch."""
        return (await self.get_batch([account])).get(account.identifier)

    async def has_sufficient_balance(self, account: AccountPort, amount: int) -> bool:
        """True iff a determinable balance strictly exceeds `amount`."""
        balance = await self.get_balance(account)
        return balance is not None and balance > amount
