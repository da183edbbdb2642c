"""
Unit tests for MultiTransferService (full batch pipeline).

OFFLINE-FIRST: runs against the in-memory MockLedger.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from multiwallet.adapters.accounts.external import ExternalSignerAccount
from multiwallet.domain.errors import (
    BalanceUnknownError,
    BatchShapeError,
    BuildFailureError,
    InsufficientFundsError,
    LedgerError,
    SubmissionFailureError,
)
from multiwallet.domain.models import FinalityResult, OutcomeStatus, SignatureStatus
from multiwallet.services.balance_cache import BalanceCache
from multiwallet.services.pipeline import MultiTransferService
from tests.mocks.adapters import MockAccount, MockLedger

DEST = b"\x0d" * 32


@pytest.fixture
def service(ledger, cache, settings):
    return MultiTransferService(ledger, cache, settings=settings)


class TestConstruction:
    async def test_injected_empty_cache_is_used(self, ledger, settings, clock, accounts):
        shared = BalanceCache(ledger, clock=clock)
        assert len(shared) == 0

        service = MultiTransferService(ledger, shared, settings=settings)
        await service.transfer_many(accounts, [10], [DEST])

        assert service.cache is shared
        assert len(shared) == 3

    async def test_default_cache_from_settings(self, ledger, settings):
        service = MultiTransferService(ledger, settings=settings)

        assert service.cache.ttl_seconds == settings.cache.ttl_seconds
        assert service.cache.ledger is ledger


class TestEndToEnd:
    async def test_mixed_batch(self, settings, clock):
        """
        GIVEN: balances {w0: 1000, w1: 1000}, w2 unknown to the ledger
        WHEN: transferring [100, 2000, 100] from [w0, w1, w2]
        THEN: only w0 is built and submitted; w1 is insufficient, w2 unknown
        """
        w0, w1, w2 = (MockAccount(f"w{i}") for i in range(3))
        ledger = MockLedger({w0.address: 1000, w1.address: 1000})
        cache = BalanceCache(ledger, clock=clock)
        service = MultiTransferService(ledger, cache, settings=settings)

        result = await service.transfer_many([w0, w1, w2], [100, 2000, 100], [DEST])

        statuses = [o.status for o in result.outcomes]
        assert statuses == [
            OutcomeStatus.SUBMITTED,
            OutcomeStatus.INSUFFICIENT_FUNDS,
            OutcomeStatus.BALANCE_UNKNOWN,
        ]
        assert result.signatures == ["sig-w0-100"]
        assert len(ledger.sent) == 1
        assert ledger.sent[0].signer == "w0"
        assert ledger.anchor_calls == 1

        insufficient = result.outcomes[1].error
        assert isinstance(insufficient, InsufficientFundsError)
        assert insufficient.required == 2000
        assert insufficient.available == 1000
        assert isinstance(result.outcomes[2].error, BalanceUnknownError)


class TestTransferMany:
    """transfer_many(): one outcome per aligned request, in order."""

    async def test_all_succeed(self, service, ledger, accounts):
        result = await service.transfer_many(accounts, [10], [DEST])

        assert [o.index for o in result.outcomes] == [0, 1, 2]
        assert all(o.ok for o in result.outcomes)
        assert len(result.signatures) == 3
        assert result.failed == []

    async def test_snapshot_reuses_fresh_cache(self, service, ledger, accounts):
        """A second batch inside the TTL queries no balances."""
        await service.transfer_many(accounts, [10], [DEST])
        calls = len(ledger.balance_calls)

        await service.transfer_many(accounts, [10], [DEST])

        assert len(ledger.balance_calls) == calls

    async def test_shared_source_fetched_once(self, service, ledger, accounts):
        """One source broadcast over many destinations is one balance query."""
        destinations = [bytes([i + 1]) * 32 for i in range(4)]

        result = await service.transfer_many([accounts[0]], [5], destinations)

        assert len(result.outcomes) == 4
        assert ledger.balance_calls == [accounts[0].address]

    async def test_truncation_reported(self, service, accounts):
        result = await service.transfer_many(accounts, [1, 2], [DEST])

        assert len(result.outcomes) == 2
        assert result.discarded == {"sources": 1}

    async def test_empty_batch_raises(self, service, accounts):
        with pytest.raises(BatchShapeError):
            await service.transfer_many(accounts, [], [DEST])

    async def test_anchor_failure_marks_fundable_build_failed(self, service, ledger, accounts):
        """The batch still returns; fundable items are BUILD_FAILED, others keep their reason."""
        ledger.anchor_error = LedgerError("node down")

        result = await service.transfer_many(accounts, [10, 5000, 10], [DEST])

        assert [o.status for o in result.outcomes] == [
            OutcomeStatus.BUILD_FAILED,
            OutcomeStatus.INSUFFICIENT_FUNDS,
            OutcomeStatus.BUILD_FAILED,
        ]
        assert isinstance(result.outcomes[0].error, BuildFailureError)
        assert "node down" in result.outcomes[0].error_message
        assert ledger.sent == []

    async def test_signing_failure_isolated(self, ledger, cache, settings):
        good = MockAccount("w0")
        broken = MockAccount("w1", fail_signing=True)
        service = MultiTransferService(ledger, cache, settings=settings)

        result = await service.transfer_many([good, broken], [1], [DEST])

        assert result.outcomes[0].status is OutcomeStatus.SUBMITTED
        assert result.outcomes[1].status is OutcomeStatus.BUILD_FAILED

    async def test_submission_failure_isolated(self, service, ledger, accounts):
        ledger.rejected_sources.add(accounts[1].address)

        result = await service.transfer_many(accounts, [10], [DEST])

        assert result.outcomes[1].status is OutcomeStatus.SUBMISSION_FAILED
        assert isinstance(result.outcomes[1].error, SubmissionFailureError)
        assert result.outcomes[0].ok and result.outcomes[2].ok

    async def test_deferred_signing(self, service, ledger, accounts):
        """Unsigned builds are signed by the submitter."""
        result = await service.transfer_many(accounts, [10], [DEST], sign_and_encode=False)

        assert len(result.succeeded) == 3
        assert all(len(a.signed) == 1 for a in accounts)

    async def test_deferred_non_bytes_signature_isolated(self, ledger, cache, settings, accounts):
        """A signer returning text fails only its own item when signing is deferred."""
        odd = ExternalSignerAccount("odd", accounts[1].address, lambda message: "base58sig")
        service = MultiTransferService(ledger, cache, settings=settings)

        result = await service.transfer_many([accounts[0], odd, accounts[2]], [10], [DEST], sign_and_encode=False)

        assert [o.status for o in result.outcomes] == [
            OutcomeStatus.SUBMITTED,
            OutcomeStatus.BUILD_FAILED,
            OutcomeStatus.SUBMITTED,
        ]
        assert isinstance(result.outcomes[1].error, BuildFailureError)
        assert "returned str" in result.outcomes[1].error_message
        assert len(ledger.sent) == 2

    async def test_without_balance_checks(self, service, ledger):
        """check_balances=False submits without any balance query."""
        stranger = MockAccount("stranger")

        result = await service.transfer_many([stranger], [50], [DEST], check_balances=False)

        assert result.outcomes[0].ok
        assert ledger.balance_calls == []

    async def test_confirm_requires_confirmer(self, service, accounts):
        with pytest.raises(ValueError, match="ConfirmationTrackerPort"):
            await service.transfer_many(accounts, [1], [DEST], confirm=True)


class TestConfirmation:
    async def test_confirm_attaches_finality(self, ledger, cache, settings, accounts):
        confirmer = AsyncMock()
        confirmer.confirm = AsyncMock(side_effect=lambda sig: FinalityResult(sig, success=True, slot=9))
        service = MultiTransferService(ledger, cache, confirmer=confirmer, settings=settings)

        result = await service.transfer_many(accounts, [10, 5000, 10], [DEST], confirm=True)

        assert result.outcomes[0].finality.success
        assert result.outcomes[1].finality is None
        assert confirmer.confirm.await_count == 2

    async def test_confirmer_exception_becomes_failed_result(self, ledger, cache, settings, accounts):
        confirmer = AsyncMock()
        confirmer.confirm = AsyncMock(side_effect=RuntimeError("poll crashed"))
        service = MultiTransferService(ledger, cache, confirmer=confirmer, settings=settings)

        outcome = await service.transfer_one(accounts[0], 10, DEST, confirm=True)

        assert outcome.ok
        assert outcome.finality.success is False
        assert "poll crashed" in outcome.finality.error


class TestSingleItem:
    async def test_transfer_one(self, service, accounts):
        outcome = await service.transfer_one(accounts[0], 10, DEST)
        assert outcome.ok
        assert outcome.signature == "sig-w0-10"

    async def test_transfer_one_insufficient(self, service, accounts):
        outcome = await service.transfer_one(accounts[0], 1000, DEST)
        assert outcome.status is OutcomeStatus.INSUFFICIENT_FUNDS

    async def test_prepare_many_one_entry_per_request(self, settings, clock):
        """
        GIVEN: w0 holds 1000, w1 holds 10, w2 is unknown to the ledger
        WHEN: preparing [100] from [w0, w1, w2]
        THEN: three entries in order; only w0 carries a transfer
        """
        w0, w1, w2 = (MockAccount(f"w{i}") for i in range(3))
        ledger = MockLedger({w0.address: 1000, w1.address: 10})
        service = MultiTransferService(ledger, BalanceCache(ledger, clock=clock), settings=settings)

        prepared = await service.prepare_many([w0, w1, w2], [100], [DEST])

        assert len(prepared) == 3
        assert [p.failed for p in prepared] == [False, True, True]
        assert prepared[0].transfer.signer == "w0"
        assert prepared[1].transfer is None
        assert isinstance(prepared[1].error, InsufficientFundsError)
        assert isinstance(prepared[2].error, BalanceUnknownError)
        assert ledger.sent == []

    async def test_prepare_many_anchor_failure_marks_each_item(self, service, ledger, accounts):
        ledger.anchor_error = LedgerError("node down")

        prepared = await service.prepare_many(accounts, [10, 5000, 10], [DEST])

        assert len(prepared) == 3
        assert all(p.transfer is None for p in prepared)
        assert isinstance(prepared[0].error, BuildFailureError)
        assert "node down" in str(prepared[0].error)
        assert isinstance(prepared[1].error, InsufficientFundsError)
        assert isinstance(prepared[2].error, BuildFailureError)


class TestAirdrop:
    async def test_airdrop_invalidates_cache(self, service, cache, ledger, accounts):
        await cache.get_balance(accounts[0])

        signature = await service.airdrop(accounts[0], 500)

        assert signature.startswith("airdrop-")
        assert ledger.airdrops == [(accounts[0].address, 500)]
        assert accounts[0].identifier not in cache
        assert await cache.get_balance(accounts[0]) == 1500

    async def test_airdrop_with_confirmation(self, ledger, cache, settings, accounts):
        from multiwallet.adapters.ledger.confirmer import SignatureConfirmer

        confirmer = SignatureConfirmer.from_settings(ledger, settings)
        service = MultiTransferService(ledger, cache, confirmer=confirmer, settings=settings)
        signature = f"airdrop-{accounts[0].address.hex()[:8]}-5"
        ledger.statuses[signature] = [SignatureStatus(slot=3, confirmation_status="finalized")]

        assert await service.airdrop(accounts[0], 5, confirm=True) == signature
