"""
Unit tests for transfer construction and signing.
"""

from __future__ import annotations

import pytest

from multiwallet.adapters.accounts.external import ExternalSignerAccount
from multiwallet.domain.errors import BuildFailureError
from multiwallet.domain.models import (
    AlignedTransferRequest,
    AnchorReference,
    SignedTransfer,
    UnsignedTransfer,
)
from multiwallet.ports.account import AccountPort
from multiwallet.services.builder import prepare_transfer, prepare_transfers, sign_unsigned
from tests.mocks.adapters import MockAccount

ANCHOR = AnchorReference(hash="anchor-xyz", last_valid_height=500)
DEST = b"\x07" * 32


def _request(account: AccountPort, amount: int = 10) -> AlignedTransferRequest:
    return AlignedTransferRequest(source=account, amount=amount, destination=DEST)


class TestPrepareTransfer:
    """prepare_transfer() returns data, never raises."""

    def test_signed_transfer(self):
        account = MockAccount("alice")

        prepared = prepare_transfer(_request(account), ANCHOR)

        assert not prepared.failed
        transfer = prepared.transfer
        assert isinstance(transfer, SignedTransfer)
        assert transfer.signer == "alice"
        assert transfer.anchor == ANCHOR
        assert transfer.instruction.source_address == account.address
        assert transfer.instruction.amount == 10
        assert account.signed == [transfer.message]

    def test_unsigned_transfer_defers_signing(self):
        account = MockAccount("alice")

        prepared = prepare_transfer(_request(account), ANCHOR, sign_and_encode=False)

        assert isinstance(prepared.transfer, UnsignedTransfer)
        assert prepared.transfer.account is account
        assert account.signed == []

    def test_signer_failure_is_data(self):
        prepared = prepare_transfer(_request(MockAccount("broken", fail_signing=True)), ANCHOR)

        assert prepared.failed
        assert prepared.transfer is None
        assert isinstance(prepared.error, BuildFailureError)
        assert "signer offline" in str(prepared.error)
        assert prepared.error.identifier == "broken"

    def test_empty_signature_is_failure(self):
        prepared = prepare_transfer(_request(MockAccount("mute", empty_signature=True)), ANCHOR)
        assert prepared.failed
        assert "empty signature" in str(prepared.error)

    @pytest.mark.parametrize(("returned", "type_name"), [("base58sig", "str"), (7, "int")])
    def test_non_bytes_signature_is_failure(self, returned, type_name):
        account = ExternalSignerAccount("ext", b"\x0e" * 32, lambda message: returned)

        prepared = prepare_transfer(_request(account), ANCHOR)

        assert prepared.failed
        assert isinstance(prepared.error, BuildFailureError)
        assert f"returned {type_name}" in str(prepared.error)

    def test_bytearray_signature_accepted(self):
        account = ExternalSignerAccount("ext", b"\x0e" * 32, lambda message: bytearray(b"\x01" * 64))

        prepared = prepare_transfer(_request(account), ANCHOR)

        assert prepared.transfer.signature == b"\x01" * 64

    def test_batch_shares_anchor_and_order(self):
        accounts = [MockAccount(f"a{i}") for i in range(3)]

        prepared = prepare_transfers([_request(a, i + 1) for i, a in enumerate(accounts)], ANCHOR)

        assert [p.transfer.signer for p in prepared] == ["a0", "a1", "a2"]
        assert {p.transfer.anchor for p in prepared} == {ANCHOR}

    def test_failure_isolated_to_its_slot(self):
        requests = [
            _request(MockAccount("ok1")),
            _request(MockAccount("bad", fail_signing=True)),
            _request(MockAccount("ok2")),
        ]

        prepared = prepare_transfers(requests, ANCHOR)

        assert [p.failed for p in prepared] == [False, True, False]


class TestSignUnsigned:
    def test_completes_deferred_transfer(self):
        account = MockAccount("carol")
        unsigned = prepare_transfer(_request(account), ANCHOR, sign_and_encode=False).transfer

        signed = sign_unsigned(unsigned)

        assert isinstance(signed, SignedTransfer)
        assert signed.instruction == unsigned.instruction
        assert account.signed == [signed.message]

    def test_foreign_account_rejected(self):
        unsigned = prepare_transfer(_request(MockAccount("carol")), ANCHOR, sign_and_encode=False).transfer
        hijacked = UnsignedTransfer(unsigned.instruction, unsigned.anchor, MockAccount("mallory"))

        with pytest.raises(BuildFailureError, match="does not own"):
            sign_unsigned(hijacked)
