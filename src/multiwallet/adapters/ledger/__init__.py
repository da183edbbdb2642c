"""Ledger adapters: JSON-RPC client and signature confirmation."""

from multiwallet.adapters.ledger.confirmer import SignatureConfirmer
from multiwallet.adapters.ledger.rpc import JsonRpcLedger, LedgerClientRegistry

__all__ = ["JsonRpcLedger", "LedgerClientRegistry", "SignatureConfirmer"]
