"""
Adapters: Concrete implementations of ports.

This layer contains all external integrations:
- Account adapters (PyNaCl keypairs, external signers)
- Ledger adapters (JSON-RPC client, signature confirmer)
"""
