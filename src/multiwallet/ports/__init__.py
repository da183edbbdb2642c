"""
Ports: Abstract interfaces for external dependencies.

This follows the Ports & Adapters (Hexagonal) architecture pattern.
Business logic depends only on these interfaces, not on concrete implementations.
"""

from multiwallet.ports.account import AccountPort
from multiwallet.ports.confirmation import ConfirmationTrackerPort
from multiwallet.ports.ledger import LedgerPort

__all__ = ["AccountPort", "LedgerPort", "ConfirmationTrackerPort"]
