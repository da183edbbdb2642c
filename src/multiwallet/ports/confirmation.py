"""
Confirmation Port: waits for finality of a submitted signature.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from multiwallet.domain.models import FinalityResult


class ConfirmationTrackerPort(ABC):
    """Suspends until the ledger reports a finality result for a signature."""

    @abstractmethod
    async def confirm(self, signature: str) -> FinalityResult:
        """Return success/failure once known; implementations may time out with a failed result."""
        ...
