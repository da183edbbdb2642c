"""Mock package for testing."""

from tests.mocks.adapters import FakeClock, MockAccount, MockLedger

__all__ = [
    "FakeClock",
    "MockAccount",
    "MockLedger",
]
