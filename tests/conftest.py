import pytest

from multiwallet.config.settings import Settings
from multiwallet.services.balance_cache import BalanceCache
from tests.mocks.adapters import FakeClock, MockAccount, MockLedger


@pytest.fixture
def settings():
    """Settings with short timeouts so failure paths finish quickly."""
    return Settings(
        ledger={"request_timeout_seconds": 1.0},
        cache={"ttl_seconds": 3600.0, "fetch_timeout_seconds": 0.2},
        transfer={"submit_timeout_seconds": 0.5},
        confirmation={"poll_interval_seconds": 0.01, "timeout_seconds": 0.1},
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def accounts():
    """Three funded-looking accounts: w0, w1, w2."""
    return [MockAccount(f"w{i}") for i in range(3)]


@pytest.fixture
def ledger(accounts):
    """Ledger where every account holds 1000."""
    return MockLedger({a.address: 1000 for a in accounts})


@pytest.fixture
def cache(ledger, clock):
    return BalanceCache(ledger, ttl_seconds=3600.0, fetch_timeout_seconds=0.2, clock=clock)
