"""
conftest.py - Shared pytest fixtures for vesting tests

Provides common fixtures used across unit, functional and conformance tests:
- Engines over fake collaborators (clock + in-memory pool)
- Ledger-backed coin and token vesting setups
"""

import pytest

from vesting import (
    Ledger, VestingEngine,
    native_coin, fungible_token,
    create_coin_vesting, create_token_vesting,
)

from tests.fakes import (
    FakeClock, FakeTransfer, issue,
    T0, OWNER, BENEFICIARY, NON_BENEFICIARY, TOKEN_SUPPLY,
)


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def transfer():
    return FakeTransfer(balance=0)


@pytest.fixture
def engine(clock, transfer):
    """Engine owned by OWNER over an empty in-memory pool."""
    return VestingEngine(OWNER, clock, transfer)


# =============================================================================
# LEDGER-BACKED SETUPS
# =============================================================================

def _ledger_with_wallets(name: str) -> Ledger:
    ledger = Ledger(name, initial_time=T0, verbose=False, test_mode=True)
    for wallet in (OWNER, BENEFICIARY, NON_BENEFICIARY):
        ledger.register_wallet(wallet)
    return ledger


@pytest.fixture
def coin_ledger():
    ledger = _ledger_with_wallets("coin")
    ledger.register_unit(native_coin("ETH", "Ether"))
    return ledger


@pytest.fixture
def coin_vesting(coin_ledger):
    return create_coin_vesting(coin_ledger, OWNER, pool_wallet="coin_vesting", coin_symbol="ETH")


@pytest.fixture
def token_ledger():
    """Ledger with TestToken issued in full to the owner."""
    ledger = _ledger_with_wallets("token")
    ledger.register_unit(fungible_token("TT", "TestToken", issuer=OWNER))
    issue(ledger, OWNER, "TT", TOKEN_SUPPLY, reference="token_supply")
    return ledger


@pytest.fixture
def token_vesting(token_ledger):
    return create_token_vesting(token_ledger, OWNER, "TT", pool_wallet="token_vesting")

