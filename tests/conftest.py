"""
conftest.py - Shared pytest fixtures for vesting tests

Provides common fixtures used across unit, functional and conformance tests:
- Token ledgers (empty, funded)
- Grant registries (pre-start only, open to late grants)
- A vesting factory with a funded reserve
"""

import pytest

from vesting import (
    Ledger, token,
    create_multi_vesting_unit, create_vesting_factory_unit,
)

from tests.helpers import T0, TOKEN, INITIAL_SUPPLY, transfer


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", T0, verbose=False, test_mode=True)


@pytest.fixture
def token_ledger():
    """Ledger with the CRUNCH token and four wallets; treasury holds the supply."""
    ledger = Ledger("test", T0, verbose=False, test_mode=True)
    ledger.register_unit(token(TOKEN, "Crunch Token"))
    for wallet in ("treasury", "alice", "bob", "charlie"):
        ledger.register_wallet(wallet)
    ledger.set_balance("treasury", TOKEN, INITIAL_SUPPLY)
    return ledger


# =============================================================================
# REGISTRY FIXTURES
# =============================================================================

@pytest.fixture
def registry_ledger(token_ledger):
    """Unstarted registry "MV" administered by treasury, custody holding 1,000."""
    token_ledger.register_unit(create_multi_vesting_unit("MV", TOKEN, owner="treasury"))
    token_ledger.register_wallet("MV")
    transfer(token_ledger, "treasury", "MV", 1_000, "fund_mv")
    return token_ledger


@pytest.fixture
def open_registry_ledger(token_ledger):
    """Registry that accepts grants after it has begun, custody holding 1,000."""
    token_ledger.register_unit(create_multi_vesting_unit(
        "MV", TOKEN, owner="treasury", pre_start_only=False,
    ))
    token_ledger.register_wallet("MV")
    transfer(token_ledger, "treasury", "MV", 1_000, "fund_mv")
    return token_ledger


# =============================================================================
# FACTORY FIXTURES
# =============================================================================

@pytest.fixture
def factory_ledger(token_ledger):
    """Factory "FACTORY" owned by treasury with creator "hr", reserve 10,000."""
    token_ledger.register_wallet("hr")
    token_ledger.register_unit(create_vesting_factory_unit(
        "FACTORY", TOKEN, owner="treasury", creator="hr",
    ))
    token_ledger.register_wallet("FACTORY")
    transfer(token_ledger, "treasury", "FACTORY", 10_000, "fund_factory")
    return token_ledger
