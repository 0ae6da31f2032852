"""
conftest.py - Shared pytest fixtures for lottery tests

Provides common fixtures used across unit, conformance and functional tests:
- Ledgers (empty, funded, with a deployed lottery)
- Chains with deterministic randomness
- FakeView for pure-function tests
- Comparison utilities
"""

import pytest
from datetime import datetime
from decimal import Decimal

from lottery import (
    Ledger, Chain, SeededRandomness, ExecuteResult,
    native_currency, compute_deployment, to_wei,
    MINIMUM_ENTRY, NATIVE_CURRENCY,
)

from tests.fake_view import FakeView


MANAGER = "0xmanager"
LOTTERY = "0xlottery"
PLAYERS = ["0xalice", "0xbob", "0xcarol", "0xdave"]


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def compare_ledger_states(ledger1: Ledger, ledger2: Ledger) -> dict:
    """Compare balances and unit states of two ledgers and return differences."""
    balance_diffs = []
    state_diffs = []

    all_wallets = ledger1.registered_wallets | ledger2.registered_wallets
    all_units = set(ledger1.units.keys()) | set(ledger2.units.keys())

    for wallet in all_wallets:
        for unit in all_units:
            bal1 = ledger1.balances.get(wallet, {}).get(unit, Decimal("0"))
            bal2 = ledger2.balances.get(wallet, {}).get(unit, Decimal("0"))
            if bal1 != bal2:
                balance_diffs.append({
                    "wallet": wallet,
                    "unit": unit,
                    "ledger1": bal1,
                    "ledger2": bal2,
                })

    for unit_sym in all_units:
        if unit_sym in ledger1.units and unit_sym in ledger2.units:
            state1 = ledger1.get_unit_state(unit_sym)
            state2 = ledger2.get_unit_state(unit_sym)
            field_diffs = {
                key: {"ledger1": state1.get(key), "ledger2": state2.get(key)}
                for key in set(state1) | set(state2)
                if state1.get(key) != state2.get(key)
            }
            if field_diffs:
                state_diffs.append({"unit": unit_sym, "diffs": field_diffs})

    return {
        "equal": not balance_diffs and not state_diffs,
        "balance_diffs": balance_diffs,
        "state_diffs": state_diffs,
    }


def deploy_lottery(ledger: Ledger, address: str = LOTTERY, manager: str = MANAGER,
                   minimum_entry=MINIMUM_ENTRY) -> str:
    """Register the contract wallet and execute the deployment transaction."""
    if not ledger.is_registered(address):
        ledger.register_wallet(address)
    result = ledger.execute(compute_deployment(ledger, address, manager, NATIVE_CURRENCY, minimum_entry))
    assert result == ExecuteResult.APPLIED, ledger.last_rejection
    return address


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", verbose=False, test_mode=True)


@pytest.fixture
def wei_ledger():
    """Ledger with WEI, a manager and four players, each holding 10 ether."""
    ledger = Ledger("test", datetime(2025, 1, 1), verbose=False, test_mode=True)
    ledger.register_unit(native_currency())
    ledger.register_wallet(MANAGER)
    for player in PLAYERS:
        ledger.register_wallet(player)
        ledger.set_balance(player, "WEI", to_wei("10"))
    return ledger


@pytest.fixture
def lottery_ledger(wei_ledger):
    """wei_ledger with a lottery deployed at LOTTERY, managed by MANAGER."""
    deploy_lottery(wei_ledger)
    return wei_ledger


# =============================================================================
# CHAIN FIXTURES
# =============================================================================

@pytest.fixture
def chain():
    """Chain with 10 funded accounts and seeded randomness."""
    return Chain("test", randomness=SeededRandomness(1234),
                 initial_time=datetime(2025, 1, 1), verbose=False)


@pytest.fixture
def deployed(chain):
    """(chain, handle, manager) with a lottery deployed by the first account."""
    manager = chain.get_accounts()[0]
    handle = chain.deploy("Lottery", sender=manager)
    return chain, handle, manager


# =============================================================================
# FAKE VIEW FIXTURES
# =============================================================================

@pytest.fixture
def lottery_view():
    """FakeView holding a fresh lottery and funded players."""
    return FakeView(
        balances={
            player: {"WEI": to_wei("10")} for player in PLAYERS
        },
        states={
            LOTTERY: {
                "address": LOTTERY,
                "manager": MANAGER,
                "currency": "WEI",
                "minimum_entry": MINIMUM_ENTRY,
                "players": [],
                "round": 0,
                "last_winner": None,
                "last_prize": None,
            }
        },
        time=datetime(2025, 1, 1),
    )
