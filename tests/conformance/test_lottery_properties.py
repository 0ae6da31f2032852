"""
Lottery Property Conformance Tests

PROPERTIES:
    enter(c, v) with v >= minimum   ⟹ players' = players + [c], pot' = pot + v
    enter(c, v) with v < minimum    ⟹ players' = players, pot' = pot
    pickWinner(c) with c ≠ manager  ⟹ no state change
    pickWinner(manager), n ≥ 1      ⟹ players' = [], pot' = 0,
                                       winner ∈ players, winner gains pot
"""

import pytest
from hypothesis import given, settings, strategies as st
from decimal import Decimal

from lottery import (
    Chain, SeededRandomness, InsufficientContribution, Unauthorized, EmptyPool,
    MINIMUM_ENTRY, to_wei,
)


ACCOUNTS = 6
BALANCE = to_wei("100")


def fresh_chain(seed=0):
    chain = Chain("prop", accounts=ACCOUNTS, initial_balance=BALANCE,
                  randomness=SeededRandomness(seed), verbose=False)
    manager = chain.get_accounts()[0]
    handle = chain.deploy("Lottery", sender=manager)
    return chain, handle, manager


# Entry values in wei between the minimum and 1 ether
valid_value = st.integers(min_value=int(MINIMUM_ENTRY), max_value=int(to_wei("1")))
# Entry values strictly below the minimum
short_value = st.integers(min_value=0, max_value=int(MINIMUM_ENTRY) - 1)
account_index = st.integers(min_value=0, max_value=ACCOUNTS - 1)
entries = st.lists(st.tuples(account_index, valid_value), min_size=0, max_size=8)


def enter_all(chain, handle, entry_list):
    accounts = chain.get_accounts()
    for index, value in entry_list:
        chain.send(handle, "enter", sender=accounts[index], value=value)


class TestEnterProperties:

    @given(entries, account_index, valid_value)
    @settings(max_examples=40, deadline=None)
    def test_valid_entry_appends_exactly_one(self, prior, index, value):
        chain, handle, _ = fresh_chain()
        enter_all(chain, handle, prior)
        account = chain.get_accounts()[index]

        players_before = chain.call(handle, "getPlayers")
        pot_before = chain.get_pot(handle)
        balance_before = chain.get_balance(account)

        chain.send(handle, "enter", sender=account, value=value)

        assert chain.call(handle, "getPlayers") == players_before + [account]
        assert chain.get_pot(handle) == pot_before + value
        assert chain.get_balance(account) == balance_before - value

    @given(entries, account_index, short_value)
    @settings(max_examples=40, deadline=None)
    def test_short_entry_changes_nothing(self, prior, index, value):
        chain, handle, _ = fresh_chain()
        enter_all(chain, handle, prior)
        account = chain.get_accounts()[index]

        players_before = chain.call(handle, "getPlayers")
        pot_before = chain.get_pot(handle)
        log_before = len(chain.ledger.transaction_log)

        with pytest.raises(InsufficientContribution):
            chain.send(handle, "enter", sender=account, value=value)

        assert chain.call(handle, "getPlayers") == players_before
        assert chain.get_pot(handle) == pot_before
        assert len(chain.ledger.transaction_log) == log_before


class TestPickWinnerProperties:

    @given(entries, st.integers(min_value=1, max_value=ACCOUNTS - 1))
    @settings(max_examples=40, deadline=None)
    def test_non_manager_changes_nothing(self, prior, caller_index):
        chain, handle, _ = fresh_chain()
        enter_all(chain, handle, prior)
        caller = chain.get_accounts()[caller_index]

        players_before = chain.call(handle, "getPlayers")
        pot_before = chain.get_pot(handle)

        with pytest.raises(Unauthorized):
            chain.send(handle, "pickWinner", sender=caller)

        assert chain.call(handle, "getPlayers") == players_before
        assert chain.get_pot(handle) == pot_before

    @given(st.lists(st.tuples(account_index, valid_value), min_size=1, max_size=8),
           st.integers(min_value=0, max_value=2**32))
    @settings(max_examples=40, deadline=None)
    def test_draw_pays_an_entrant_and_resets(self, prior, seed):
        chain, handle, manager = fresh_chain(seed)
        enter_all(chain, handle, prior)

        players = chain.call(handle, "getPlayers")
        pot = chain.get_pot(handle)
        balances = {a: chain.get_balance(a) for a in chain.get_accounts()}

        receipt = chain.send(handle, "pickWinner", sender=manager)
        (move,) = receipt.transaction.moves
        winner = move.dest

        assert winner in players
        assert move.quantity == pot
        assert chain.call(handle, "getPlayers") == []
        assert chain.get_pot(handle) == Decimal("0")
        for account, before in balances.items():
            expected = before + pot if account == winner else before
            assert chain.get_balance(account) == expected

    @given(st.integers(min_value=0, max_value=ACCOUNTS - 1))
    @settings(max_examples=10, deadline=None)
    def test_empty_pool_only_for_manager(self, caller_index):
        chain, handle, manager = fresh_chain()
        caller = chain.get_accounts()[caller_index]
        expected = EmptyPool if caller == manager else Unauthorized
        with pytest.raises(expected):
            chain.send(handle, "pickWinner", sender=caller)
