"""
Scenario tests for a lottery deployed on the simulated chain.

Each test starts from a fresh chain with ten funded accounts and a lottery
deployed by the first account.
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from lottery import (
    Chain, ContractHandle, Receipt, CompiledContract, SeededRandomness,
    InsufficientContribution, Unauthorized, EmptyPool, LotteryError,
    LedgerError, TransactionRejected,
    to_wei, derive_address, DEFAULT_ACCOUNTS, DEFAULT_ACCOUNT_BALANCE, SYSTEM_WALLET,
)


def abi_for(*names):
    return [{"type": "function", "name": n, "inputs": [], "outputs": []} for n in names]


FULL_ABI = abi_for("enter", "pickWinner", "getPlayers", "manager", "players") + [
    {"type": "constructor", "inputs": []},
]


class TestChainSetup:

    def test_accounts_funded(self, chain):
        accounts = chain.get_accounts()
        assert len(accounts) == DEFAULT_ACCOUNTS
        assert len(set(accounts)) == DEFAULT_ACCOUNTS
        for account in accounts:
            assert account.startswith("0x") and len(account) == 42
            assert chain.get_balance(account) == DEFAULT_ACCOUNT_BALANCE

    def test_funding_comes_from_system_wallet(self, chain):
        assert chain.ledger.total_supply("WEI") == Decimal("0")
        assert chain.ledger.get_balance(SYSTEM_WALLET, "WEI") == -DEFAULT_ACCOUNT_BALANCE * DEFAULT_ACCOUNTS

    def test_accounts_are_deterministic(self):
        a = Chain("same", accounts=3, verbose=False)
        b = Chain("same", accounts=3, verbose=False)
        assert a.get_accounts() == b.get_accounts()
        assert a.get_accounts()[0] == derive_address("same", "account", 0)

    def test_custom_balance(self):
        chain = Chain("small", accounts=2, initial_balance=to_wei("1"), verbose=False)
        assert chain.get_balance(chain.get_accounts()[1]) == to_wei("1")

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            Chain("none", accounts=0, verbose=False)
        with pytest.raises(ValueError):
            Chain("negative", initial_balance=-1, verbose=False)

    def test_advance_time(self, chain):
        new_time = chain.advance_time(timedelta(hours=1))
        assert new_time == datetime(2025, 1, 1, 1)
        with pytest.raises(ValueError):
            chain.advance_time(timedelta(seconds=-1))


class TestDeploy:

    def test_deploys_a_contract(self, deployed):
        chain, handle, manager = deployed
        assert isinstance(handle, ContractHandle)
        assert handle.address.startswith("0x")
        assert chain.call(handle, "manager") == manager
        assert chain.call(handle, "getPlayers") == []

    def test_deploy_from_compiled_artifact(self, chain):
        artifact = CompiledContract(name="Lottery", interface=FULL_ABI, bytecode="6060")
        handle = chain.deploy(artifact, sender=chain.get_accounts()[1])
        assert handle.interface == FULL_ABI
        assert chain.call(handle, "manager") == chain.get_accounts()[1]

    def test_incomplete_interface_rejected(self, chain):
        artifact = CompiledContract(name="Lottery", interface=abi_for("enter"), bytecode="6060")
        with pytest.raises(LedgerError, match="does not implement"):
            chain.deploy(artifact, sender=chain.get_accounts()[0])

    def test_unknown_contract_rejected(self, chain):
        with pytest.raises(LedgerError, match="No implementation"):
            chain.deploy("Casino", sender=chain.get_accounts()[0])

    def test_unknown_sender_rejected(self, chain):
        with pytest.raises(LedgerError, match="Unknown account"):
            chain.deploy("Lottery", sender="0xnobody")

    def test_each_deployment_gets_a_new_address(self, chain):
        manager = chain.get_accounts()[0]
        first = chain.deploy("Lottery", sender=manager)
        second = chain.deploy("Lottery", sender=manager)
        assert first.address != second.address

    def test_custom_minimum_entry(self, chain):
        manager, alice = chain.get_accounts()[:2]
        handle = chain.deploy("Lottery", sender=manager, minimum_entry=to_wei("1"))
        with pytest.raises(InsufficientContribution):
            chain.send(handle, "enter", sender=alice, value=to_wei("0.5"))

    def test_verbose_deploy_prints(self, capsys):
        chain = Chain("loud", accounts=1)
        chain.deploy("Lottery", sender=chain.get_accounts()[0])
        assert "🚀 Deployed Lottery at" in capsys.readouterr().out


class TestEnter:

    def test_allows_one_account_to_enter(self, deployed):
        chain, handle, _ = deployed
        account = chain.get_accounts()[0]
        receipt = chain.send(handle, "enter", sender=account, value=to_wei("0.02"))

        assert isinstance(receipt, Receipt)
        assert receipt.exec_id.startswith("exec:test:")
        assert chain.call(handle, "getPlayers") == [account]

    def test_allows_multiple_accounts_to_enter(self, deployed):
        chain, handle, _ = deployed
        accounts = chain.get_accounts()
        for account in accounts[:3]:
            chain.send(handle, "enter", sender=account, value=to_wei("0.02"))

        players = chain.call(handle, "getPlayers")
        assert players == accounts[:3]
        assert chain.call(handle, "players", 1) == accounts[1]
        assert chain.get_pot(handle) == to_wei("0.06")

    def test_requires_a_minimum_amount_to_enter(self, deployed):
        chain, handle, _ = deployed
        account = chain.get_accounts()[0]
        with pytest.raises(InsufficientContribution):
            chain.send(handle, "enter", sender=account, value=10)

        assert chain.call(handle, "getPlayers") == []
        assert chain.get_balance(account) == DEFAULT_ACCOUNT_BALANCE

    def test_value_moves_from_sender_to_contract(self, deployed):
        chain, handle, _ = deployed
        account = chain.get_accounts()[4]
        chain.send(handle, "enter", sender=account, value=to_wei("0.5"))
        assert chain.get_balance(account) == DEFAULT_ACCOUNT_BALANCE - to_wei("0.5")
        assert chain.get_balance(handle.address) == to_wei("0.5")

    def test_entry_above_balance_rejected(self):
        chain = Chain("poor", accounts=2, initial_balance=to_wei("0.05"), verbose=False)
        manager, alice = chain.get_accounts()
        handle = chain.deploy("Lottery", sender=manager)
        with pytest.raises(TransactionRejected):
            chain.send(handle, "enter", sender=alice, value=to_wei("0.1"))
        assert chain.call(handle, "getPlayers") == []

    def test_float_value_rejected(self, deployed):
        chain, handle, _ = deployed
        with pytest.raises(ValueError):
            chain.send(handle, "enter", sender=chain.get_accounts()[1], value=0.02)


class TestPickWinner:

    def test_restricted_to_manager(self, deployed):
        chain, handle, _ = deployed
        accounts = chain.get_accounts()
        chain.send(handle, "enter", sender=accounts[1], value=to_wei("0.02"))
        with pytest.raises(Unauthorized):
            chain.send(handle, "pickWinner", sender=accounts[1])
        assert chain.call(handle, "getPlayers") == [accounts[1]]

    def test_restriction_checked_before_empty_pool(self, deployed):
        chain, handle, _ = deployed
        with pytest.raises(Unauthorized):
            chain.send(handle, "pickWinner", sender=chain.get_accounts()[1])

    def test_empty_pool(self, deployed):
        chain, handle, manager = deployed
        with pytest.raises(EmptyPool):
            chain.send(handle, "pickWinner", sender=manager)

    def test_sends_money_to_winner(self, deployed):
        chain, handle, manager = deployed
        chain.send(handle, "enter", sender=manager, value=to_wei("1"))
        prev_balance = chain.get_balance(manager)

        chain.send(handle, "pickWinner", sender=manager)

        assert chain.get_balance(manager) - prev_balance == to_wei("1")

    def test_players_emptied_after_draw(self, deployed):
        chain, handle, manager = deployed
        chain.send(handle, "enter", sender=manager, value=to_wei("1"))
        chain.send(handle, "pickWinner", sender=manager)
        assert chain.call(handle, "getPlayers") == []

    def test_lottery_balance_reset_after_draw(self, deployed):
        chain, handle, manager = deployed
        chain.send(handle, "enter", sender=manager, value=to_wei("1"))
        prev_balance = chain.get_balance(handle.address)

        chain.send(handle, "pickWinner", sender=manager)

        assert prev_balance - chain.get_balance(handle.address) == to_wei("1")
        assert chain.get_balance(handle.address) == Decimal("0")

    def test_winner_is_an_entrant(self, deployed):
        chain, handle, manager = deployed
        accounts = chain.get_accounts()
        for account in accounts[1:5]:
            chain.send(handle, "enter", sender=account, value=to_wei("0.1"))
        receipt = chain.send(handle, "pickWinner", sender=manager)

        (move,) = receipt.transaction.moves
        assert move.dest in accounts[1:5]
        assert move.quantity == to_wei("0.4")
        assert chain.get_balance(move.dest) == DEFAULT_ACCOUNT_BALANCE + to_wei("0.3")

    def test_not_payable(self, deployed):
        chain, handle, manager = deployed
        chain.send(handle, "enter", sender=manager, value=to_wei("1"))
        with pytest.raises(TransactionRejected, match="not payable"):
            chain.send(handle, "pickWinner", sender=manager, value=1)

    def test_lottery_is_reusable(self, deployed):
        chain, handle, manager = deployed
        accounts = chain.get_accounts()
        for _ in range(3):
            chain.send(handle, "enter", sender=accounts[1], value=to_wei("0.1"))
            chain.send(handle, "enter", sender=accounts[2], value=to_wei("0.1"))
            chain.send(handle, "pickWinner", sender=manager)
            assert chain.call(handle, "getPlayers") == []

        assert chain.ledger.get_unit_state(handle.address)["round"] == 3
        assert chain.ledger.total_supply("WEI") == Decimal("0")

    def test_same_seed_same_winners(self):
        def run():
            chain = Chain("seeded", randomness=SeededRandomness(99), verbose=False)
            manager = chain.get_accounts()[0]
            handle = chain.deploy("Lottery", sender=manager)
            winners = []
            for _ in range(5):
                for account in chain.get_accounts()[1:6]:
                    chain.send(handle, "enter", sender=account, value=to_wei("0.01"))
                receipt = chain.send(handle, "pickWinner", sender=manager)
                winners.append(receipt.transaction.moves[0].dest)
            return winners

        assert run() == run()


class TestDispatch:

    def test_unknown_method(self, deployed):
        chain, handle, manager = deployed
        with pytest.raises(LedgerError, match="Unknown method"):
            chain.send(handle, "withdraw", sender=manager)
        with pytest.raises(LedgerError, match="Unknown method"):
            chain.call(handle, "owner")

    def test_wrong_kind_of_method(self, deployed):
        chain, handle, manager = deployed
        with pytest.raises(LedgerError, match="read-only"):
            chain.send(handle, "getPlayers", sender=manager)
        with pytest.raises(LedgerError, match="changes state"):
            chain.call(handle, "enter")

    def test_unknown_contract(self, chain):
        with pytest.raises(LedgerError, match="No contract"):
            chain.call("0xdeadbeef", "getPlayers")

    def test_players_index_out_of_range(self, deployed):
        chain, handle, _ = deployed
        with pytest.raises(IndexError):
            chain.call(handle, "players", 0)

    def test_handle_or_address(self, deployed):
        chain, handle, manager = deployed
        assert chain.call(handle.address, "manager") == manager

    def test_lottery_errors_are_ledger_errors(self, deployed):
        chain, handle, manager = deployed
        with pytest.raises(LotteryError):
            chain.send(handle, "pickWinner", sender=manager)
