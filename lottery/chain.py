"""
chain.py - Simulated Chain Client

An in-process stand-in for a development chain and its client library:
funded accounts, contract deployment, state-changing sends and read-only
calls. Every state change goes through Ledger.execute(), so each send is
applied atomically or not at all.

Usage:
    chain = Chain("dev", verbose=False)
    manager, alice, bob = chain.get_accounts()[:3]

    handle = chain.deploy(compile_contract(), sender=manager)
    chain.send(handle, "enter", sender=alice, value=to_wei("0.02"))
    chain.call(handle, "getPlayers")        # [alice]
    chain.send(handle, "pickWinner", sender=manager)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Union
import hashlib

from .core import (
    Move, Transaction, TransactionOrigin, OriginType, ExecuteResult, Numeric,
    LedgerError, TransactionRejected,
    NATIVE_CURRENCY, SYSTEM_WALLET,
    build_transaction, native_currency, to_wei,
)
from .ledger import Ledger
from .compile import CompiledContract, LOTTERY_CONTRACT, interface_methods
from .randomness import LedgerEntropy, RandomnessSource
from .units import lottery


DEFAULT_ACCOUNTS = 10
DEFAULT_ACCOUNT_BALANCE = to_wei("100", "ether")

# Methods that change state, and read-only methods, of a deployed lottery
SEND_METHODS = frozenset({"enter", "pickWinner"})
CALL_METHODS = frozenset({"getPlayers", "manager", "players"})
LOTTERY_METHODS = SEND_METHODS | CALL_METHODS


def derive_address(*parts: Any) -> str:
    """Deterministic 20-byte hex address from arbitrary seed parts."""
    material = ":".join(str(p) for p in parts)
    return "0x" + hashlib.sha256(material.encode()).hexdigest()[:40]


@dataclass(frozen=True)
class ContractHandle:
    """A deployed contract: its address and the interface it was deployed with."""
    address: str
    interface: List[Dict[str, Any]] = field(default_factory=list)
    name: str = LOTTERY_CONTRACT


@dataclass(frozen=True)
class Receipt:
    """Result of an applied send."""
    exec_id: str
    method: str
    sender: str
    value: Decimal
    transaction: Transaction


class Chain:
    """
    Development chain with pre-funded accounts.

    Accounts are funded from SYSTEM_WALLET in a single SYSTEM transaction, so
    the total WEI supply including the system wallet is always zero.

    Example:
        chain = Chain("dev", accounts=3, initial_balance=to_wei("1"))
        chain.get_balance(chain.get_accounts()[0])   # Decimal("1000000000000000000")
    """

    def __init__(
        self,
        name: str = "dev",
        accounts: int = DEFAULT_ACCOUNTS,
        initial_balance: Numeric = DEFAULT_ACCOUNT_BALANCE,
        randomness: Optional[RandomnessSource] = None,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        if accounts < 1:
            raise ValueError(f"accounts must be at least 1, got {accounts}")
        balance = Decimal(str(initial_balance))
        if balance < 0:
            raise ValueError(f"initial_balance cannot be negative, got {initial_balance}")

        self.name = name
        self.verbose = verbose
        self.randomness: RandomnessSource = randomness if randomness is not None else LedgerEntropy()
        self.ledger = Ledger(name, initial_time=initial_time, verbose=verbose)
        self.ledger.register_unit(native_currency())
        self.contracts: Dict[str, ContractHandle] = {}
        self._nonces: Dict[str, int] = {}

        self._accounts = [derive_address(name, "account", i) for i in range(accounts)]
        for account in self._accounts:
            self.ledger.register_wallet(account)
            self._nonces[account] = 0

        if balance > 0:
            moves = [
                Move(balance, NATIVE_CURRENCY, SYSTEM_WALLET, account, "genesis")
                for account in self._accounts
            ]
            origin = TransactionOrigin(OriginType.SYSTEM, SYSTEM_WALLET, NATIVE_CURRENCY, "GENESIS")
            self._submit(build_transaction(self.ledger, moves, origin=origin))

    # ========================================================================
    # ACCOUNTS AND TIME
    # ========================================================================

    def get_accounts(self) -> List[str]:
        return list(self._accounts)

    def get_balance(self, address: str) -> Decimal:
        return self.ledger.get_balance(address, NATIVE_CURRENCY)

    @property
    def current_time(self) -> datetime:
        return self.ledger.current_time

    def advance_time(self, delta: timedelta) -> datetime:
        """Move the chain clock forward by delta and return the new time."""
        if delta < timedelta(0):
            raise ValueError(f"Cannot move time backwards by {delta}")
        self.ledger.advance_time(self.ledger.current_time + delta)
        return self.ledger.current_time

    # ========================================================================
    # DEPLOYMENT
    # ========================================================================

    def deploy(
        self,
        artifact_or_name: Union[CompiledContract, str],
        sender: str,
        minimum_entry: Numeric = lottery.MINIMUM_ENTRY,
    ) -> ContractHandle:
        """
        Deploy a lottery managed by `sender`.

        A CompiledContract must declare every lottery method in its ABI; a
        plain name must be "Lottery".

        Raises:
            LedgerError: unknown contract, incomplete ABI or unknown sender.
            TransactionRejected: the ledger rejected the deployment.
        """
        if isinstance(artifact_or_name, CompiledContract):
            name = artifact_or_name.name
            interface = list(artifact_or_name.interface)
            missing = LOTTERY_METHODS - interface_methods(interface)
            if missing:
                raise LedgerError(
                    f"Contract {name} does not implement: {', '.join(sorted(missing))}"
                )
        else:
            name = artifact_or_name
            interface = []
        if name != LOTTERY_CONTRACT:
            raise LedgerError(f"No implementation for contract {name}")
        self._require_account(sender)

        nonce = self._nonces[sender]
        address = derive_address(sender, nonce)
        self._nonces[sender] = nonce + 1

        self.ledger.register_wallet(address)
        pending = lottery.compute_deployment(
            self.ledger, address, sender, NATIVE_CURRENCY, minimum_entry
        )
        self._submit(pending)

        handle = ContractHandle(address=address, interface=interface, name=name)
        self.contracts[address] = handle
        if self.verbose:
            print(f"🚀 Deployed {name} at {address} (manager {sender})")
        return handle

    # ========================================================================
    # SEND AND CALL
    # ========================================================================

    def send(
        self,
        handle: Union[ContractHandle, str],
        method: str,
        sender: str,
        value: Numeric = 0,
    ) -> Receipt:
        """
        Send a state-changing call to a deployed lottery.

        Raises:
            InsufficientContribution, Unauthorized, EmptyPool: the call failed
                its precondition; nothing was submitted.
            TransactionRejected: the ledger rejected the transaction, e.g. the
                sender cannot cover the value.
            LedgerError: unknown contract, method or sender.
        """
        address = self._resolve(handle)
        self._require_account(sender)
        if method not in SEND_METHODS:
            if method in CALL_METHODS:
                raise LedgerError(f"{method} is read-only; use call()")
            raise LedgerError(f"Unknown method {method} on {address}")

        if isinstance(value, float):
            raise ValueError(f"value must be int, str or Decimal wei, got float {value!r}")
        amount = Decimal(str(value))
        if method == "enter":
            pending = lottery.transact(
                self.ledger, address, lottery.EVENT_ENTER, player=sender, value=amount
            )
        else:
            if amount != 0:
                raise TransactionRejected(f"{method} is not payable")
            pending = lottery.transact(
                self.ledger, address, lottery.EVENT_PICK_WINNER,
                caller=sender, randomness=self.randomness,
            )

        tx = self._submit(pending)
        self._nonces[sender] += 1
        return Receipt(
            exec_id=tx.exec_id,
            method=method,
            sender=sender,
            value=amount,
            transaction=tx,
        )

    def call(self, handle: Union[ContractHandle, str], method: str, *args: Any) -> Any:
        """
        Run a read-only method of a deployed lottery.

        Raises:
            LedgerError: unknown contract or method.
            IndexError: players(i) with i outside the entrant list.
        """
        address = self._resolve(handle)
        readers: Dict[str, Callable[..., Any]] = {
            "getPlayers": lambda: lottery.get_players(self.ledger, address),
            "manager": lambda: lottery.get_manager(self.ledger, address),
            "players": lambda index: lottery.get_player(self.ledger, address, index),
        }
        if method not in readers:
            if method in SEND_METHODS:
                raise LedgerError(f"{method} changes state; use send()")
            raise LedgerError(f"Unknown method {method} on {address}")
        return readers[method](*args)

    def get_pot(self, handle: Union[ContractHandle, str]) -> Decimal:
        return lottery.get_pot(self.ledger, self._resolve(handle))

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _resolve(self, handle: Union[ContractHandle, str]) -> str:
        address = handle.address if isinstance(handle, ContractHandle) else handle
        if address not in self.contracts:
            raise LedgerError(f"No contract deployed at {address}")
        return address

    def _require_account(self, sender: str) -> None:
        if sender not in self._nonces:
            raise LedgerError(f"Unknown account {sender}")

    def _submit(self, pending) -> Transaction:
        """Execute on the ledger and return the logged transaction."""
        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            raise TransactionRejected(self.ledger.last_rejection or "rejected")
        if result == ExecuteResult.ALREADY_APPLIED:
            raise TransactionRejected(f"duplicate transaction {pending.intent_id}")
        return self.ledger.transaction_log[-1]
