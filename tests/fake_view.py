"""
fake_view.py - Test Helper for LedgerView

Provides a minimal LedgerView implementation for testing contract functions
without requiring a full Ledger instance.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Dict, Set, Optional, Any
import copy

from lottery.core import Positions, UnitState, Unit, native_currency


class FakeView:
    """
    Minimal LedgerView implementation for testing contract functions.

    Example:
        view = FakeView(
            balances={'alice': {'WEI': Decimal(10**18)}},
            states={'0xlottery': {'manager': 'alice', 'players': []}},
            time=datetime(2025, 1, 1)
        )

        view.get_balance('alice', 'WEI')
        # Returns: Decimal('1000000000000000000')
    """

    def __init__(
        self,
        balances: Dict[str, Dict[str, Any]],
        states: Optional[Dict[str, UnitState]] = None,
        time: Optional[datetime] = None,
        sequence: int = 0,
        units: Optional[Dict[str, Unit]] = None
    ):
        self._balances = {
            wallet: {unit: Decimal(str(qty)) for unit, qty in bals.items()}
            for wallet, bals in balances.items()
        }
        self._states = states or {}
        self._time = time or datetime(2025, 1, 1)
        self._sequence = sequence
        self._units = units or {}

    @property
    def current_time(self) -> datetime:
        return self._time

    @property
    def sequence_number(self) -> int:
        return self._sequence

    def get_balance(self, wallet: str, unit: str) -> Decimal:
        return self._balances.get(wallet, {}).get(unit, Decimal("0"))

    def get_unit_state(self, unit: str) -> UnitState:
        return copy.deepcopy(self._states.get(unit, {}))

    def get_positions(self, unit: str) -> Positions:
        return {
            w: b[unit]
            for w, b in self._balances.items()
            if unit in b and b[unit] != 0
        }

    def list_wallets(self) -> Set[str]:
        return set(self._balances.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the registered unit, or the native currency under that symbol."""
        if symbol in self._units:
            return self._units[symbol]
        return native_currency(symbol)
