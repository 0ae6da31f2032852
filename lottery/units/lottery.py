"""
lottery.py - Lottery Contract Units

A lottery is a contract deployed at an address. Accounts enter by paying at
least the minimum entry into the contract; the manager (the deploying account)
picks a winner, who receives the whole pot. Picking a winner clears the entrant
list and empties the pot in the same transaction, and the lottery is reused for
the next round.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - LotteryTerms: address, manager, currency, minimum entry (never change)
   - LotteryState: entrants, pot, round number, last winner (one per round step)
   - DrawResult: outcome of a draw, including the reset state

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - No LedgerView, no randomness, all inputs explicit
   - Raise InsufficientContribution / Unauthorized / EmptyPool

3. ADAPTER FUNCTIONS (load_lottery, to_state_dict):
   - load_lottery() is the only place that reads a lottery from a LedgerView
   - The pot is the contract address's balance of the lottery currency

4. CONVENIENCE FUNCTIONS (compute_*):
   - Load, calculate, and build the PendingTransaction to submit

Storage layout (unit state):
    address, manager, currency, minimum_entry   - terms
    players, round, last_winner, last_prize     - round state
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Any, List, Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType, Numeric,
    InsufficientContribution, Unauthorized, EmptyPool,
    NATIVE_CURRENCY, UNIT_TYPE_LOTTERY,
    build_transaction, no_transfer_rule, to_wei,
    _freeze_state,
)
from ..randomness import RandomnessSource


# Default minimum entry: 0.01 ether.
MINIMUM_ENTRY = to_wei("0.01", "ether")

EVENT_ENTER = "ENTER"
EVENT_PICK_WINNER = "PICK_WINNER"
EVENT_DEPLOY = "DEPLOY"


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LotteryTerms:
    """Fixed at deployment: where the lottery lives and who runs it."""
    address: str
    manager: str
    currency: str
    minimum_entry: Decimal


@dataclass(frozen=True, slots=True)
class LotteryState:
    """
    Snapshot of a lottery between two operations.

    players is ordered by entry; the same account appears once per entry.
    balance is the pot in the smallest unit of the lottery currency.
    """
    players: Tuple[str, ...] = ()
    balance: Decimal = Decimal("0")
    round: int = 0
    last_winner: Optional[str] = None
    last_prize: Optional[Decimal] = None

    def __post_init__(self):
        if not isinstance(self.players, tuple):
            object.__setattr__(self, 'players', tuple(self.players))
        if not isinstance(self.balance, Decimal):
            object.__setattr__(self, 'balance', Decimal(str(self.balance)))


@dataclass(frozen=True, slots=True)
class DrawResult:
    """Outcome of a draw: who won, from which slot, how much, and the reset state."""
    winner: str
    winner_index: int
    prize: Decimal
    state: LotteryState


# ============================================================================
# HELPERS
# ============================================================================

def _as_wei(value: Numeric, name: str = "value") -> Decimal:
    """Validate a wei amount: a finite, non-negative whole number."""
    if isinstance(value, float):
        raise ValueError(f"{name} must be int, str or Decimal wei, got float {value!r}")
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if not amount.is_finite():
        raise ValueError(f"{name} must be finite, got {value}")
    if amount != amount.to_integral_value():
        raise ValueError(f"{name} must be a whole number of wei, got {value}")
    if amount < 0:
        raise ValueError(f"{name} cannot be negative, got {value}")
    return amount.quantize(Decimal(1))


def _check_draw(terms: LotteryTerms, state: LotteryState, caller: str) -> None:
    """Authorization is checked before the entrant list."""
    if caller != terms.manager:
        raise Unauthorized(f"{caller} is not the manager of lottery {terms.address}")
    if not state.players:
        raise EmptyPool(f"lottery {terms.address} has no entrants")


# ============================================================================
# ADAPTERS
# ============================================================================

def load_lottery(view: LedgerView, symbol: str) -> Tuple[LotteryTerms, LotteryState]:
    """
    Load a lottery from ledger state as typed frozen dataclasses.

    Example:
        terms, state = load_lottery(view, address)
        state = calculate_entry(terms, state, "0xabc...", to_wei("0.02"))
    """
    raw = view.get_unit_state(symbol)

    terms = LotteryTerms(
        address=raw['address'],
        manager=raw['manager'],
        currency=raw.get('currency', NATIVE_CURRENCY),
        minimum_entry=Decimal(str(raw.get('minimum_entry', MINIMUM_ENTRY))),
    )
    last_prize = raw.get('last_prize')
    state = LotteryState(
        players=tuple(raw.get('players', ())),
        balance=view.get_balance(terms.address, terms.currency),
        round=raw.get('round', 0),
        last_winner=raw.get('last_winner'),
        last_prize=Decimal(str(last_prize)) if last_prize is not None else None,
    )
    return terms, state


def to_state_dict(terms: LotteryTerms, state: LotteryState) -> Dict[str, Any]:
    """
    Convert typed dataclasses back to unit state for ledger storage.

    The pot is not stored: it is the contract address's balance.
    """
    return {
        'address': terms.address,
        'manager': terms.manager,
        'currency': terms.currency,
        'minimum_entry': terms.minimum_entry,
        'players': list(state.players),
        'round': state.round,
        'last_winner': state.last_winner,
        'last_prize': state.last_prize,
    }


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_entry(
    terms: LotteryTerms,
    state: LotteryState,
    caller: str,
    value: Numeric,
) -> LotteryState:
    """
    Apply one entry.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Returns:
        New state with caller appended and value added to the pot.

    Raises:
        InsufficientContribution: value below terms.minimum_entry.
        ValueError: empty caller, or value not a non-negative whole number of wei.
    """
    if not caller or not caller.strip():
        raise ValueError("caller cannot be empty")
    amount = _as_wei(value)
    if amount < terms.minimum_entry:
        raise InsufficientContribution(
            f"entry of {amount} {terms.currency} is below the minimum of "
            f"{terms.minimum_entry} {terms.currency}"
        )
    return replace(
        state,
        players=state.players + (caller,),
        balance=state.balance + amount,
    )


def calculate_draw(
    terms: LotteryTerms,
    state: LotteryState,
    caller: str,
    index: int,
) -> DrawResult:
    """
    Pay the whole pot to the entrant at `index` and reset the lottery.

    PURE FUNCTION - the index comes from a RandomnessSource chosen by the caller.

    Raises:
        Unauthorized: caller is not the manager.
        EmptyPool: nobody has entered.
        ValueError: index outside the entrant list.
    """
    _check_draw(terms, state, caller)
    if not 0 <= index < len(state.players):
        raise ValueError(
            f"winner index {index} out of range for {len(state.players)} entrants"
        )
    winner = state.players[index]
    prize = state.balance
    reset = LotteryState(
        players=(),
        balance=Decimal("0"),
        round=state.round + 1,
        last_winner=winner,
        last_prize=prize,
    )
    return DrawResult(winner=winner, winner_index=index, prize=prize, state=reset)


# ============================================================================
# UNIT CREATION
# ============================================================================

def create_lottery_unit(
    address: str,
    manager: str,
    currency: str = NATIVE_CURRENCY,
    minimum_entry: Numeric = MINIMUM_ENTRY,
) -> Unit:
    """
    Create a lottery contract unit.

    The unit's symbol is the contract address; the pot is held by the wallet
    of the same name. The unit itself is never held or transferred.

    Raises:
        ValueError: empty address/manager/currency or invalid minimum_entry.

    Example:
        unit = create_lottery_unit("0x5b1869d9...", manager="0x90f8bf6a...")
    """
    if not address or not address.strip():
        raise ValueError("address cannot be empty")
    if not manager or not manager.strip():
        raise ValueError("manager cannot be empty")
    if not currency or not currency.strip():
        raise ValueError("currency cannot be empty")
    if address == manager:
        raise ValueError("address and manager must be different")
    minimum = _as_wei(minimum_entry, "minimum_entry")

    terms = LotteryTerms(address=address, manager=manager, currency=currency, minimum_entry=minimum)
    return Unit(
        symbol=address,
        name=f"Lottery {address[:10]}",
        unit_type=UNIT_TYPE_LOTTERY,
        min_balance=Decimal("0"),
        max_balance=Decimal("0"),
        decimal_places=0,
        transfer_rule=no_transfer_rule,
        _frozen_state=_freeze_state(to_state_dict(terms, LotteryState())),
    )


def compute_deployment(
    view: LedgerView,
    address: str,
    manager: str,
    currency: str = NATIVE_CURRENCY,
    minimum_entry: Numeric = MINIMUM_ENTRY,
) -> PendingTransaction:
    """
    Build the transaction that creates a lottery at `address`.

    The wallet for `address` must be registered before execution.
    """
    unit = create_lottery_unit(address, manager, currency, minimum_entry)
    origin = TransactionOrigin(OriginType.DEPLOYMENT, manager, address, EVENT_DEPLOY)
    return build_transaction(view, [], origin=origin, units_to_create=(unit,))


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def compute_enter(
    view: LedgerView,
    symbol: str,
    player: str,
    value: Numeric,
) -> PendingTransaction:
    """
    Build the transaction for `player` entering with `value` wei.

    Returns:
        PendingTransaction containing:
        - Move of value from player to the contract address (if value > 0)
        - State change appending player to the entrant list

    Raises:
        InsufficientContribution: value below the minimum entry. Nothing is
        built, so nothing can be applied.
    """
    terms, state = load_lottery(view, symbol)
    new_state = calculate_entry(terms, state, player, value)
    amount = new_state.balance - state.balance

    moves = []
    if amount > 0:
        moves.append(Move(
            quantity=amount,
            unit_symbol=terms.currency,
            source=player,
            dest=terms.address,
            contract_id=f'enter_{symbol}',
        ))

    old_raw = view.get_unit_state(symbol)
    new_raw = {**old_raw, **to_state_dict(terms, new_state)}
    state_changes = [UnitStateChange(unit=symbol, old_state=old_raw, new_state=new_raw)]
    origin = TransactionOrigin(OriginType.USER_ACTION, player, symbol, EVENT_ENTER)

    return build_transaction(view, moves, state_changes, origin=origin)


def compute_pick_winner(
    view: LedgerView,
    symbol: str,
    caller: str,
    randomness: RandomnessSource,
) -> PendingTransaction:
    """
    Build the transaction that pays the pot to a randomly chosen entrant.

    The randomness source is consulted only after the caller is authorized and
    the entrant list is known to be non-empty.

    Returns:
        PendingTransaction containing:
        - Move of the whole pot from the contract address to the winner
          (omitted when the pot is zero)
        - State change clearing the entrant list and advancing the round

    Raises:
        Unauthorized: caller is not the manager.
        EmptyPool: nobody has entered.
    """
    terms, state = load_lottery(view, symbol)
    _check_draw(terms, state, caller)

    index = randomness.select_index(view, state.players)
    result = calculate_draw(terms, state, caller, index)

    moves = []
    if result.prize > 0:
        moves.append(Move(
            quantity=result.prize,
            unit_symbol=terms.currency,
            source=terms.address,
            dest=result.winner,
            contract_id=f'prize_{symbol}',
        ))

    old_raw = view.get_unit_state(symbol)
    new_raw = {**old_raw, **to_state_dict(terms, result.state)}
    state_changes = [UnitStateChange(unit=symbol, old_state=old_raw, new_state=new_raw)]
    origin = TransactionOrigin(OriginType.USER_ACTION, caller, symbol, EVENT_PICK_WINNER)

    return build_transaction(view, moves, state_changes, origin=origin)


# ============================================================================
# READ-ONLY QUERIES
# ============================================================================

def get_players(view: LedgerView, symbol: str) -> List[str]:
    """Return the entrant list, first entrant first."""
    return list(view.get_unit_state(symbol).get('players', []))


def get_player(view: LedgerView, symbol: str, index: int) -> str:
    """
    Return the entrant at `index`.

    Raises:
        IndexError: index outside the entrant list (negative indices included).
    """
    players = get_players(view, symbol)
    if not 0 <= index < len(players):
        raise IndexError(f"player index {index} out of range for {len(players)} entrants")
    return players[index]


def get_manager(view: LedgerView, symbol: str) -> str:
    return view.get_unit_state(symbol)['manager']


def get_pot(view: LedgerView, symbol: str) -> Decimal:
    _, state = load_lottery(view, symbol)
    return state.balance


# ============================================================================
# TRANSACT
# ============================================================================

def transact(
    view: LedgerView,
    symbol: str,
    event_type: str,
    **kwargs
) -> PendingTransaction:
    """
    Generate the transaction for a lottery event.

    Args:
        view: Read-only ledger access
        symbol: Lottery address
        event_type: Type of event:
            - ENTER: requires 'player' and 'value'
            - PICK_WINNER: requires 'caller' and 'randomness'
        **kwargs: Event-specific parameters

    Example:
        tx = transact(view, address, "ENTER", player=alice, value=to_wei("0.02"))
        tx = transact(view, address, "PICK_WINNER", caller=manager,
                      randomness=SeededRandomness(7))
    """
    if event_type == EVENT_ENTER:
        player = kwargs.get('player')
        value = kwargs.get('value')
        if player is None:
            raise ValueError(f"Missing 'player' parameter for ENTER event on {symbol}")
        if value is None:
            raise ValueError(f"Missing 'value' parameter for ENTER event on {symbol}")
        return compute_enter(view, symbol, player, value)

    elif event_type == EVENT_PICK_WINNER:
        caller = kwargs.get('caller')
        randomness = kwargs.get('randomness')
        if caller is None:
            raise ValueError(f"Missing 'caller' parameter for PICK_WINNER event on {symbol}")
        if randomness is None:
            raise ValueError(f"Missing 'randomness' parameter for PICK_WINNER event on {symbol}")
        return compute_pick_winner(view, symbol, caller, randomness)

    else:
        raise ValueError(f"Unknown event type '{event_type}' for lottery {symbol}")
