"""
Units module - Factory and pure functions for contract units.

Currently one contract type:
- Lottery: accounts enter with a minimum contribution; the manager picks a
  winner who receives the whole pot

Unit factories and related functions are re-exported here for convenience.
"""

from .lottery import (
    MINIMUM_ENTRY,
    EVENT_ENTER,
    EVENT_PICK_WINNER,
    EVENT_DEPLOY,
    LotteryTerms,
    LotteryState,
    DrawResult,
    load_lottery,
    to_state_dict,
    calculate_entry,
    calculate_draw,
    create_lottery_unit,
    compute_deployment,
    compute_enter,
    compute_pick_winner,
    get_players,
    get_player,
    get_manager,
    get_pot,
    transact as lottery_transact,
)

__all__ = [
    'MINIMUM_ENTRY',
    'EVENT_ENTER',
    'EVENT_PICK_WINNER',
    'EVENT_DEPLOY',
    'LotteryTerms',
    'LotteryState',
    'DrawResult',
    'load_lottery',
    'to_state_dict',
    'calculate_entry',
    'calculate_draw',
    'create_lottery_unit',
    'compute_deployment',
    'compute_enter',
    'compute_pick_winner',
    'get_players',
    'get_player',
    'get_manager',
    'get_pot',
    'lottery_transact',
]
