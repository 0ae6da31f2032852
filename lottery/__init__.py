"""
lottery - Lottery Contract on a Simulated Value Ledger

A lottery contract (enter, pickWinner, getPlayers) running on an in-process
value ledger, with a chain client for deploying and calling it and a thin
solc wrapper for compiling the contract source.

Usage:
    from lottery import Chain, SeededRandomness, to_wei

    chain = Chain("dev", randomness=SeededRandomness(7), verbose=False)
    manager, alice, bob = chain.get_accounts()[:3]

    handle = chain.deploy("Lottery", sender=manager)
    chain.send(handle, "enter", sender=alice, value=to_wei("0.02"))
    chain.send(handle, "enter", sender=bob, value=to_wei("0.5"))
    chain.send(handle, "pickWinner", sender=manager)

    chain.call(handle, "getPlayers")   # []
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LotteryCondition,
    LedgerError,
    InsufficientFunds,
    BalanceConstraintViolation,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    TransactionRejected,
    CompilationError,
    LotteryError,
    InsufficientContribution,
    Unauthorized,
    EmptyPool,
    no_transfer_rule,
    native_currency,
    to_wei,
    from_wei,
    SYSTEM_WALLET,
    NATIVE_CURRENCY,
    UNIT_TYPE_CURRENCY,
    UNIT_TYPE_LOTTERY,
    QUANTITY_EPSILON,
)

# Ledger
from .ledger import Ledger

# Randomness
from .randomness import RandomnessSource, SeededRandomness, LedgerEntropy

# Lottery contract
from .units.lottery import (
    MINIMUM_ENTRY,
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

# Compilation
from .compile import (
    CompiledContract,
    compile_contract,
    ensure_solc,
    interface_methods,
    read_source,
    SOLC_VERSION,
    LOTTERY_SOURCE,
)

# Chain client
from .chain import (
    Chain,
    ContractHandle,
    Receipt,
    derive_address,
    DEFAULT_ACCOUNTS,
    DEFAULT_ACCOUNT_BALANCE,
)

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction', 'empty_pending_transaction',
    'Unit', 'UnitStateChange', 'ExecuteResult', 'LotteryCondition',
    'no_transfer_rule', 'native_currency', 'to_wei', 'from_wei',
    'SYSTEM_WALLET', 'NATIVE_CURRENCY', 'UNIT_TYPE_CURRENCY', 'UNIT_TYPE_LOTTERY',
    'QUANTITY_EPSILON',
    # Exceptions
    'LedgerError', 'InsufficientFunds', 'BalanceConstraintViolation',
    'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered',
    'TransactionRejected', 'CompilationError',
    'LotteryError', 'InsufficientContribution', 'Unauthorized', 'EmptyPool',
    # Ledger
    'Ledger',
    # Randomness
    'RandomnessSource', 'SeededRandomness', 'LedgerEntropy',
    # Lottery
    'MINIMUM_ENTRY', 'LotteryTerms', 'LotteryState', 'DrawResult',
    'load_lottery', 'to_state_dict', 'calculate_entry', 'calculate_draw',
    'create_lottery_unit', 'compute_deployment', 'compute_enter', 'compute_pick_winner',
    'get_players', 'get_player', 'get_manager', 'get_pot', 'lottery_transact',
    # Compilation
    'CompiledContract', 'compile_contract', 'ensure_solc', 'interface_methods',
    'read_source', 'SOLC_VERSION', 'LOTTERY_SOURCE',
    # Chain
    'Chain', 'ContractHandle', 'Receipt', 'derive_address',
    'DEFAULT_ACCOUNTS', 'DEFAULT_ACCOUNT_BALANCE',
]

__version__ = '1.0.0'
