"""
vesting - Linear Vesting-Schedule Ledger

Locks a pool of native coin or fungible token against a set of beneficiaries
and releases it linearly over time, with cliffs, slice quantization,
revocation and owner withdrawal of unallocated value.

Usage:
    from decimal import Decimal
    from vesting import (
        Ledger, Move, build_transaction, native_coin, create_coin_vesting,
        SYSTEM_WALLET,
    )

    ledger = Ledger("main", initial_time=1_700_000_000, verbose=False)
    ledger.register_unit(native_coin("ETH", "Ether"))
    ledger.register_wallet("admin")
    ledger.register_wallet("alice")

    engine = create_coin_vesting(ledger, owner="admin")

    # Fund the pool via SYSTEM_WALLET (proper issuance)
    ledger.execute(build_transaction(ledger, [
        Move(Decimal(100), "ETH", SYSTEM_WALLET, "coin_vesting", "funding")
    ]))

    schedule_id = engine.create_vesting_schedule(
        "admin", "alice", start=ledger.now(), cliff=0, duration=1000,
        slice_period_seconds=1, revocable=True, amount=100,
    )
    ledger.advance_by(500)
    engine.release("alice", schedule_id, engine.compute_releasable_amount(schedule_id))
"""

# Core types
from .core import (
    LedgerView,
    Clock,
    ValueTransfer,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    ExecuteResult,
    native_coin,
    fungible_token,
    SYSTEM_WALLET,
    UNIT_TYPE_NATIVE,
    UNIT_TYPE_TOKEN,
    # Exceptions
    LedgerError,
    UnitNotRegistered,
    WalletNotRegistered,
    VestingError,
    InvalidDuration,
    InvalidSliceGranularity,
    CliffExceedsDuration,
    InvalidAmount,
    InsufficientUnallocatedFunds,
    NotInitialized,
    AlreadyExists,
    ScheduleRevoked,
    NotRevocable,
    Unauthorized,
    InsufficientVestedAmount,
    InsufficientWithdrawable,
    TransferFailed,
    ReentrancyViolation,
    IndexOutOfBounds,
)

# Ledger
from .ledger import Ledger, Savepoint

# Schedules
from .schedule import (
    VestingSchedule,
    compute_vesting_schedule_id,
    calculate_vested_amount,
    calculate_releasable_amount,
)
from .store import ScheduleStore

# Transfers
from .transfer import (
    LedgerValueTransfer,
    CoinTransfer,
    TokenTransfer,
)

# Engine
from .engine import (
    VestingEngine,
    VestingEvent,
    EventType,
    create_coin_vesting,
    create_token_vesting,
)

# Lifecycle
from .lifecycle import ReleaseLifecycle, FailedRelease

# Projections
from .projection import (
    vesting_curve,
    releasable_curve,
    unlock_calendar,
)

__all__ = [
    # Core
    'LedgerView', 'Clock', 'ValueTransfer',
    'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin', 'OriginType',
    'build_transaction', 'Unit', 'ExecuteResult',
    'native_coin', 'fungible_token',
    'SYSTEM_WALLET', 'UNIT_TYPE_NATIVE', 'UNIT_TYPE_TOKEN',
    # Exceptions
    'LedgerError', 'UnitNotRegistered', 'WalletNotRegistered',
    'VestingError', 'InvalidDuration', 'InvalidSliceGranularity', 'CliffExceedsDuration',
    'InvalidAmount', 'InsufficientUnallocatedFunds', 'NotInitialized', 'AlreadyExists',
    'ScheduleRevoked', 'NotRevocable', 'Unauthorized', 'InsufficientVestedAmount',
    'InsufficientWithdrawable', 'TransferFailed', 'ReentrancyViolation', 'IndexOutOfBounds',
    # Ledger
    'Ledger', 'Savepoint',
    # Schedules
    'VestingSchedule', 'compute_vesting_schedule_id',
    'calculate_vested_amount', 'calculate_releasable_amount',
    'ScheduleStore',
    # Transfers
    'LedgerValueTransfer', 'CoinTransfer', 'TokenTransfer',
    # Engine
    'VestingEngine', 'VestingEvent', 'EventType',
    'create_coin_vesting', 'create_token_vesting',
    # Lifecycle
    'ReleaseLifecycle', 'FailedRelease',
    # Projections
    'vesting_curve', 'releasable_curve', 'unlock_calendar',
]

__version__ = '1.0.0'
