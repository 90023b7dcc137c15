"""
Core types and protocols for the vesting ledger.

This module provides the foundational data structures shared by the ledger and
the vesting engine:
1. Protocols: LedgerView, Clock and ValueTransfer (the engine's collaborators)
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError, VestingError and the vesting error taxonomy
4. Type aliases: Positions, BalanceMap
5. Unit factories: native_coin() and fungible_token()

Amounts are integer base units (wei-like). Inside the ledger they travel as
Decimal with zero decimal places, so no value is ever rounded up.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN, getcontext
from enum import Enum
import hashlib
from typing import (
    Dict, List, Set, Optional, Protocol, Tuple, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Base-unit amounts can be as large as a 256-bit unsigned integer
# (78 decimal digits). The context precision must cover that range so that
# integer Decimal arithmetic stays exact.
#
# PRECONDITION: No other code should modify the global Decimal context.
#
_VESTING_DECIMAL_CONTEXT = getcontext()
_VESTING_DECIMAL_CONTEXT.prec = 78
_VESTING_DECIMAL_CONTEXT.rounding = ROUND_DOWN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Unit type constants
UNIT_TYPE_NATIVE = "NATIVE"
UNIT_TYPE_TOKEN = "TOKEN"

# Quantities with absolute value below this threshold are treated as zero.
QUANTITY_EPSILON = Decimal("1e-12")

# Base-unit precision for both value kinds.
BASE_UNIT_DECIMAL_PLACES = 0


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Functions accepting a LedgerView parameter declare their read-only intent.
    The Ledger class implements this protocol but also provides mutation methods.
    """

    @property
    def current_time(self) -> int:
        """Return the current logical time of the ledger, in seconds."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Return the balance of a specific unit in a wallet."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


@runtime_checkable
class Clock(Protocol):
    """Source of the current time in integer seconds, non-decreasing across calls."""

    def now(self) -> int:
        ...


@runtime_checkable
class ValueTransfer(Protocol):
    """
    Outbound payment primitive for a vesting pool.

    send() either completes the payment or raises TransferFailed having moved
    nothing. pool_balance() reports the total value currently held by the pool.
    """

    def send(self, recipient: str, amount: int) -> None:
        ...

    def pool_balance(self) -> int:
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was successfully validated and applied to the ledger.
    ALREADY_APPLIED: Transaction ID was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation (registration, balance constraints
              or timestamp).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    CONTRACT = "contract"                 # Vesting pool payout
    SYSTEM = "system"                     # Issuance out of SYSTEM_WALLET


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


class VestingError(LedgerError):
    """Base exception for vesting engine failures."""
    pass


class InvalidDuration(VestingError):
    """Schedule duration must be > 0."""
    pass


class InvalidSliceGranularity(VestingError):
    """Slice period must be >= 1 second."""
    pass


class CliffExceedsDuration(VestingError):
    """Cliff offset must not exceed the schedule duration."""
    pass


class InvalidAmount(VestingError):
    """Amounts committed, released or withdrawn must be > 0."""
    pass


class InsufficientUnallocatedFunds(VestingError):
    """The pool does not hold enough unallocated value to back a new schedule."""
    pass


class NotInitialized(VestingError):
    """No schedule exists under the given identifier."""
    pass


class AlreadyExists(VestingError):
    """A schedule is already stored under the given identifier."""
    pass


class ScheduleRevoked(VestingError):
    """The schedule has been revoked and accepts no further operations."""
    pass


class NotRevocable(VestingError):
    """The schedule was created non-revocable."""
    pass


class Unauthorized(VestingError):
    """The caller is not allowed to perform the operation."""
    pass


class InsufficientVestedAmount(VestingError):
    """Requested release exceeds the currently releasable amount."""
    pass


class InsufficientWithdrawable(VestingError):
    """Requested withdrawal exceeds the pool value not earmarked by schedules."""
    pass


class TransferFailed(VestingError):
    """The outbound value transfer did not complete."""
    pass


class ReentrancyViolation(VestingError):
    """A mutating call re-entered the engine while another was in progress."""
    pass


class IndexOutOfBounds(VestingError):
    """Global schedule index is outside the recorded range."""
    pass


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the specific source (pool wallet, user ID, etc.)
        unit_symbol: Symbol of the unit moved (if applicable)
        event_type: Specific event within the source (e.g., "RELEASE", "WITHDRAW")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (must be finite and non-zero).
        unit_symbol: The symbol of the unit being transferred (e.g., "ETH", "TT").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the contract generating this move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError("Move quantity is effectively zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string representation.

    Decimal("1.0") and Decimal("1") both become "1".
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _compute_intent_id(moves: Tuple[Move, ...], origin: TransactionOrigin) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Based solely on the semantic content (moves and origin), never on
    timestamps. Used for idempotency checking.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (_normalize_decimal(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        content_parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for m in sorted_moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Attributes:
        moves: Tuple of value transfers between wallets
        origin: Who/what created this transaction and why
        timestamp: Ledger time (seconds) when this pending transaction was created
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: int
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            object.__setattr__(self, 'intent_id', _compute_intent_id(self.moves, self.origin))

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves."""
        return not self.moves

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves.

    Args:
        view: Read-only ledger view (provides current_time)
        moves: List of moves to include in the transaction
        origin: Transaction origin (defaults to SYSTEM when any move issues
            out of SYSTEM_WALLET, CONTRACT otherwise)

    Example:
        tx = build_transaction(ledger, [
            Move(Decimal(100), "ETH", SYSTEM_WALLET, "coin_vesting", "fund")
        ])
        ledger.execute(tx)
    """
    if origin is None:
        if any(m.source == SYSTEM_WALLET for m in moves):
            origin = TransactionOrigin(OriginType.SYSTEM, source_id=SYSTEM_WALLET)
        else:
            origin = TransactionOrigin(OriginType.CONTRACT, source_id="contract")

    return PendingTransaction(
        moves=tuple(moves),
        origin=origin,
        timestamp=view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger (for ordering)
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: int
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: int
    sequence_number: int

    def __post_init__(self):
        if not self.moves:
            raise ValueError("Transaction must have moves")

    def __repr__(self) -> str:
        moves = ", ".join(
            f"{m.quantity} {m.unit_symbol}: {m.source}→{m.dest}" for m in self.moves
        )
        return f"Transaction({self.exec_id}, {self.origin}, [{moves}])"


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a value kind held in the ledger.

    Attributes:
        symbol: Short identifier for the unit (e.g., "ETH", "TT").
        name: Human-readable name for the unit.
        unit_type: NATIVE or TOKEN.
        min_balance: Minimum allowed balance in any wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Number of decimal places kept (0 = integer base units).
        issuer: Wallet that issued the unit (tokens only).
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = BASE_UNIT_DECIMAL_PLACES
    issuer: Optional[str] = None

    def round(self, value: Decimal) -> Decimal:
        """
        Truncate a value to this unit's decimal precision.

        Returns the value unchanged if decimal_places is None.
        """
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        quantizer = Decimal(10) ** -self.decimal_places
        return value.quantize(quantizer, rounding=ROUND_DOWN)


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def native_coin(symbol: str, name: str) -> Unit:
    """
    Create the ledger's native coin.

    Balances are whole base units and can never go negative outside the
    system wallet.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_NATIVE,
    )


def fungible_token(symbol: str, name: str, issuer: str) -> Unit:
    """
    Create a fungible token unit.

    Args:
        symbol: Token ticker (e.g., "TT").
        name: Full token name (e.g., "TestToken").
        issuer: Wallet credited with the initial supply.
    """
    if not issuer or not issuer.strip():
        raise ValueError("issuer cannot be empty")
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_TOKEN,
        issuer=issuer,
    )
