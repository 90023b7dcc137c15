"""
ledger.py - Double-Entry Ledger Holding Vesting Pools

The Ledger keeps wallet balances for the native coin and any fungible tokens.
A vesting pool is just a wallet here; the engine pays out of it through
ledger transactions, never by writing balances directly.

Key responsibilities:
    - Implements the LedgerView and Clock protocols
    - Applies a transaction's moves together or not at all
    - Logical time in integer seconds that only moves forward
    - Savepoints, so a payout whose recipient callback fails can be undone
      as a whole, including anything the callback itself moved
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, FrozenSet, List, Set, Tuple, Any

from .core import (
    # Types
    Move, Transaction, Unit,
    PendingTransaction,
    ExecuteResult,
    Positions,
    # Constants
    QUANTITY_EPSILON, SYSTEM_WALLET,
    # Exceptions
    LedgerError, UnitNotRegistered, WalletNotRegistered,
)


def _zero_balances(items=()) -> Dict[str, Decimal]:
    return defaultdict(lambda: Decimal("0"), items)


@dataclass(frozen=True, slots=True)
class Savepoint:
    """
    Copy of every piece of ledger state a transaction can touch.

    Time is not part of it: a restore never moves the clock backwards.
    """
    balances: Dict[str, Dict[str, Decimal]]
    positions_by_unit: Dict[str, Dict[str, Decimal]]
    registered_wallets: FrozenSet[str]
    seen_intent_ids: FrozenSet[str]
    log_length: int
    next_sequence: int


class Ledger:
    """
    Wallet balances, logical clock and transaction log for vesting pools.

    Passed to the vesting engine twice over: as its Clock, and (through a
    ValueTransfer) as the place pool value lives.

    Thread Safety:
        Not thread-safe. Serialize access, as the vesting engine does.

    Example:
        ledger = Ledger("main", initial_time=1_700_000_000)
        ledger.register_unit(native_coin("ETH", "Ether"))
        ledger.register_wallet("coin_vesting")

        ledger.execute(build_transaction(ledger, [
            Move(Decimal(100), "ETH", SYSTEM_WALLET, "coin_vesting", "funding")
        ]))
    """

    def __init__(
        self,
        name: str,
        initial_time: int = 0,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Args:
            name: Ledger identifier, used in execution ids
            initial_time: Starting time in seconds since the epoch
            verbose: Print a line for each applied or rejected transaction
            test_mode: Allow set_balance(), which bypasses double entry
        """
        self.name = name
        self.balances: Dict[str, Dict[str, Decimal]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self._current_time: int = int(initial_time)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # unit -> {wallet -> quantity}, non-zero entries only
        self._positions_by_unit: Dict[str, Dict[str, Decimal]] = defaultdict(dict)

        # Issuance source; exempt from balance limits
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = _zero_balances()

    # ========================================================================
    # LedgerView / Clock
    # ========================================================================

    @property
    def current_time(self) -> int:
        return self._current_time

    def now(self) -> int:
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, Decimal("0"))

    def get_positions(self, unit_symbol: str) -> Positions:
        """Non-zero holdings of a unit, keyed by wallet."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Net holdings of a unit over every wallet, the system wallet included.

        Summed in sorted wallet order so the result does not depend on set
        iteration order.
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            (self.balances[w].get(unit_symbol, Decimal("0")) for w in sorted(self.registered_wallets)),
            Decimal("0"),
        )

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Check that every unit nets to zero across all wallets.

        Value only enters circulation out of SYSTEM_WALLET, whose balance goes
        negative by the amount issued, so any non-zero net supply means a
        balance was written outside execute().

        Returns:
            {'valid': bool, 'supplies': {unit: net}, 'discrepancies': [...]}
        """
        supplies = {}
        discrepancies = []
        for unit_symbol in self.units:
            net = self.total_supply(unit_symbol)
            supplies[unit_symbol] = net
            if abs(net) > QUANTITY_EPSILON:
                discrepancies.append({'unit': unit_symbol, 'expected': Decimal("0"), 'actual': net})
        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # TIME
    # ========================================================================

    def advance_time(self, new_time: int) -> None:
        """
        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = int(new_time)

    def advance_by(self, seconds: int) -> None:
        self.advance_time(self._current_time + seconds)

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = _zero_balances()
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Overwrite a balance directly. Test mode only; breaks double entry.

        Raises:
            LedgerError: If the ledger was not created with test_mode=True
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is only available with test_mode=True; "
                "move value with build_transaction() and execute()"
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol, quantity)

    # ========================================================================
    # SAVEPOINTS
    # ========================================================================

    def savepoint(self) -> Savepoint:
        """
        Capture balances, registrations, idempotency keys and the log.

        Example:
            sp = ledger.savepoint()
            ledger.execute(payout)
            ...                      # recipient callback fails
            ledger.restore(sp)       # payout and callback moves are gone
        """
        return Savepoint(
            balances={w: dict(bals) for w, bals in self.balances.items()},
            positions_by_unit={u: dict(p) for u, p in self._positions_by_unit.items()},
            registered_wallets=frozenset(self.registered_wallets),
            seen_intent_ids=frozenset(self.seen_intent_ids),
            log_length=len(self.transaction_log),
            next_sequence=self._next_sequence,
        )

    def restore(self, savepoint: Savepoint) -> None:
        """
        Return to the state captured by savepoint().

        Everything executed since is discarded, log entries included. Units
        registered since are kept; the clock is left where it is.
        """
        if savepoint.log_length > len(self.transaction_log):
            raise LedgerError("Savepoint is newer than the ledger state")
        self.balances = {w: _zero_balances(bals) for w, bals in savepoint.balances.items()}
        self._positions_by_unit = defaultdict(dict, {
            u: dict(p) for u, p in savepoint.positions_by_unit.items()
        })
        self.registered_wallets = set(savepoint.registered_wallets)
        self.seen_intent_ids = set(savepoint.seen_intent_ids)
        del self.transaction_log[savepoint.log_length:]
        self._next_sequence = savepoint.next_sequence
        if self.verbose:
            print(f"RESTORED: {self.name} to sequence {savepoint.next_sequence}")

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Apply a pending transaction's moves together or not at all.

        A pending transaction whose intent_id was already applied is not
        applied again.

        Returns:
            APPLIED, ALREADY_APPLIED or REJECTED
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        reason = self._rejection_reason(pending)
        if reason:
            if self.verbose:
                print(f"REJECTED: {reason}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            moves=pending.moves,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=f"exec:{self.name}:{sequence:012d}:{self._current_time}",
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
        )

        for move in tx.moves:
            self._apply(move)

        # Audit trail is mandatory
        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        if self.verbose:
            print(f"APPLIED: {tx!r}")
        return ExecuteResult.APPLIED

    def _rejection_reason(self, pending: PendingTransaction) -> str:
        """Empty string if the transaction may be applied, else why not."""
        if pending.timestamp > self._current_time:
            return "future timestamp"

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return f"unit not registered: {move.unit_symbol}"
            for wallet in (move.source, move.dest):
                if wallet not in self.registered_wallets:
                    return f"wallet not registered: {wallet}"

        # Net effect per (wallet, unit), so intra-transaction moves can offset
        net: Dict[Tuple[str, str], Decimal] = {}
        for move in pending.moves:
            unit = self.units[move.unit_symbol]
            for key, sign in (((move.source, move.unit_symbol), -1), ((move.dest, move.unit_symbol), 1)):
                net[key] = unit.round(net.get(key, Decimal("0")) + sign * move.quantity)

        for (wallet, unit_symbol), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[unit_symbol]
            proposed = unit.round(self.balances[wallet][unit_symbol] + delta)
            if proposed < unit.min_balance:
                return f"{wallet} {unit_symbol}: {proposed} < min {unit.min_balance}"
            if proposed > unit.max_balance:
                return f"{wallet} {unit_symbol}: {proposed} > max {unit.max_balance}"

        return ""

    def _apply(self, move: Move) -> None:
        unit = self.units[move.unit_symbol]
        for wallet, sign in ((move.source, -1), (move.dest, 1)):
            updated = unit.round(self.balances[wallet][move.unit_symbol] + sign * move.quantity)
            self.balances[wallet][move.unit_symbol] = updated
            self._update_position_index(wallet, move.unit_symbol, updated)

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        if abs(quantity) > QUANTITY_EPSILON:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)
