"""
engine.py - Vesting Engine

The VestingEngine locks a pool of value against a set of beneficiaries and
releases it linearly over time. It is the only component that changes
schedule state; value leaves the pool exclusively through its ValueTransfer.

Every mutating call follows the same path:
    1. Reject re-entrant calls
    2. Read the current time from the Clock
    3. Validate preconditions against the ScheduleStore (no mutation yet)
    4. Stage the accounting update inside ScheduleStore.atomic()
    5. Perform the outbound transfer; if it raises TransferFailed the staged
       update is rolled back and the error propagates

The accounting update happens before the transfer, so a transfer that calls
back into the engine cannot observe funds that are already on their way out.

Global invariants:
    0 <= released <= amount_total                      (every schedule)
    total_amount == sum(amount_total - released)       (non-revoked schedules)
    total_amount <= pool_balance()
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional

from .core import (
    Clock, ValueTransfer,
    InvalidDuration, InvalidSliceGranularity, CliffExceedsDuration, InvalidAmount,
    InsufficientUnallocatedFunds, ScheduleRevoked, NotRevocable, Unauthorized,
    InsufficientVestedAmount, InsufficientWithdrawable, ReentrancyViolation,
    IndexOutOfBounds, NotInitialized,
)
from .ledger import Ledger
from .schedule import (
    VestingSchedule,
    compute_vesting_schedule_id,
    calculate_releasable_amount,
)
from .store import ScheduleStore
from .transfer import CoinTransfer, TokenTransfer


class EventType(Enum):
    """Kinds of engine operations recorded in the event log."""
    CREATED = "created"
    RELEASED = "released"
    REVOKED = "revoked"
    WITHDRAWN = "withdrawn"


@dataclass(frozen=True, slots=True)
class VestingEvent:
    """
    Audit record of a completed engine operation.

    Attributes:
        event_type: What happened
        timestamp: Clock time of the operation
        caller: Identity that invoked the operation
        amount: Value involved (committed, released, forfeited or withdrawn)
        schedule_id: Affected schedule (None for withdrawals)
        beneficiary: Schedule beneficiary (None for withdrawals)
    """
    event_type: EventType
    timestamp: int
    caller: str
    amount: int
    schedule_id: Optional[str] = None
    beneficiary: Optional[str] = None


class VestingEngine:
    """
    Linear vesting-schedule ledger over a single value pool.

    Thread Safety:
        Calls are serialized by the re-entrancy guard only. A multi-threaded
        host must wrap the engine in its own lock.

    Example:
        engine = VestingEngine(owner="admin", clock=ledger, transfer=transfer)
        schedule_id = engine.create_vesting_schedule(
            "admin", "alice", start=t0, cliff=0, duration=1000,
            slice_period_seconds=1, revocable=True, amount=100,
        )
        ledger.advance_time(t0 + 500)
        engine.compute_releasable_amount(schedule_id)   # 50
        engine.release("alice", schedule_id, 50)
    """

    def __init__(
        self,
        owner: str,
        clock: Clock,
        transfer: ValueTransfer,
        store: Optional[ScheduleStore] = None,
        verbose: bool = False,
    ):
        if not owner or not owner.strip():
            raise ValueError("owner cannot be empty")
        self.owner = owner
        self.clock = clock
        self.transfer = transfer
        self.store = store if store is not None else ScheduleStore()
        self.verbose = verbose
        self.event_log: List[VestingEvent] = []
        self._entered = False

    # ========================================================================
    # GUARDS
    # ========================================================================

    @contextmanager
    def _non_reentrant(self) -> Iterator[None]:
        if self._entered:
            raise ReentrancyViolation("Re-entrant call into vesting engine rejected")
        self._entered = True
        try:
            yield
        finally:
            self._entered = False

    def _only_owner(self, caller: str, action: str) -> None:
        if caller != self.owner:
            raise Unauthorized(f"Only the owner can {action}, caller is {caller}")

    def _log(self, event: VestingEvent) -> None:
        self.event_log.append(event)
        if self.verbose:
            target = f" {event.beneficiary} [{event.schedule_id[:16]}]" if event.schedule_id else ""
            print(f"{event.event_type.name}: {event.amount}{target} by {event.caller} at {event.timestamp}")

    # ========================================================================
    # MUTATING OPERATIONS
    # ========================================================================

    def create_vesting_schedule(
        self,
        caller: str,
        beneficiary: str,
        start: int,
        cliff: int,
        duration: int,
        slice_period_seconds: int,
        revocable: bool,
        amount: int,
    ) -> str:
        """
        Commit `amount` of unallocated pool value to a new schedule.

        Args:
            caller: Must be the owner
            beneficiary: Wallet that will receive released value
            start: Absolute start time in seconds
            cliff: Cliff offset from start, in seconds
            duration: Vesting span in seconds
            slice_period_seconds: Release granularity in seconds
            revocable: Whether the owner may later revoke
            amount: Total value committed

        Returns:
            The new schedule id

        Raises:
            Unauthorized, ValueError (empty beneficiary, negative start or
            cliff), InvalidDuration, InvalidSliceGranularity,
            CliffExceedsDuration, InvalidAmount, InsufficientUnallocatedFunds
            (checked in that order)
        """
        with self._non_reentrant():
            self._only_owner(caller, "create vesting schedules")
            if not beneficiary or not beneficiary.strip():
                raise ValueError("beneficiary cannot be empty")
            if start < 0:
                raise ValueError(f"start must be >= 0, got {start}")
            if cliff < 0:
                raise ValueError(f"cliff must be >= 0, got {cliff}")
            if duration <= 0:
                raise InvalidDuration(f"duration must be > 0, got {duration}")
            if slice_period_seconds < 1:
                raise InvalidSliceGranularity(
                    f"slice_period_seconds must be >= 1, got {slice_period_seconds}"
                )
            if duration < cliff:
                raise CliffExceedsDuration(f"duration {duration} must be >= cliff {cliff}")
            if amount <= 0:
                raise InvalidAmount(f"amount must be > 0, got {amount}")
            withdrawable = self.get_withdrawable_amount()
            if withdrawable < amount:
                raise InsufficientUnallocatedFunds(
                    f"Cannot create vesting schedule of {amount}: only {withdrawable} unallocated"
                )

            schedule_id = self.compute_next_vesting_schedule_id_for_holder(beneficiary)
            schedule = VestingSchedule(
                beneficiary=beneficiary,
                cliff=start + cliff,
                start=start,
                duration=duration,
                slice_period_seconds=slice_period_seconds,
                revocable=revocable,
                amount_total=amount,
            )
            with self.store.atomic():
                self.store.put(schedule_id, schedule)
                self.store.adjust_total(amount)

            self._log(VestingEvent(
                EventType.CREATED, self.clock.now(), caller, amount, schedule_id, beneficiary
            ))
            return schedule_id

    def compute_releasable_amount(self, schedule_id: str) -> int:
        """
        Vested-but-unreleased value of a schedule at the current time.

        Raises:
            NotInitialized: If the schedule does not exist
            ScheduleRevoked: If the schedule has been revoked
        """
        schedule = self._get_active(schedule_id)
        return calculate_releasable_amount(schedule, self.clock.now())

    def release(self, caller: str, schedule_id: str, amount: int) -> None:
        """
        Pay `amount` of vested value to the schedule's beneficiary.

        Raises:
            NotInitialized, Unauthorized, ScheduleRevoked, InvalidAmount,
            InsufficientVestedAmount, TransferFailed
        """
        with self._non_reentrant():
            schedule = self.store.get(schedule_id)
            if caller not in (schedule.beneficiary, self.owner):
                raise Unauthorized(
                    f"Only beneficiary and owner can release vested value, caller is {caller}"
                )
            if schedule.revoked:
                raise ScheduleRevoked(f"Vesting schedule {schedule_id} revoked")
            if amount <= 0:
                raise InvalidAmount(f"release amount must be > 0, got {amount}")
            now = self.clock.now()
            releasable = calculate_releasable_amount(schedule, now)
            if amount > releasable:
                raise InsufficientVestedAmount(
                    f"Cannot release {amount}: only {releasable} vested and unreleased"
                )

            with self.store.atomic():
                self._stage_release(schedule_id, amount)
                self.transfer.send(schedule.beneficiary, amount)

            self._log(VestingEvent(
                EventType.RELEASED, now, caller, amount, schedule_id, schedule.beneficiary
            ))

    def revoke(self, caller: str, schedule_id: str) -> None:
        """
        Revoke a schedule: pay out everything already vested, then return the
        unvested remainder to the owner-withdrawable pool.

        Raises:
            Unauthorized, NotInitialized, ScheduleRevoked, NotRevocable,
            TransferFailed
        """
        with self._non_reentrant():
            self._only_owner(caller, "revoke vesting schedules")
            schedule = self.store.get(schedule_id)
            if schedule.revoked:
                raise ScheduleRevoked(f"Vesting schedule {schedule_id} revoked")
            if not schedule.revocable:
                raise NotRevocable(f"Vesting schedule {schedule_id} is not revocable")
            now = self.clock.now()
            releasable = calculate_releasable_amount(schedule, now)

            with self.store.atomic():
                if releasable > 0:
                    schedule = self._stage_release(schedule_id, releasable)
                remainder = schedule.amount_total - schedule.released
                self.store.adjust_total(-remainder)
                self.store.mutate(schedule_id, VestingSchedule.as_revoked)
                if releasable > 0:
                    self.transfer.send(schedule.beneficiary, releasable)

            if releasable > 0:
                self._log(VestingEvent(
                    EventType.RELEASED, now, caller, releasable, schedule_id, schedule.beneficiary
                ))
            self._log(VestingEvent(
                EventType.REVOKED, now, caller, remainder, schedule_id, schedule.beneficiary
            ))

    def withdraw(self, caller: str, amount: int) -> None:
        """
        Send unallocated pool value to the owner.

        Raises:
            Unauthorized, InvalidAmount, InsufficientWithdrawable, TransferFailed
        """
        with self._non_reentrant():
            self._only_owner(caller, "withdraw")
            if amount <= 0:
                raise InvalidAmount(f"withdraw amount must be > 0, got {amount}")
            withdrawable = self.get_withdrawable_amount()
            if amount > withdrawable:
                raise InsufficientWithdrawable(
                    f"Cannot withdraw {amount}: only {withdrawable} withdrawable"
                )
            self.transfer.send(self.owner, amount)
            self._log(VestingEvent(EventType.WITHDRAWN, self.clock.now(), caller, amount))

    def _stage_release(self, schedule_id: str, amount: int) -> VestingSchedule:
        updated = self.store.mutate(schedule_id, lambda s: s.with_release(amount))
        self.store.adjust_total(-amount)
        return updated

    def _get_active(self, schedule_id: str) -> VestingSchedule:
        schedule = self.store.get(schedule_id)
        if schedule.revoked:
            raise ScheduleRevoked(f"Vesting schedule {schedule_id} revoked")
        return schedule

    # ========================================================================
    # READ ACCESSORS
    # ========================================================================

    def get_vesting_schedules_count(self) -> int:
        return self.store.count()

    def get_vesting_schedules_count_by_beneficiary(self, beneficiary: str) -> int:
        return self.store.count_for(beneficiary)

    def get_vesting_schedules_total_amount(self) -> int:
        return self.store.total_amount

    def get_withdrawable_amount(self) -> int:
        """Pool value not earmarked by any non-revoked schedule."""
        return self.transfer.pool_balance() - self.store.total_amount

    def get_vesting_schedule(self, schedule_id: str) -> VestingSchedule:
        return self.store.get(schedule_id)

    def get_vesting_schedule_by_address_and_index(self, beneficiary: str, index: int) -> VestingSchedule:
        return self.store.get(
            self.compute_vesting_schedule_id_for_address_and_index(beneficiary, index)
        )

    def get_vesting_id_at_index(self, index: int) -> str:
        if index < 0 or index >= self.store.count():
            raise IndexOutOfBounds(
                f"Index {index} out of bounds for {self.store.count()} vesting schedules"
            )
        return self.store.id_at(index)

    def get_last_vesting_schedule_for_holder(self, beneficiary: str) -> VestingSchedule:
        count = self.store.count_for(beneficiary)
        if count == 0:
            raise NotInitialized(f"No vesting schedules for {beneficiary}")
        return self.get_vesting_schedule_by_address_and_index(beneficiary, count - 1)

    def get_vesting_schedule_ids_for_beneficiary(self, beneficiary: str) -> List[str]:
        return self.store.ids_for(beneficiary)

    def compute_vesting_schedule_id_for_address_and_index(self, beneficiary: str, index: int) -> str:
        return compute_vesting_schedule_id(beneficiary, index)

    def compute_next_vesting_schedule_id_for_holder(self, beneficiary: str) -> str:
        return compute_vesting_schedule_id(beneficiary, self.store.count_for(beneficiary))


# ============================================================================
# VARIANT FACTORIES
# ============================================================================

def create_coin_vesting(
    ledger: Ledger,
    owner: str,
    pool_wallet: str = "coin_vesting",
    coin_symbol: str = "ETH",
    verbose: bool = False,
) -> VestingEngine:
    """
    Vesting engine over a native-coin pool, with the ledger as its clock.

    The pool wallet is registered if the ledger does not know it yet.
    """
    if not ledger.is_registered(pool_wallet):
        ledger.register_wallet(pool_wallet)
    return VestingEngine(owner, ledger, CoinTransfer(ledger, pool_wallet, coin_symbol), verbose=verbose)


def create_token_vesting(
    ledger: Ledger,
    owner: str,
    token_symbol: str,
    pool_wallet: str = "token_vesting",
    verbose: bool = False,
) -> VestingEngine:
    """Vesting engine over a fungible-token pool, with the ledger as its clock."""
    if not ledger.is_registered(pool_wallet):
        ledger.register_wallet(pool_wallet)
    return VestingEngine(owner, ledger, TokenTransfer(ledger, pool_wallet, token_symbol), verbose=verbose)
