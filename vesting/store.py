"""
store.py - Schedule Store

Authoritative mapping of schedule ids to VestingSchedule records plus the
derived indices the engine reads:
    - per-beneficiary id list (its length is the beneficiary's schedule count)
    - append-only global id list, in creation order
    - total_amount: value still earmarked by non-revoked schedules

The store does not enforce business rules; the engine owns invariant
preservation. What the store does guarantee is rollback: mutations made inside
an atomic() block are journaled and undone if the block raises.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from .core import AlreadyExists, NotInitialized, LedgerError
from .schedule import VestingSchedule


UndoEntry = Callable[[], None]


class ScheduleStore:
    """
    In-memory store of vesting schedules for one ledger instance.

    Starts empty with zero totals. Records are frozen dataclasses; an update
    replaces the record under its id.
    """

    def __init__(self):
        self._schedules: Dict[str, VestingSchedule] = {}
        self._ids_by_beneficiary: Dict[str, List[str]] = {}
        self._global_ids: List[str] = []
        self._total_amount: int = 0
        self._journal: Optional[List[UndoEntry]] = None

    # ========================================================================
    # READS
    # ========================================================================

    def contains(self, schedule_id: str) -> bool:
        return schedule_id in self._schedules

    def get(self, schedule_id: str) -> VestingSchedule:
        """
        Return the schedule stored under schedule_id.

        Raises:
            NotInitialized: If no schedule exists under that id
        """
        try:
            return self._schedules[schedule_id]
        except KeyError:
            raise NotInitialized(f"Vesting schedule {schedule_id} not initialized") from None

    def count(self) -> int:
        return len(self._global_ids)

    def count_for(self, beneficiary: str) -> int:
        return len(self._ids_by_beneficiary.get(beneficiary, ()))

    def ids_for(self, beneficiary: str) -> List[str]:
        return list(self._ids_by_beneficiary.get(beneficiary, ()))

    def id_at(self, index: int) -> str:
        return self._global_ids[index]

    def all_ids(self) -> List[str]:
        return list(self._global_ids)

    @property
    def total_amount(self) -> int:
        return self._total_amount

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def put(self, schedule_id: str, schedule: VestingSchedule) -> None:
        """
        Insert a new schedule and index it.

        Raises:
            AlreadyExists: If schedule_id is already present
        """
        if schedule_id in self._schedules:
            raise AlreadyExists(f"Vesting schedule {schedule_id} already exists")

        self._schedules[schedule_id] = schedule
        self._ids_by_beneficiary.setdefault(schedule.beneficiary, []).append(schedule_id)
        self._global_ids.append(schedule_id)

        def undo():
            del self._schedules[schedule_id]
            self._ids_by_beneficiary[schedule.beneficiary].pop()
            if not self._ids_by_beneficiary[schedule.beneficiary]:
                del self._ids_by_beneficiary[schedule.beneficiary]
            self._global_ids.pop()

        self._record(undo)

    def mutate(
        self,
        schedule_id: str,
        fn: Callable[[VestingSchedule], VestingSchedule],
    ) -> VestingSchedule:
        """
        Replace a schedule with fn(schedule) and return the new record.

        fn may only change `released` and `revoked`.

        Raises:
            NotInitialized: If no schedule exists under that id
            LedgerError: If fn changes an immutable field
        """
        previous = self.get(schedule_id)
        updated = fn(previous)
        if (
            updated.beneficiary != previous.beneficiary
            or updated.start != previous.start
            or updated.cliff != previous.cliff
            or updated.duration != previous.duration
            or updated.slice_period_seconds != previous.slice_period_seconds
            or updated.revocable != previous.revocable
            or updated.amount_total != previous.amount_total
        ):
            raise LedgerError(f"Immutable fields of schedule {schedule_id} cannot change")

        self._schedules[schedule_id] = updated

        def undo():
            self._schedules[schedule_id] = previous

        self._record(undo)
        return updated

    def adjust_total(self, delta: int) -> int:
        """Add delta to the earmarked total and return the new total."""
        previous = self._total_amount
        self._total_amount = previous + delta

        def undo():
            self._total_amount = previous

        self._record(undo)
        return self._total_amount

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        All-or-nothing block: if the body raises, every mutation it made is
        undone in reverse order and the exception propagates.

        Nested blocks join the outermost one.
        """
        if self._journal is not None:
            yield
            return

        self._journal = []
        try:
            yield
        except Exception:
            for undo in reversed(self._journal):
                undo()
            raise
        finally:
            self._journal = None

    def _record(self, undo: UndoEntry) -> None:
        if self._journal is not None:
            self._journal.append(undo)
