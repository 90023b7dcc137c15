"""
lifecycle.py - Automatic Release Driver

Steps a ledger's clock through a sequence of timestamps and, at each step,
releases everything that has become releasable on every live schedule.

Execution order each step():
1. Advance ledger time
2. Walk schedules in creation order (deterministic)
3. Release the full releasable amount of each non-revoked schedule

A payout that fails (a receive hook refusing the coin, say) leaves its
schedule untouched and is recorded in `failures`; the walk carries on with
the next schedule and the schedule is retried on the next step.

The engine's event log is the audit trail - no separate status tracking needed.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .core import TransferFailed
from .engine import VestingEngine, VestingEvent, EventType
from .ledger import Ledger


@dataclass(frozen=True, slots=True)
class FailedRelease:
    """A release attempted by the lifecycle whose payout did not go through."""
    schedule_id: str
    beneficiary: str
    timestamp: int
    amount: int
    reason: str


class ReleaseLifecycle:
    """
    Drives time-based releases for a vesting engine whose clock is a Ledger.

    Releases are made on the owner's authority, so beneficiaries receive
    vested value without having to claim it.
    """

    def __init__(self, engine: VestingEngine, ledger: Ledger, operator: Optional[str] = None):
        """
        Args:
            engine: Engine to release from
            ledger: Ledger whose clock the engine reads
            operator: Identity releasing on behalf of beneficiaries (default: engine owner)
        """
        if engine.clock is not ledger:
            raise ValueError("engine must read time from the ledger being stepped")
        self.engine = engine
        self.ledger = ledger
        self.operator = operator or engine.owner
        self.verbose = ledger.verbose
        self.failures: List[FailedRelease] = []

    def release_due(self) -> List[VestingEvent]:
        """Release every live schedule's releasable amount at the current time."""
        start = len(self.engine.event_log)
        for schedule_id in self.engine.store.all_ids():
            schedule = self.engine.get_vesting_schedule(schedule_id)
            if schedule.revoked:
                continue
            releasable = self.engine.compute_releasable_amount(schedule_id)
            if releasable <= 0:
                continue
            try:
                self.engine.release(self.operator, schedule_id, releasable)
            except TransferFailed as exc:
                self.failures.append(FailedRelease(
                    schedule_id=schedule_id,
                    beneficiary=schedule.beneficiary,
                    timestamp=self.ledger.current_time,
                    amount=releasable,
                    reason=str(exc),
                ))
                if self.verbose:
                    print(f"[LIFECYCLE] release of {releasable} to {schedule.beneficiary} failed: {exc}")
        released = [
            e for e in self.engine.event_log[start:]
            if e.event_type == EventType.RELEASED
        ]
        if self.verbose and released:
            print(f"[LIFECYCLE] {len(released)} releases at {self.ledger.current_time}")
        return released

    def step(self, timestamp: int) -> List[VestingEvent]:
        """Advance time to `timestamp` and release everything due."""
        self.ledger.advance_time(timestamp)
        return self.release_due()

    def run(self, timestamps: Sequence[int]) -> List[VestingEvent]:
        """Step through each timestamp in order and return all releases."""
        events: List[VestingEvent] = []
        for timestamp in timestamps:
            events.extend(self.step(timestamp))
        return events
