"""
schedule.py - Vesting Schedule Records and the Linear Vesting Law

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASS (explicit inputs):
   - VestingSchedule: term sheet (beneficiary, cliff, start, duration, slice
     period, revocable, amount_total) plus lifecycle state (released, revoked).
     Every state change produces a NEW instance.

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take the schedule and the current time explicitly
   - No clock, no store, no hidden state

3. IDENTIFIERS:
   - compute_vesting_schedule_id(beneficiary, index) derives a schedule id
     from content alone, so ids are known before the schedule exists.

Key Formula (t = now):
    t < cliff                 -> vested = 0
    t >= start + duration     -> vested = amount_total
    otherwise                 -> elapsed = t - start
                                 vested_seconds = (elapsed // slice) * slice
                                 vested = amount_total * vested_seconds // duration
    releasable = max(vested - released, 0)

Integer division truncates, so the pool is never over-committed.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
import hashlib


# ============================================================================
# FROZEN DATACLASS
# ============================================================================

@dataclass(frozen=True, slots=True)
class VestingSchedule:
    """
    A single beneficiary's vesting commitment.

    Attributes:
        beneficiary: Wallet receiving released value
        cliff: Absolute time before which nothing vests (start + cliff offset)
        start: Absolute start time of vesting, in seconds
        duration: Total vesting span in seconds
        slice_period_seconds: Granularity at which vested value becomes releasable
        revocable: Whether the owner may revoke
        amount_total: Total value committed at creation
        released: Cumulative value already paid out
        revoked: Terminal flag set by revocation
    """
    beneficiary: str
    cliff: int
    start: int
    duration: int
    slice_period_seconds: int
    revocable: bool
    amount_total: int
    released: int = 0
    revoked: bool = False

    def __post_init__(self):
        if self.released < 0:
            raise ValueError(f"released cannot be negative, got {self.released}")
        if self.released > self.amount_total:
            raise ValueError(
                f"released {self.released} exceeds amount_total {self.amount_total}"
            )

    @property
    def cliff_offset(self) -> int:
        return self.cliff - self.start

    @property
    def end(self) -> int:
        """Time at which the schedule is fully vested."""
        return self.start + self.duration

    @property
    def unreleased(self) -> int:
        return self.amount_total - self.released

    def with_release(self, amount: int) -> VestingSchedule:
        return replace(self, released=self.released + amount)

    def as_revoked(self) -> VestingSchedule:
        return replace(self, revoked=True)


# ============================================================================
# IDENTIFIERS
# ============================================================================

def compute_vesting_schedule_id(beneficiary: str, index: int) -> str:
    """
    Deterministic schedule id for the index-th schedule of a beneficiary.

    The id is the SHA-256 of the packed pair (beneficiary, index), so the same
    inputs always give the same id and no lookup is needed to derive it.

    Example:
        >>> compute_vesting_schedule_id("alice", 0) == compute_vesting_schedule_id("alice", 0)
        True
    """
    if index < 0:
        raise ValueError(f"index must be non-negative, got {index}")
    packed = beneficiary.encode() + b"\x00" + index.to_bytes(32, "big")
    return hashlib.sha256(packed).hexdigest()


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def calculate_vested_amount(schedule: VestingSchedule, now: int) -> int:
    """
    Total value vested by time `now`, ignoring what has been released.

    Vesting accrues linearly but is only observable at slice boundaries.
    """
    if now < schedule.cliff:
        return 0
    if now >= schedule.end:
        return schedule.amount_total
    elapsed = now - schedule.start
    vested_seconds = (elapsed // schedule.slice_period_seconds) * schedule.slice_period_seconds
    return schedule.amount_total * vested_seconds // schedule.duration


def calculate_releasable_amount(schedule: VestingSchedule, now: int) -> int:
    """
    Vested-but-unreleased value at time `now`.

    Fully vested schedules return everything not yet released. Never negative.
    Revocation is not considered here; the engine rejects revoked schedules
    before calling this.
    """
    if now >= schedule.end:
        return schedule.amount_total - schedule.released
    return max(calculate_vested_amount(schedule, now) - schedule.released, 0)
