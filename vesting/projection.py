"""
projection.py - Vectorized Vesting Curves

Evaluates the linear vesting law over whole time grids for reporting and
unlock calendars. Times are int64 arrays; amounts are kept as Python ints
(object arrays) because base-unit amounts routinely exceed int64.

All results agree exactly with calculate_vested_amount() and
calculate_releasable_amount() evaluated point by point.
"""

from __future__ import annotations
from typing import List, Tuple, Union, Sequence

import numpy as np

from .schedule import VestingSchedule


# Type alias for scalar or array time inputs
Times = Union[int, Sequence[int], np.ndarray]


def _vested_flat(schedule: VestingSchedule, t: np.ndarray) -> np.ndarray:
    # t is 1-d int64; 0-d arrays would decay to scalars and lose the object dtype
    elapsed = t - schedule.start
    vested_seconds = (elapsed // schedule.slice_period_seconds) * schedule.slice_period_seconds
    vested = (vested_seconds.astype(object) * schedule.amount_total) // schedule.duration
    vested = np.where(t >= schedule.end, schedule.amount_total, vested)
    return np.where(t < schedule.cliff, 0, vested).astype(object)


def vesting_curve(schedule: VestingSchedule, times: Times) -> np.ndarray:
    """
    Cumulative vested amount at each time in `times`.

    Args:
        schedule: Schedule whose terms define the curve
        times: Times in seconds (scalar or array-like)

    Returns:
        Object array of ints, same shape as `times`
    """
    t = np.asarray(times, dtype=np.int64)
    return _vested_flat(schedule, np.atleast_1d(t).ravel()).reshape(t.shape)


def releasable_curve(schedule: VestingSchedule, times: Times) -> np.ndarray:
    """Releasable amount at each time, given the schedule's current `released`."""
    t = np.asarray(times, dtype=np.int64)
    releasable = _vested_flat(schedule, np.atleast_1d(t).ravel()) - schedule.released
    releasable = np.where(releasable > 0, releasable, 0).astype(object)
    return releasable.reshape(t.shape)


def unlock_calendar(schedule: VestingSchedule) -> List[Tuple[int, int]]:
    """
    Discrete unlock events of a schedule as (time, amount) pairs.

    Vested value only changes at the cliff, at slice boundaries after the
    cliff, and at the end of the schedule. The amounts sum to amount_total.

    Example:
        >>> s = VestingSchedule("alice", cliff=0, start=0, duration=4,
        ...                     slice_period_seconds=2, revocable=False, amount_total=10)
        >>> unlock_calendar(s)
        [(2, 5), (4, 5)]
    """
    boundaries = np.arange(
        schedule.start + schedule.slice_period_seconds,
        schedule.end,
        schedule.slice_period_seconds,
        dtype=np.int64,
    )
    candidates = np.unique(np.concatenate((
        boundaries,
        np.array([schedule.cliff, schedule.end], dtype=np.int64),
    )))
    candidates = candidates[candidates >= schedule.cliff]

    vested = vesting_curve(schedule, candidates)
    previous = np.concatenate((np.array([0], dtype=object), vested[:-1]))
    increments = vested - previous

    return [
        (int(t), int(amount))
        for t, amount in zip(candidates, increments)
        if amount > 0
    ]
