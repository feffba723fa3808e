"""
wait_times.py
-------------
Estimated waits for the walk-in queue.

Each active staff member is a lane that becomes free once their in-progress
walk-in is done (remaining = estimated duration - elapsed, never negative).
Waiting walk-ins ahead are handed, in queue order, to whichever lane frees up
first. The wait for a position is when the earliest lane is next free.

Snapshots are plain dicts: {"id", "estimated_duration", "started_at"}.
"""

import heapq
import math

from django.utils import timezone

DEFAULT_WALK_IN_DURATION = 30


def _round_minutes(value: float) -> int:
    # Half-up, so 2.5 minutes shows as 3 and not 2.
    return int(math.floor(value + 0.5))


def remaining_minutes(walk_in, now, default_duration: int = DEFAULT_WALK_IN_DURATION) -> float:
    """Minutes left on an in-progress walk-in; 0 if it never recorded a start."""
    started_at = walk_in.get("started_at")
    if started_at is None:
        return 0.0
    elapsed = (now - started_at).total_seconds() / 60
    duration = walk_in.get("estimated_duration") or default_duration
    return max(0.0, duration - elapsed)


def _staff_free_in(in_progress, staff_count, now, default_duration) -> list:
    if now is None:
        now = timezone.now()
    remaining = sorted(remaining_minutes(w, now, default_duration) for w in in_progress)
    lanes = [remaining[i] if i < len(remaining) else 0.0 for i in range(max(staff_count, 1))]
    heapq.heapify(lanes)
    return lanes


def calculate_wait_minutes(
    waiting_ahead,
    in_progress,
    staff_count: int = 1,
    default_duration: int = DEFAULT_WALK_IN_DURATION,
    now=None,
) -> int:
    """
    Estimated wait, in whole minutes, for someone behind `waiting_ahead`.

    Args:
        waiting_ahead: waiting walk-ins ahead of this position, in queue order
        in_progress: walk-ins currently being served
        staff_count: active staff (at least one lane is always assumed)
        now: aware datetime the elapsed time is measured against
    """
    lanes = _staff_free_in(in_progress, staff_count, now, default_duration)
    for walk_in in waiting_ahead:
        duration = walk_in.get("estimated_duration") or default_duration
        heapq.heapreplace(lanes, lanes[0] + duration)
    return _round_minutes(lanes[0])


def calculate_all_wait_times(
    waiting_queue,
    in_progress,
    staff_count: int = 1,
    default_duration: int = DEFAULT_WALK_IN_DURATION,
    now=None,
) -> dict:
    """Map walk-in id -> estimated wait for every position in waiting_queue."""
    return {
        walk_in["id"]: calculate_wait_minutes(
            waiting_queue[:index], in_progress, staff_count, default_duration, now
        )
        for index, walk_in in enumerate(waiting_queue)
    }
