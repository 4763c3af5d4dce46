from __future__ import annotations

from datetime import datetime
from typing import Iterable, List

from models import Interval


def find_conflicts(room_id: str, candidate: Interval, existing: Iterable[Interval]) -> List[Interval]:
    """
    Return the intervals in `existing` that overlap `candidate` in `room_id`.
    Intervals belonging to other rooms are ignored.
    """
    if candidate.room_id != room_id:
        return []
    return [
        other
        for other in existing
        if other.room_id == room_id
        and candidate.overlaps(other)
    ]


def has_conflict(room_id: str, candidate: Interval, existing: Iterable[Interval]) -> bool:
    # Whole-day intervals on the same date always overlap, so the
    # day-granularity case needs no separate date comparison.
    return bool(find_conflicts(room_id, candidate, existing))


def is_expired(interval: Interval, now: datetime) -> bool:
    # End is exclusive: an interval ending exactly at `now` has elapsed.
    return interval.end <= now
