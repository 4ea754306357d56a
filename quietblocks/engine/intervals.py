"""Interval math shared by the overlap checker and the reminder scheduler.

Intervals are half-open ``[start, end)``: a block ending at 11:00 and one
starting at 11:00 do not overlap.
"""

from datetime import datetime, timedelta
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from quietblocks.engine.display import local_date
from quietblocks.engine.errors import (
    CrossesMidnight,
    InvalidRange,
    PastEnd,
    TooLong,
    TooShort,
    ValidationError,
)
from quietblocks.models.constants import MAX_BLOCK_DURATION_MIN, MIN_BLOCK_DURATION_MIN


MIN_DURATION = timedelta(minutes=MIN_BLOCK_DURATION_MIN)
MAX_DURATION = timedelta(minutes=MAX_BLOCK_DURATION_MIN)


class Interval(Protocol):
    start_time: datetime
    end_time: datetime


class TimeSlot:
    """Bare interval, for candidates that are not stored blocks yet."""

    def __init__(self, start_time: datetime, end_time: datetime):
        self.start_time = start_time
        self.end_time = end_time

    def __repr__(self) -> str:
        return f"TimeSlot({self.start_time.isoformat()}, {self.end_time.isoformat()})"


def overlaps(a: Interval, b: Interval) -> bool:
    """True iff the half-open intervals intersect."""
    return a.start_time < b.end_time and b.start_time < a.end_time


def duration_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def check_duration(start: datetime, end: datetime, now: datetime) -> Optional[ValidationError]:
    """Return the first failing time rule, or None when the slot is valid.

    Rules are checked in a fixed order (range, past, too short, too long)
    so the reported error is deterministic.
    """
    if start >= end:
        return InvalidRange("Start time must be before end time")
    if end <= now:
        return PastEnd("End time cannot be in the past")
    length = end - start
    if length < MIN_DURATION:
        return TooShort(f"Quiet block must be at least {MIN_BLOCK_DURATION_MIN} minutes long")
    if length > MAX_DURATION:
        return TooLong(f"Quiet block cannot be longer than {MAX_BLOCK_DURATION_MIN // 60} hours")
    return None


def validate_duration(start: datetime, end: datetime, now: datetime) -> None:
    """Raise the first failing time rule (see ``check_duration``)."""
    error = check_duration(start, end, now)
    if error is not None:
        raise error


def ensure_same_day(start: datetime, end: datetime, tz: ZoneInfo) -> None:
    """Reject blocks whose start and end fall on different local dates.

    A block ending exactly at local midnight still counts as crossing it.
    """
    if local_date(start, tz) != local_date(end, tz):
        raise CrossesMidnight("Quiet block must start and end on the same day")
