"""Overlap checker for quiet blocks.

Decides whether a candidate interval may be accepted for an owner given that
owner's existing blocks. The caller fetches the relevant blocks; nothing here
touches storage.
"""

from datetime import datetime
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from quietblocks.engine.display import format_time_range, get_display_timezone
from quietblocks.engine.errors import ConflictDetail, ScheduleConflict
from quietblocks.engine.intervals import TimeSlot, ensure_same_day, overlaps
from quietblocks.models.quiet_block import QuietBlock, QuietBlockStatus


# Completed and cancelled blocks never conflict
CONFLICTING_STATUSES = frozenset({QuietBlockStatus.SCHEDULED.value, QuietBlockStatus.ACTIVE.value})


class ConflictCheckResult:
    """Result of an overlap check."""
    
    def __init__(self, conflicts: List[QuietBlock]):
        self.conflicts: List[QuietBlock] = conflicts

    @property
    def has_conflict(self) -> bool:
        return len(self.conflicts) > 0

    def details(self, tz: ZoneInfo) -> List[ConflictDetail]:
        return [
            ConflictDetail(
                id=block.id,
                title=block.title or "Untitled",
                start_time=block.start_time,
                end_time=block.end_time,
                time_display=format_time_range(block.start_time, block.end_time, tz),
            )
            for block in self.conflicts
        ]


def _status_value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def can_conflict(block: QuietBlock, user_id: str, exclude_id: Optional[str] = None) -> bool:
    """Whether an existing block takes part in conflict checks at all."""
    if block.is_deleted:
        return False
    if exclude_id is not None and block.id == exclude_id:
        return False
    if block.user_id != user_id:
        return False
    return _status_value(block.status) in CONFLICTING_STATUSES


def find_conflicts(
    candidate_start: datetime,
    candidate_end: datetime,
    user_id: str,
    existing: Iterable[QuietBlock],
    exclude_id: Optional[str] = None,
) -> ConflictCheckResult:
    """Return every eligible block overlapping the candidate.

    Conflicts are sorted by (start_time, id) so the same input set always
    yields the same list regardless of iteration order.
    """
    candidate = TimeSlot(candidate_start, candidate_end)
    conflicts = [
        block for block in existing
        if can_conflict(block, user_id, exclude_id) and overlaps(candidate, block)
    ]
    conflicts.sort(key=lambda b: (b.start_time, b.id))
    return ConflictCheckResult(conflicts)


def check_overlap(
    candidate_start: datetime,
    candidate_end: datetime,
    user_id: str,
    existing: Iterable[QuietBlock],
    exclude_id: Optional[str] = None,
    tz: Optional[ZoneInfo] = None,
) -> ConflictCheckResult:
    """Same-day rule followed by the conflict scan.
    
    Args:
        candidate_start: Candidate start (naive UTC)
        candidate_end: Candidate end (naive UTC)
        user_id: Owner of the candidate
        existing: Owner's blocks in a window around the candidate
        exclude_id: Block being edited, so it never conflicts with itself
        tz: Display timezone defining the owner's calendar day
        
    Returns:
        ConflictCheckResult
        
    Raises:
        CrossesMidnight: If the candidate spans two local dates
    """
    ensure_same_day(candidate_start, candidate_end, tz or get_display_timezone())
    return find_conflicts(candidate_start, candidate_end, user_id, existing, exclude_id)


def ensure_no_conflicts(
    candidate_start: datetime,
    candidate_end: datetime,
    user_id: str,
    existing: Iterable[QuietBlock],
    exclude_id: Optional[str] = None,
    tz: Optional[ZoneInfo] = None,
) -> None:
    """Raise ScheduleConflict listing every conflicting block."""
    tz = tz or get_display_timezone()
    result = check_overlap(candidate_start, candidate_end, user_id, existing, exclude_id, tz)
    if result.has_conflict:
        raise ScheduleConflict(result.details(tz))
