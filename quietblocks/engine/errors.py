"""Error taxonomy for quiet block scheduling.

Every error carries a stable ``kind`` string so the API layer can map it to a
response without inspecting messages.
"""

from datetime import datetime
from typing import List, Optional

from quietblocks.models.constants import SCHEDULE_CONFLICT


class QuietBlockError(Exception):
    """Base class for all quiet block errors."""

    kind = "QUIET_BLOCK_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(QuietBlockError):
    """Recoverable input problem; the caller should re-prompt."""

    kind = "VALIDATION_ERROR"


class InvalidRange(ValidationError):
    kind = "INVALID_RANGE"


class PastEnd(ValidationError):
    kind = "PAST_END"


class TooShort(ValidationError):
    kind = "TOO_SHORT"


class TooLong(ValidationError):
    kind = "TOO_LONG"


class CrossesMidnight(ValidationError):
    kind = "CROSSES_MIDNIGHT"


class InvalidTransition(ValidationError):
    kind = "INVALID_TRANSITION"


class ConflictDetail:
    """One conflicting block as surfaced to the caller."""

    def __init__(self, id: str, title: str, start_time: datetime, end_time: datetime, time_display: str):
        self.id = id
        self.title = title
        self.start_time = start_time
        self.end_time = end_time
        self.time_display = time_display

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "time_display": self.time_display,
        }


class ScheduleConflict(QuietBlockError):
    """Candidate interval overlaps one or more of the owner's active blocks."""

    kind = SCHEDULE_CONFLICT

    def __init__(self, conflicts: List[ConflictDetail]):
        self.conflicts = conflicts
        super().__init__(self._build_message(conflicts))

    @staticmethod
    def _build_message(conflicts: List[ConflictDetail]) -> str:
        if len(conflicts) == 1:
            c = conflicts[0]
            return f'Schedule conflicts with "{c.title}" ({c.time_display}).'
        listed = ", ".join(f'"{c.title}" ({c.time_display})' for c in conflicts)
        return f"Schedule conflicts with {len(conflicts)} existing schedules: {listed}."


class NotFound(QuietBlockError):
    kind = "NOT_FOUND"


class DispatchFailed(QuietBlockError):
    """A single reminder could not be delivered; the block stays pending."""

    kind = "DISPATCH_FAILED"

    def __init__(self, block_id: str, reason: Optional[str]):
        self.block_id = block_id
        self.reason = reason or "Unknown error"
        super().__init__(f"Reminder dispatch failed for block {block_id}: {self.reason}")


class StorageUnavailable(QuietBlockError):
    """The block store cannot be reached; the whole invocation aborts."""

    kind = "STORAGE_UNAVAILABLE"
