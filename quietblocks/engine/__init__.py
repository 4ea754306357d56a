"""Scheduling engine for quietblocks."""

from quietblocks.engine.intervals import overlaps, validate_duration, check_duration, ensure_same_day, TimeSlot
from quietblocks.engine.overlap import check_overlap, ensure_no_conflicts, ConflictCheckResult
from quietblocks.engine.reminders import (
    ReminderScheduler,
    ReminderRunSummary,
    ReminderMessage,
    DeliveryResult,
    is_due,
)
from quietblocks.engine.lifecycle import ensure_transition, sweep_statuses

__all__ = [
    "overlaps",
    "validate_duration",
    "check_duration",
    "ensure_same_day",
    "TimeSlot",
    "check_overlap",
    "ensure_no_conflicts",
    "ConflictCheckResult",
    "ReminderScheduler",
    "ReminderRunSummary",
    "ReminderMessage",
    "DeliveryResult",
    "is_due",
    "ensure_transition",
    "sweep_statuses",
]
