"""Data models for quietblocks."""

from quietblocks.models.quiet_block import (
    QuietBlock,
    QuietBlockStatus,
    Priority,
    ReminderConfig,
    compute_reminder_scheduled_at,
)
from quietblocks.models.user import User
from quietblocks.models.delivery_attempt import ReminderDeliveryAttempt, DeliveryStatus
from quietblocks.models.quiet_block_input import QuietBlockCreate, QuietBlockUpdate, ReminderConfigInput

__all__ = [
    "QuietBlock",
    "QuietBlockStatus",
    "Priority",
    "ReminderConfig",
    "compute_reminder_scheduled_at",
    "User",
    "ReminderDeliveryAttempt",
    "DeliveryStatus",
    "QuietBlockCreate",
    "QuietBlockUpdate",
    "ReminderConfigInput",
]
