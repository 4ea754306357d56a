"""QuietBlock data model for quietblocks."""

from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from quietblocks.models.constants import (
    DEFAULT_REMINDER_MINUTES_BEFORE,
    MAX_REMINDER_MINUTES_BEFORE,
    MIN_REMINDER_MINUTES_BEFORE,
)
from quietblocks.models.time_utils import to_utc_naive


class QuietBlockStatus(str, Enum):
    """Quiet block lifecycle status."""
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    """Quiet block priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReminderConfig(BaseModel):
    """Per-block reminder settings."""

    enabled: bool = Field(True, description="Whether a reminder should be sent at all")
    minutes_before: int = Field(
        DEFAULT_REMINDER_MINUTES_BEFORE,
        ge=MIN_REMINDER_MINUTES_BEFORE,
        le=MAX_REMINDER_MINUTES_BEFORE,
        description="Minutes before start to send the reminder",
    )
    email_enabled: bool = Field(True, description="Deliver the reminder by email")
    push_enabled: bool = Field(False, description="Deliver the reminder by push (not dispatched by the scheduler)")


class QuietBlock(BaseModel):
    """A private interval reserved by a user for uninterrupted work.

    All instants are naive UTC.
    """

    id: str = Field(..., description="Unique quiet block identifier (UUID v4)")
    user_id: str = Field(..., description="User ID who owns this block")
    title: str = Field(..., min_length=1, max_length=100, description="Block title")
    description: Optional[str] = Field(None, max_length=500, description="Block description")
    start_time: datetime = Field(..., description="Block start time (UTC)")
    end_time: datetime = Field(..., description="Block end time (UTC)")
    status: QuietBlockStatus = Field(QuietBlockStatus.SCHEDULED, description="Lifecycle status")
    priority: Priority = Field(Priority.MEDIUM, description="Block priority")
    tags: List[str] = Field(default_factory=list, max_length=10, description="Free-form tags")
    is_private: bool = Field(False, description="Hide block details from shared views")
    location: Optional[str] = Field(None, max_length=200, description="Where the block takes place")
    notes: Optional[str] = Field(None, max_length=1000, description="Private notes")

    reminder_config: ReminderConfig = Field(default_factory=ReminderConfig)
    reminder_scheduled_at: Optional[datetime] = Field(
        None, description="start_time - reminder_config.minutes_before (UTC)"
    )
    reminder_sent: bool = Field(False, description="Whether the reminder was dispatched")
    reminder_sent_at: Optional[datetime] = Field(None, description="When the reminder was dispatched")

    is_deleted: bool = Field(False, description="Soft-delete flag")
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete timestamp")
    actual_start_time: Optional[datetime] = Field(None, description="When the user actually started")
    actual_end_time: Optional[datetime] = Field(None, description="When the user actually finished")

    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @field_validator(
        "start_time",
        "end_time",
        "reminder_scheduled_at",
        "reminder_sent_at",
        "deleted_at",
        "actual_start_time",
        "actual_end_time",
    )
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(value) if value is not None else None

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    @property
    def reminder_time(self) -> datetime:
        """Instant the reminder is due, derived from the current config."""
        return self.start_time - timedelta(minutes=self.reminder_config.minutes_before)


def compute_reminder_scheduled_at(start_time: datetime, minutes_before: int) -> datetime:
    """Return the reminder instant for a block starting at ``start_time``."""
    return start_time - timedelta(minutes=minutes_before)
