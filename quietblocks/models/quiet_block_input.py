"""Create and partial-update payloads for quiet blocks.

Updates are explicit per attribute: a field participates in the merge only
when the caller sent it (``model_fields_set``), so ``None`` can clear an
optional attribute while an omitted field leaves it untouched.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from quietblocks.models.quiet_block import Priority, QuietBlockStatus
from quietblocks.models.constants import (
    MAX_REMINDER_MINUTES_BEFORE,
    MIN_REMINDER_MINUTES_BEFORE,
)
from quietblocks.models.time_utils import to_utc_naive


def _strip_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    cleaned = [t.strip() for t in tags]
    if any(not t for t in cleaned):
        raise ValueError("Tags cannot be empty")
    if any(len(t) > 50 for t in cleaned):
        raise ValueError("Tag cannot be more than 50 characters")
    return cleaned


class ReminderConfigInput(BaseModel):
    """Reminder settings as sent by a client; omitted fields keep their current value."""

    enabled: Optional[bool] = None
    minutes_before: Optional[int] = Field(None, ge=MIN_REMINDER_MINUTES_BEFORE, le=MAX_REMINDER_MINUTES_BEFORE)
    email_enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None

    class Config:
        """Pydantic configuration."""
        extra = "forbid"


class QuietBlockCreate(BaseModel):
    """Payload for creating a quiet block."""

    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    start_time: datetime
    end_time: datetime
    priority: Priority = Priority.MEDIUM
    reminder_config: Optional[ReminderConfigInput] = None
    tags: List[str] = Field(default_factory=list, max_length=10)
    is_private: bool = False
    location: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=1000)

    class Config:
        """Pydantic configuration."""
        extra = "forbid"
        str_strip_whitespace = True

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return to_utc_naive(value)

    @field_validator("tags")
    @classmethod
    def _clean_tags(cls, value: List[str]) -> List[str]:
        return _strip_tags(value) or []


class QuietBlockUpdate(BaseModel):
    """Partial update for a quiet block."""

    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    priority: Optional[Priority] = None
    status: Optional[QuietBlockStatus] = None
    reminder_config: Optional[ReminderConfigInput] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    is_private: Optional[bool] = None
    location: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=1000)

    class Config:
        """Pydantic configuration."""
        extra = "forbid"
        str_strip_whitespace = True

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(value) if value is not None else None

    @field_validator("tags")
    @classmethod
    def _clean_tags(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _strip_tags(value)

    @field_validator("title", "start_time", "end_time", "priority", "status", "tags", "is_private")
    @classmethod
    def _not_null(cls, value):
        # Required attributes on the stored block may be omitted but never cleared.
        if value is None:
            raise ValueError("Field cannot be null")
        return value

    def provided(self) -> set:
        """Names of the fields the caller actually sent."""
        return set(self.model_fields_set)

    @property
    def changes_schedule(self) -> bool:
        return bool({"start_time", "end_time"} & self.provided())
