"""Request/response models for the quietblocks API."""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from quietblocks.engine.display import is_valid_timezone
from quietblocks.models.quiet_block import QuietBlock
from quietblocks.models.user import User


class QuietBlockResponse(BaseModel):
    """Response wrapping a single quiet block."""
    quiet_block: QuietBlock


class QuietBlockListResponse(BaseModel):
    """Response for listing quiet blocks."""
    quiet_blocks: List[QuietBlock]
    count: int


class UserResponse(BaseModel):
    """Response for the current user."""
    user: User


class PreferencesUpdate(BaseModel):
    """Partial update of the current user's preferences.

    Sending ``null`` for ``notification_email`` or ``timezone`` clears it.
    """

    notification_email: Optional[str] = Field(None, max_length=320)
    timezone: Optional[str] = None
    reminder_minutes_before: Optional[int] = Field(None, ge=1, le=1440)
    default_block_duration_min: Optional[int] = Field(None, ge=15, le=480)

    class Config:
        """Pydantic configuration."""
        extra = "forbid"
        str_strip_whitespace = True

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("reminder_minutes_before", "default_block_duration_min")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("Field cannot be null")
        return value


class StatsResponse(BaseModel):
    """Quiet block statistics for the current user."""
    total: int
    scheduled: int
    active: int
    completed: int
    cancelled: int
    total_minutes: int
    average_minutes: int


class ReminderRunResponse(BaseModel):
    """Outcome of one reminder trigger invocation."""
    timestamp: str
    checked: int
    due: int
    sent: int
    failed: int
    skipped: int
    statuses_updated: int = 0
    results: List[dict] = Field(default_factory=list)


class ReminderPreviewResponse(BaseModel):
    """Dry-run view of the reminder candidates."""
    timestamp: str
    candidates: List[dict]
    due_count: int


class TestEmailRequest(BaseModel):
    """Recipient for a configuration check email."""
    to: str = Field(..., min_length=3, description="Address to send the test email to")

    class Config:
        extra = "forbid"


class TestEmailResponse(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
