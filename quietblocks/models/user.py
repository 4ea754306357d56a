"""User data model for quietblocks."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class User(BaseModel):
    """User model for quietblocks."""
    
    id: str = Field(..., description="Unique user identifier")
    email: str = Field(..., description="Primary account email address")
    name: Optional[str] = Field(None, description="User display name")
    notification_email: Optional[str] = Field(
        None, description="Where reminders are sent (falls back to email)"
    )
    timezone: Optional[str] = Field(None, description="IANA timezone used to display times (None: server default)")
    reminder_minutes_before: int = Field(15, ge=1, le=1440, description="Default reminder offset for new blocks")
    default_block_duration_min: int = Field(60, ge=15, le=480, description="Default quiet block length")
    created_at: datetime = Field(..., description="User creation timestamp")
    updated_at: datetime = Field(..., description="User last update timestamp")

    @property
    def reminder_email(self) -> str:
        """Recipient for reminder emails."""
        return self.notification_email or self.email
    
    class Config:
        """Pydantic configuration."""
        use_enum_values = True
