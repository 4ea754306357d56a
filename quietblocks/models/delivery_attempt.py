"""Reminder delivery audit record for quietblocks."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from quietblocks.models.time_utils import utc_now


class DeliveryStatus(str, Enum):
    """Outcome of a single reminder dispatch."""
    SENT = "sent"
    FAILED = "failed"


class ReminderDeliveryAttempt(BaseModel):
    """One attempt to deliver a block's reminder, keyed by (block_id, attempt_number)."""
    
    id: str = Field(..., description="Unique attempt identifier")
    block_id: str = Field(..., description="Quiet block the reminder belongs to")
    user_id: str = Field(..., description="Owner of the block")
    attempt_number: int = Field(..., ge=1, description="1-based attempt counter per block")
    recipient: str = Field(..., description="Email address the reminder was sent to")
    status: DeliveryStatus = Field(..., description="Attempt outcome")
    provider_message_id: Optional[str] = Field(None, description="Message id returned by the email provider")
    error: Optional[str] = Field(None, description="Failure reason")
    attempted_at: datetime = Field(default_factory=utc_now, description="Attempt timestamp")
    
    class Config:
        """Pydantic configuration."""
        use_enum_values = True
