"""Quiet block creation factory for quietblocks.

This module centralizes block creation so defaults and the derived reminder
instant are applied the same way everywhere.
"""

import uuid
from typing import Optional

from quietblocks.models.quiet_block import (
    QuietBlock,
    QuietBlockStatus,
    ReminderConfig,
    compute_reminder_scheduled_at,
)
from quietblocks.models.quiet_block_input import QuietBlockCreate, ReminderConfigInput
from quietblocks.models.constants import DEFAULT_REMINDER_MINUTES_BEFORE
from quietblocks.models.time_utils import utc_now


def merge_reminder_config(
    current: Optional[ReminderConfig],
    patch: Optional[ReminderConfigInput],
    default_minutes_before: int = DEFAULT_REMINDER_MINUTES_BEFORE,
) -> ReminderConfig:
    """Apply a client reminder patch on top of the current (or default) config."""
    base = current or ReminderConfig(minutes_before=default_minutes_before)
    if patch is None:
        return base
    updates = {k: v for k, v in patch.model_dump().items() if v is not None}
    return base.model_copy(update=updates)


def create_quiet_block(
    user_id: str,
    payload: QuietBlockCreate,
    default_minutes_before: int = DEFAULT_REMINDER_MINUTES_BEFORE,
) -> QuietBlock:
    """Create a scheduled quiet block from a validated payload.
    
    Args:
        user_id: Owner of the block
        payload: Validated create payload (times already UTC)
        default_minutes_before: Reminder offset used when the payload has none
            (normally the owner's preference)
        
    Returns:
        QuietBlock with status=scheduled, reminder_sent=False and the
        reminder instant derived from start_time
    """
    now = utc_now()
    reminder_config = merge_reminder_config(None, payload.reminder_config, default_minutes_before)
    return QuietBlock(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=payload.title,
        description=payload.description,
        start_time=payload.start_time,
        end_time=payload.end_time,
        status=QuietBlockStatus.SCHEDULED,
        priority=payload.priority,
        tags=list(payload.tags),
        is_private=payload.is_private,
        location=payload.location,
        notes=payload.notes,
        reminder_config=reminder_config,
        reminder_scheduled_at=compute_reminder_scheduled_at(payload.start_time, reminder_config.minutes_before),
        reminder_sent=False,
        created_at=now,
        updated_at=now,
    )
