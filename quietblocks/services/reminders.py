"""Wiring for the reminder trigger: builds a scheduler from a session and env config."""

import logging
import os
from datetime import datetime, timedelta
from typing import Optional
from dotenv import load_dotenv
from sqlalchemy.orm import Session

from quietblocks.database.delivery_attempt_repository import DeliveryAttemptRepository
from quietblocks.database.quiet_block_repository import QuietBlockRepository
from quietblocks.database.user_repository import UserRepository
from quietblocks.engine.lifecycle import sweep_statuses
from quietblocks.engine.reminders import Notifier, ReminderScheduler
from quietblocks.models.constants import (
    DEFAULT_REMINDER_LOOKAHEAD_MINUTES,
    DEFAULT_REMINDER_TOLERANCE_MINUTES,
)
from quietblocks.models.time_utils import utc_now

load_dotenv()

logger = logging.getLogger(__name__)

REMINDER_TOLERANCE_MINUTES = int(os.getenv("REMINDER_TOLERANCE_MINUTES", str(DEFAULT_REMINDER_TOLERANCE_MINUTES)))
REMINDER_LOOKAHEAD_MINUTES = int(os.getenv("REMINDER_LOOKAHEAD_MINUTES", str(DEFAULT_REMINDER_LOOKAHEAD_MINUTES)))
REMINDER_MAX_WORKERS = int(os.getenv("REMINDER_MAX_WORKERS", "4"))


def build_scheduler(db: Session, notifier: Notifier) -> ReminderScheduler:
    """Create a ReminderScheduler backed by the database session."""
    return ReminderScheduler(
        store=QuietBlockRepository(db),
        users=UserRepository(db),
        notifier=notifier,
        attempts=DeliveryAttemptRepository(db),
        tolerance=timedelta(minutes=REMINDER_TOLERANCE_MINUTES),
        lookahead=timedelta(minutes=REMINDER_LOOKAHEAD_MINUTES),
        display_timezone=os.getenv("DISPLAY_TIMEZONE"),
        dashboard_url=os.getenv("DASHBOARD_URL"),
        max_workers=REMINDER_MAX_WORKERS,
    )


def sweep_block_statuses(db: Session, now: Optional[datetime] = None) -> int:
    """Move started blocks to active and finished ones to completed.

    Returns:
        Number of blocks whose status changed
    """
    now = now or utc_now()
    repo = QuietBlockRepository(db)
    changes = sweep_statuses(repo.get_sweep_candidates(now), now)
    updated = repo.apply_status_changes(changes, now)
    if updated:
        logger.info(f"Status sweep updated {updated} quiet blocks")
    return updated
