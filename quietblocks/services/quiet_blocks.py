"""Quiet block service: validation, overlap check and persistence for one owner.

Create and update for the same owner are serialized with an in-process lock so
two requests cannot both pass the overlap check against the same stale read.
This covers a single-process deployment only.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo
from sqlalchemy.orm import Session

from quietblocks.database.quiet_block_repository import QuietBlockRepository
from quietblocks.engine.display import get_display_timezone
from quietblocks.engine.errors import InvalidTransition, NotFound
from quietblocks.engine.intervals import validate_duration
from quietblocks.engine.lifecycle import ensure_transition
from quietblocks.engine.overlap import ensure_no_conflicts
from quietblocks.models.quiet_block import QuietBlock, QuietBlockStatus, compute_reminder_scheduled_at
from quietblocks.models.quiet_block_factory import create_quiet_block, merge_reminder_config
from quietblocks.models.quiet_block_input import QuietBlockCreate, QuietBlockUpdate
from quietblocks.models.time_utils import utc_now
from quietblocks.models.user import User

logger = logging.getLogger(__name__)

_owner_locks: Dict[str, threading.Lock] = {}
_owner_locks_guard = threading.Lock()

# Attributes copied as-is from an update payload
_PLAIN_FIELDS = ("title", "description", "priority", "tags", "is_private", "location", "notes")


def owner_lock(user_id: str) -> threading.Lock:
    """Return the write lock for one owner, creating it on first use."""
    with _owner_locks_guard:
        lock = _owner_locks.get(user_id)
        if lock is None:
            lock = threading.Lock()
            _owner_locks[user_id] = lock
        return lock


def _status_value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


class QuietBlockService:
    """Quiet block operations for the API layer."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = QuietBlockRepository(db)

    def _timezone(self, user: User) -> ZoneInfo:
        return get_display_timezone(user.timezone)

    def _check_slot(
        self,
        user: User,
        start: datetime,
        end: datetime,
        now: datetime,
        exclude_id: Optional[str] = None,
    ) -> None:
        validate_duration(start, end, now)
        existing = self.repo.list_near(user.id, start, end)
        ensure_no_conflicts(start, end, user.id, existing, exclude_id=exclude_id, tz=self._timezone(user))

    def create(self, user: User, payload: QuietBlockCreate, now: Optional[datetime] = None) -> QuietBlock:
        """Validate and store a new quiet block.

        Raises:
            ValidationError: If the time rules fail (range, past, duration, same day)
            ScheduleConflict: If the slot overlaps the owner's active blocks
        """
        now = now or utc_now()
        with owner_lock(user.id):
            self._check_slot(user, payload.start_time, payload.end_time, now)
            block = create_quiet_block(user.id, payload, user.reminder_minutes_before)
            created = self.repo.create(block)
        logger.info(f"Created quiet block {created.id} for user {user.id}")
        return created

    def get(self, user_id: str, block_id: str) -> QuietBlock:
        block = self.repo.get_by_id(user_id, block_id)
        if block is None:
            raise NotFound(f"Quiet block {block_id} not found")
        return block

    def list(
        self,
        user_id: str,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        statuses: Optional[Iterable] = None,
        tags: Optional[List[str]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[QuietBlock]:
        return self.repo.list_for_user(
            user_id,
            start_from=start_from,
            start_to=start_to,
            statuses=statuses,
            tags=tags,
            limit=limit,
            offset=offset,
        )

    def update(
        self,
        user: User,
        block_id: str,
        payload: QuietBlockUpdate,
        now: Optional[datetime] = None,
    ) -> QuietBlock:
        """Apply a partial update.

        Only fields the caller sent are touched. Changing the times re-runs the
        duration and overlap checks with the block itself excluded. Changing the
        start time or the reminder offset reschedules the reminder and clears
        ``reminder_sent``.
        """
        now = now or utc_now()
        provided = payload.provided()

        with owner_lock(user.id):
            current = self.get(user.id, block_id)
            status = _status_value(current.status)
            if status in (QuietBlockStatus.COMPLETED.value, QuietBlockStatus.CANCELLED.value) and provided - {"status"}:
                raise InvalidTransition(f"Cannot edit a {status} quiet block")

            updates = {name: getattr(payload, name) for name in _PLAIN_FIELDS if name in provided}

            start = payload.start_time if "start_time" in provided else current.start_time
            end = payload.end_time if "end_time" in provided else current.end_time
            if payload.changes_schedule:
                self._check_slot(user, start, end, now, exclude_id=current.id)
                updates["start_time"] = start
                updates["end_time"] = end

            reminder_config = current.reminder_config
            if "reminder_config" in provided:
                reminder_config = merge_reminder_config(current.reminder_config, payload.reminder_config)
                updates["reminder_config"] = reminder_config

            start_moved = start != current.start_time
            offset_moved = reminder_config.minutes_before != current.reminder_config.minutes_before
            if start_moved or offset_moved:
                updates["reminder_scheduled_at"] = compute_reminder_scheduled_at(start, reminder_config.minutes_before)
                updates["reminder_sent"] = False
                updates["reminder_sent_at"] = None

            if "status" in provided:
                updates.update(self._transition_fields(current, payload.status, now))

            updates["updated_at"] = now
            saved = self.repo.update(current.model_copy(update=updates))
        if saved is None:
            raise NotFound(f"Quiet block {block_id} not found")
        logger.info(f"Updated quiet block {block_id} ({', '.join(sorted(provided)) or 'no fields'})")
        return saved

    def delete(self, user_id: str, block_id: str, now: Optional[datetime] = None) -> QuietBlock:
        """Soft-delete a block; it stops conflicting and never becomes due."""
        deleted = self.repo.soft_delete(user_id, block_id, now or utc_now())
        if deleted is None:
            raise NotFound(f"Quiet block {block_id} not found")
        logger.info(f"Deleted quiet block {block_id}")
        return deleted

    def _transition_fields(self, block: QuietBlock, target, now: datetime) -> dict:
        target = _status_value(target)
        ensure_transition(block.status, target)
        fields = {"status": target}
        if target == QuietBlockStatus.ACTIVE.value and block.actual_start_time is None:
            fields["actual_start_time"] = now
        if target == QuietBlockStatus.COMPLETED.value:
            if block.actual_start_time is None:
                fields["actual_start_time"] = block.start_time
            fields["actual_end_time"] = now
        return fields

    def _transition(self, user_id: str, block_id: str, target: QuietBlockStatus, now: Optional[datetime]) -> QuietBlock:
        now = now or utc_now()
        with owner_lock(user_id):
            block = self.get(user_id, block_id)
            updates = self._transition_fields(block, target, now)
            updates["updated_at"] = now
            saved = self.repo.update(block.model_copy(update=updates))
        if saved is None:
            raise NotFound(f"Quiet block {block_id} not found")
        logger.info(f"Quiet block {block_id} is now {target.value}")
        return saved

    def start(self, user_id: str, block_id: str, now: Optional[datetime] = None) -> QuietBlock:
        return self._transition(user_id, block_id, QuietBlockStatus.ACTIVE, now)

    def complete(self, user_id: str, block_id: str, now: Optional[datetime] = None) -> QuietBlock:
        return self._transition(user_id, block_id, QuietBlockStatus.COMPLETED, now)

    def cancel(self, user_id: str, block_id: str, now: Optional[datetime] = None) -> QuietBlock:
        return self._transition(user_id, block_id, QuietBlockStatus.CANCELLED, now)

    def stats(self, user_id: str) -> dict:
        """Counts per status plus total and average scheduled minutes."""
        stats = self.repo.stats_for_user(user_id)
        total = stats["total"]
        stats["average_minutes"] = round(stats["total_minutes"] / total) if total else 0
        return stats
