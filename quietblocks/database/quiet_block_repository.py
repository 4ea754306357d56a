"""Repository for QuietBlock database operations."""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quietblocks.engine.errors import StorageUnavailable
from quietblocks.models.quiet_block import QuietBlock, QuietBlockStatus
from quietblocks.database.models import QuietBlockDB, enum_to_value

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [QuietBlockStatus.SCHEDULED.value, QuietBlockStatus.ACTIVE.value]


class QuietBlockRepository:
    """Repository for QuietBlock database operations."""

    def __init__(self, db: Session):
        self.db = db

    def _user_query(self, user_id: str, include_deleted: bool = False):
        query = self.db.query(QuietBlockDB).filter(QuietBlockDB.user_id == user_id)
        if not include_deleted:
            query = query.filter(QuietBlockDB.is_deleted.is_(False))
        return query

    def _filtered(
        self,
        user_id: str,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        statuses: Optional[Iterable] = None,
        include_deleted: bool = False,
    ):
        query = self._user_query(user_id, include_deleted)
        if start_from is not None:
            query = query.filter(QuietBlockDB.start_time >= start_from)
        if start_to is not None:
            query = query.filter(QuietBlockDB.start_time <= start_to)
        if statuses:
            query = query.filter(QuietBlockDB.status.in_([enum_to_value(s) for s in statuses]))
        return query

    def create(self, block: QuietBlock) -> QuietBlock:
        """Create a new quiet block."""
        try:
            block_db = QuietBlockDB.from_pydantic(block)
            self.db.add(block_db)
            self.db.commit()
            self.db.refresh(block_db)
            logger.debug(f"Created quiet block {block.id}: {block.title[:50]}")
            return block_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create quiet block {block.id}: {type(e).__name__}: {str(e)}")
            raise

    def get_by_id(self, user_id: str, block_id: str, include_deleted: bool = False) -> Optional[QuietBlock]:
        """Get a quiet block by ID (user-scoped)."""
        row = self._user_query(user_id, include_deleted).filter(QuietBlockDB.id == block_id).first()
        return row.to_pydantic() if row else None

    def list_for_user(
        self,
        user_id: str,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        statuses: Optional[Iterable] = None,
        tags: Optional[List[str]] = None,
        include_deleted: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[QuietBlock]:
        """Get a user's quiet blocks sorted by start_time."""
        query = self._filtered(user_id, start_from, start_to, statuses, include_deleted)
        query = query.order_by(QuietBlockDB.start_time, QuietBlockDB.id)
        blocks = [row.to_pydantic() for row in query.all()]
        if tags:
            # JSON containment differs per dialect; filter in Python.
            wanted = set(tags)
            blocks = [b for b in blocks if wanted & set(b.tags)]
        if offset:
            blocks = blocks[offset:]
        if limit is not None:
            blocks = blocks[:limit]
        return blocks

    def list_near(self, user_id: str, start: datetime, end: datetime, margin: timedelta = timedelta(days=1)) -> List[QuietBlock]:
        """Blocks that could overlap [start, end): a day of margin on both sides."""
        return self.list_for_user(user_id, start_from=start - margin, start_to=end + margin)

    def update(self, block: QuietBlock) -> Optional[QuietBlock]:
        """Persist all mutable fields of an existing block (user-scoped)."""
        try:
            row = (
                self.db.query(QuietBlockDB)
                .filter(QuietBlockDB.user_id == block.user_id, QuietBlockDB.id == block.id)
                .first()
            )
            if row is None:
                return None
            row.apply_pydantic(block)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Updated quiet block {block.id}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update quiet block {block.id}: {type(e).__name__}: {str(e)}")
            raise

    def soft_delete(self, user_id: str, block_id: str, now: datetime) -> Optional[QuietBlock]:
        """Mark a block deleted and cancelled. Returns None if it does not exist."""
        try:
            row = self._user_query(user_id).filter(QuietBlockDB.id == block_id).first()
            if row is None:
                return None
            row.is_deleted = True
            row.deleted_at = now
            row.status = QuietBlockStatus.CANCELLED.value
            row.updated_at = now
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Soft-deleted quiet block {block_id}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete quiet block {block_id}: {type(e).__name__}: {str(e)}")
            raise

    def get_reminder_candidates(self, now: datetime, window_start: datetime, window_end: datetime) -> List[QuietBlock]:
        """Pending reminders whose reminder instant lies in [window_start, window_end].

        Only scheduled, non-deleted blocks that have not started yet qualify.

        Raises:
            StorageUnavailable: If the store cannot be queried
        """
        try:
            rows = (
                self.db.query(QuietBlockDB)
                .filter(
                    QuietBlockDB.status == QuietBlockStatus.SCHEDULED.value,
                    QuietBlockDB.is_deleted.is_(False),
                    QuietBlockDB.reminder_sent.is_(False),
                    QuietBlockDB.start_time > now,
                    QuietBlockDB.reminder_scheduled_at >= window_start,
                    QuietBlockDB.reminder_scheduled_at <= window_end,
                )
                .order_by(QuietBlockDB.start_time, QuietBlockDB.id)
                .all()
            )
            return [row.to_pydantic() for row in rows]
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to fetch reminder candidates: {type(e).__name__}: {str(e)}")
            raise StorageUnavailable(f"Cannot read quiet blocks: {type(e).__name__}") from e

    def mark_reminder_sent(self, block_id: str, sent_at: datetime) -> bool:
        """Atomically set reminder_sent=True only if it is still False.

        Returns:
            True if this call flipped the flag, False if it was already set
        """
        try:
            result = self.db.execute(
                update(QuietBlockDB)
                .where(QuietBlockDB.id == block_id, QuietBlockDB.reminder_sent.is_(False))
                .values(reminder_sent=True, reminder_sent_at=sent_at)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            return result.rowcount == 1
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to mark reminder sent for block {block_id}: {type(e).__name__}: {str(e)}")
            raise

    def get_sweep_candidates(self, now: datetime) -> List[QuietBlock]:
        """Scheduled/active blocks that have already started (status may be stale)."""
        rows = (
            self.db.query(QuietBlockDB)
            .filter(
                QuietBlockDB.is_deleted.is_(False),
                QuietBlockDB.status.in_(ACTIVE_STATUSES),
                QuietBlockDB.start_time <= now,
            )
            .all()
        )
        return [row.to_pydantic() for row in rows]

    def apply_status_changes(self, changes: List[Tuple[str, str]], now: datetime) -> int:
        """Apply (block_id, new_status) pairs produced by the lifecycle sweep."""
        if not changes:
            return 0
        try:
            updated = 0
            for block_id, new_status in changes:
                result = self.db.execute(
                    update(QuietBlockDB)
                    .where(QuietBlockDB.id == block_id, QuietBlockDB.status.in_(ACTIVE_STATUSES))
                    .values(status=new_status, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                updated += result.rowcount
            self.db.commit()
            logger.debug(f"Swept {updated} quiet block statuses")
            return updated
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to apply status sweep: {type(e).__name__}: {str(e)}")
            raise

    def stats_for_user(self, user_id: str) -> Dict[str, int]:
        """Per-status counts and total scheduled minutes (non-deleted blocks)."""
        counts = dict(
            self._user_query(user_id)
            .with_entities(QuietBlockDB.status, func.count(QuietBlockDB.id))
            .group_by(QuietBlockDB.status)
            .all()
        )
        blocks = self.list_for_user(user_id)
        total_minutes = sum(b.duration_minutes for b in blocks)
        stats = {s.value: int(counts.get(s.value, 0)) for s in QuietBlockStatus}
        stats["total"] = sum(stats.values())
        stats["total_minutes"] = total_minutes
        return stats
