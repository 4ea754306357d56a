"""Repository for reminder delivery attempts."""

import logging
import uuid
from datetime import datetime
from typing import List
from sqlalchemy import func
from sqlalchemy.orm import Session

from quietblocks.models.delivery_attempt import DeliveryStatus, ReminderDeliveryAttempt
from quietblocks.models.quiet_block import QuietBlock
from quietblocks.database.models import ReminderDeliveryDB

logger = logging.getLogger(__name__)


class DeliveryAttemptRepository:
    """Append-only log of reminder dispatch attempts, keyed by (block_id, attempt_number)."""

    def __init__(self, db: Session):
        self.db = db

    def next_attempt_number(self, block_id: str) -> int:
        current = (
            self.db.query(func.max(ReminderDeliveryDB.attempt_number))
            .filter(ReminderDeliveryDB.block_id == block_id)
            .scalar()
        )
        return (current or 0) + 1

    def record(self, block: QuietBlock, recipient: str, result, attempted_at: datetime) -> ReminderDeliveryAttempt:
        """Store one attempt from a notifier DeliveryResult."""
        try:
            row = ReminderDeliveryDB(
                id=str(uuid.uuid4()),
                block_id=block.id,
                user_id=block.user_id,
                attempt_number=self.next_attempt_number(block.id),
                recipient=recipient,
                status=DeliveryStatus.SENT.value if result.success else DeliveryStatus.FAILED.value,
                provider_message_id=result.message_id,
                error=None if result.success else result.error,
                attempted_at=attempted_at,
            )
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to record delivery attempt for block {block.id}: {type(e).__name__}: {str(e)}")
            raise

    def list_for_block(self, block_id: str) -> List[ReminderDeliveryAttempt]:
        rows = (
            self.db.query(ReminderDeliveryDB)
            .filter(ReminderDeliveryDB.block_id == block_id)
            .order_by(ReminderDeliveryDB.attempt_number)
            .all()
        )
        return [row.to_pydantic() for row in rows]
