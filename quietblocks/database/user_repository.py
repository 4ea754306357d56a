"""Repository for User database operations."""

import logging
from typing import Optional
from sqlalchemy.orm import Session

from quietblocks.models.user import User
from quietblocks.database.models import UserDB

logger = logging.getLogger(__name__)
_UNSET = object()


class UserRepository:
    """Repository for User database operations."""
    
    def __init__(self, db: Session):
        self.db = db
    
    def get(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        return user_db.to_pydantic() if user_db else None
    
    def create_or_update(self, user: User) -> User:
        """Create or update user (upsert) from profile fields.
        
        Preferences are left untouched on update; see ``update_preferences``.
        """
        user_db = self.db.query(UserDB).filter(UserDB.id == user.id).first()
        
        try:
            if user_db:
                user_db.email = user.email
                user_db.name = user.name
                user_db.updated_at = user.updated_at
            else:
                user_db = UserDB.from_pydantic(user)
                self.db.add(user_db)
            self.db.commit()
            self.db.refresh(user_db)
            logger.debug(f"Saved user {user.id}")
            return user_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to save user {user.id}: {type(e).__name__}: {str(e)}")
            raise

    def update_preferences(
        self,
        user_id: str,
        *,
        notification_email=_UNSET,
        timezone=_UNSET,
        reminder_minutes_before=_UNSET,
        default_block_duration_min=_UNSET,
        updated_at=None,
    ) -> Optional[User]:
        """Update preference fields.

        Uses an UNSET sentinel so callers can explicitly clear values by passing None.
        """
        try:
            row = self.db.query(UserDB).filter(UserDB.id == user_id).first()
            if row is None:
                return None
            if notification_email is not _UNSET:
                row.notification_email = notification_email
            if timezone is not _UNSET:
                row.timezone = timezone
            if reminder_minutes_before is not _UNSET:
                row.reminder_minutes_before = reminder_minutes_before
            if default_block_duration_min is not _UNSET:
                row.default_block_duration_min = default_block_duration_min
            if updated_at is not None:
                row.updated_at = updated_at
            self.db.commit()
            self.db.refresh(row)
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update preferences for user {user_id}: {type(e).__name__}: {str(e)}")
            raise
