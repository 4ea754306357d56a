"""SQLAlchemy database models for quietblocks."""

import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, ForeignKey, Index, UniqueConstraint

from typing import Union, TypeVar, Type
from quietblocks.database.database import Base
from quietblocks.models.quiet_block import QuietBlockStatus, Priority, ReminderConfig
from quietblocks.models.delivery_attempt import DeliveryStatus
from quietblocks.models.time_utils import utc_now

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


class UserDB(Base):
    """Database model for User."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # User profile
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)

    # Preferences
    notification_email = Column(String, nullable=True)
    timezone = Column(String, nullable=True)
    reminder_minutes_before = Column(Integer, nullable=False, default=15)
    default_block_duration_min = Column(Integer, nullable=False, default=60)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from quietblocks.models.user import User
        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            notification_email=self.notification_email,
            timezone=self.timezone,
            reminder_minutes_before=self.reminder_minutes_before or 15,
            default_block_duration_min=self.default_block_duration_min or 60,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, user):
        """Create database model from Pydantic model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            notification_email=user.notification_email,
            timezone=user.timezone,
            reminder_minutes_before=user.reminder_minutes_before,
            default_block_duration_min=user.default_block_duration_min,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class QuietBlockDB(Base):
    """Database model for QuietBlock."""

    __tablename__ = "quiet_blocks"
    __table_args__ = (
        Index("ix_quiet_blocks_user_start", "user_id", "start_time"),
        # Reminder candidate scan: pending + scheduled, by reminder instant
        Index("ix_quiet_blocks_reminder_pending", "reminder_sent", "status", "reminder_scheduled_at"),
    )

    # Primary key
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # User association
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Block details
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=QuietBlockStatus.SCHEDULED.value, index=True)
    priority = Column(String, nullable=False, default=Priority.MEDIUM.value)
    tags = Column(JSON, nullable=False, default=list)
    is_private = Column(Boolean, nullable=False, default=False)
    location = Column(String, nullable=True)
    notes = Column(String, nullable=True)

    # Reminder (config stored as JSON: enabled, minutes_before, email_enabled, push_enabled)
    reminder_config = Column(JSON, nullable=False, default=dict)
    reminder_scheduled_at = Column(DateTime, nullable=True)
    reminder_sent = Column(Boolean, nullable=False, default=False)
    reminder_sent_at = Column(DateTime, nullable=True)

    # Soft delete
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    actual_start_time = Column(DateTime, nullable=True)
    actual_end_time = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from quietblocks.models.quiet_block import QuietBlock
        return QuietBlock(
            id=self.id,
            user_id=self.user_id,
            title=self.title,
            description=self.description,
            start_time=self.start_time,
            end_time=self.end_time,
            status=value_to_enum(self.status, QuietBlockStatus, QuietBlockStatus.SCHEDULED),
            priority=value_to_enum(self.priority, Priority, Priority.MEDIUM),
            tags=self.tags or [],
            is_private=self.is_private,
            location=self.location,
            notes=self.notes,
            reminder_config=ReminderConfig(**(self.reminder_config or {})),
            reminder_scheduled_at=self.reminder_scheduled_at,
            reminder_sent=self.reminder_sent,
            reminder_sent_at=self.reminder_sent_at,
            is_deleted=self.is_deleted,
            deleted_at=self.deleted_at,
            actual_start_time=self.actual_start_time,
            actual_end_time=self.actual_end_time,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, block):
        """Create database model from Pydantic model."""
        return cls(
            id=block.id,
            user_id=block.user_id,
            title=block.title,
            description=block.description,
            start_time=block.start_time,
            end_time=block.end_time,
            status=enum_to_value(block.status),
            priority=enum_to_value(block.priority),
            tags=list(block.tags),
            is_private=block.is_private,
            location=block.location,
            notes=block.notes,
            reminder_config=block.reminder_config.model_dump(),
            reminder_scheduled_at=block.reminder_scheduled_at,
            reminder_sent=block.reminder_sent,
            reminder_sent_at=block.reminder_sent_at,
            is_deleted=block.is_deleted,
            deleted_at=block.deleted_at,
            actual_start_time=block.actual_start_time,
            actual_end_time=block.actual_end_time,
            created_at=block.created_at,
            updated_at=block.updated_at,
        )

    def apply_pydantic(self, block) -> None:
        """Copy mutable fields from a Pydantic model onto this row."""
        self.title = block.title
        self.description = block.description
        self.start_time = block.start_time
        self.end_time = block.end_time
        self.status = enum_to_value(block.status)
        self.priority = enum_to_value(block.priority)
        self.tags = list(block.tags)
        self.is_private = block.is_private
        self.location = block.location
        self.notes = block.notes
        self.reminder_config = block.reminder_config.model_dump()
        self.reminder_scheduled_at = block.reminder_scheduled_at
        self.reminder_sent = block.reminder_sent
        self.reminder_sent_at = block.reminder_sent_at
        self.is_deleted = block.is_deleted
        self.deleted_at = block.deleted_at
        self.actual_start_time = block.actual_start_time
        self.actual_end_time = block.actual_end_time
        self.updated_at = block.updated_at


class ReminderDeliveryDB(Base):
    """One reminder delivery attempt (audit), separate from the block row."""

    __tablename__ = "reminder_deliveries"
    __table_args__ = (
        UniqueConstraint("block_id", "attempt_number", name="uq_reminder_delivery_attempt"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    block_id = Column(String, ForeignKey("quiet_blocks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    recipient = Column(String, nullable=False)
    status = Column(String, nullable=False)
    provider_message_id = Column(String, nullable=True)
    error = Column(String, nullable=True)
    attempted_at = Column(DateTime, nullable=False, default=utc_now)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from quietblocks.models.delivery_attempt import ReminderDeliveryAttempt
        return ReminderDeliveryAttempt(
            id=self.id,
            block_id=self.block_id,
            user_id=self.user_id,
            attempt_number=self.attempt_number,
            recipient=self.recipient,
            status=value_to_enum(self.status, DeliveryStatus, DeliveryStatus.FAILED),
            provider_message_id=self.provider_message_id,
            error=self.error,
            attempted_at=self.attempted_at,
        )
