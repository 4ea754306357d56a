"""Create users, quiet_blocks and reminder_deliveries tables

Revision ID: 4a7e1c9b2d30
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4a7e1c9b2d30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("notification_email", sa.String(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=True),
        sa.Column("reminder_minutes_before", sa.Integer(), nullable=False),
        sa.Column("default_block_duration_min", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "quiet_blocks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("priority", sa.String(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("is_private", sa.Boolean(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("reminder_config", sa.JSON(), nullable=False),
        sa.Column("reminder_scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("reminder_sent", sa.Boolean(), nullable=False),
        sa.Column("reminder_sent_at", sa.DateTime(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("actual_start_time", sa.DateTime(), nullable=True),
        sa.Column("actual_end_time", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_quiet_blocks_user_id"), "quiet_blocks", ["user_id"], unique=False)
    op.create_index(op.f("ix_quiet_blocks_start_time"), "quiet_blocks", ["start_time"], unique=False)
    op.create_index(op.f("ix_quiet_blocks_status"), "quiet_blocks", ["status"], unique=False)
    op.create_index(op.f("ix_quiet_blocks_is_deleted"), "quiet_blocks", ["is_deleted"], unique=False)
    op.create_index("ix_quiet_blocks_user_start", "quiet_blocks", ["user_id", "start_time"], unique=False)
    op.create_index(
        "ix_quiet_blocks_reminder_pending",
        "quiet_blocks",
        ["reminder_sent", "status", "reminder_scheduled_at"],
        unique=False,
    )

    op.create_table(
        "reminder_deliveries",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("block_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("recipient", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("provider_message_id", sa.String(), nullable=True),
        sa.Column("error", sa.String(), nullable=True),
        sa.Column("attempted_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["block_id"], ["quiet_blocks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("block_id", "attempt_number", name="uq_reminder_delivery_attempt"),
    )
    op.create_index(op.f("ix_reminder_deliveries_block_id"), "reminder_deliveries", ["block_id"], unique=False)
    op.create_index(op.f("ix_reminder_deliveries_user_id"), "reminder_deliveries", ["user_id"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_reminder_deliveries_user_id"), table_name="reminder_deliveries")
    op.drop_index(op.f("ix_reminder_deliveries_block_id"), table_name="reminder_deliveries")
    op.drop_table("reminder_deliveries")
    op.drop_index("ix_quiet_blocks_reminder_pending", table_name="quiet_blocks")
    op.drop_index("ix_quiet_blocks_user_start", table_name="quiet_blocks")
    op.drop_index(op.f("ix_quiet_blocks_is_deleted"), table_name="quiet_blocks")
    op.drop_index(op.f("ix_quiet_blocks_status"), table_name="quiet_blocks")
    op.drop_index(op.f("ix_quiet_blocks_start_time"), table_name="quiet_blocks")
    op.drop_index(op.f("ix_quiet_blocks_user_id"), table_name="quiet_blocks")
    op.drop_table("quiet_blocks")
    op.drop_table("users")
