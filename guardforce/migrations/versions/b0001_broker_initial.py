"""Broker message table

Revision ID: b0001_broker_initial
Revises:
Create Date: 2026-10-17 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "b0001_broker_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = ("broker",)
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "broker_messages",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("message_id", sa.String(length=36), nullable=False),
        sa.Column("message_type", sa.String(length=100), nullable=False),
        sa.Column("queue", sa.String(length=100), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("scheduled_at_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("message_id", "queue", name="uq_broker_messages_message_queue"),
    )
    op.create_index("ix_broker_messages_message_id", "broker_messages", ["message_id"])
    op.create_index("ix_broker_messages_message_type", "broker_messages", ["message_type"])
    op.create_index("ix_broker_messages_queue", "broker_messages", ["queue"])
    op.create_index("ix_broker_messages_status", "broker_messages", ["status"])
    op.create_index("ix_broker_messages_scheduled_at_utc", "broker_messages", ["scheduled_at_utc"])


def downgrade() -> None:
    op.drop_index("ix_broker_messages_scheduled_at_utc", table_name="broker_messages")
    op.drop_index("ix_broker_messages_status", table_name="broker_messages")
    op.drop_index("ix_broker_messages_queue", table_name="broker_messages")
    op.drop_index("ix_broker_messages_message_type", table_name="broker_messages")
    op.drop_index("ix_broker_messages_message_id", table_name="broker_messages")
    op.drop_table("broker_messages")
