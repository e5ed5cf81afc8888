"""initial qualification schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "conversations",
        sa.Column("id", sa.String(length=160), nullable=False),
        sa.Column("history", sa.JSON(), nullable=False),
        sa.Column("facts", sa.JSON(), nullable=False),
        sa.Column("greeted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_conversations_updated_at", "conversations", ["updated_at"])

    op.create_table(
        "processed_messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("message_id", sa.String(length=255), nullable=False),
        sa.Column("conversation_id", sa.String(length=160), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_processed_messages_message_id", "processed_messages", ["message_id"], unique=True
    )
    op.create_index(
        "ix_processed_messages_conversation_id", "processed_messages", ["conversation_id"]
    )
    op.create_index("ix_processed_messages_processed_at", "processed_messages", ["processed_at"])

    op.create_table(
        "client_profiles",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("clinic", sa.String(length=255), nullable=True),
        sa.Column("phone_number_id", sa.String(length=64), nullable=True),
        sa.Column("wa_token", sa.Text(), nullable=True),
        sa.Column("openai_key", sa.Text(), nullable=True),
        sa.Column("prompt", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_client_profiles_status", "client_profiles", ["status"])
    op.create_index("ix_client_profiles_phone_number_id", "client_profiles", ["phone_number_id"])

    op.create_table(
        "system_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("level", sa.String(length=10), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("conversation_id", sa.String(length=160), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_system_events_created_at", "system_events", ["created_at"])
    op.create_index("ix_system_events_level", "system_events", ["level"])
    op.create_index("ix_system_events_event_type", "system_events", ["event_type"])
    op.create_index("ix_system_events_conversation_id", "system_events", ["conversation_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_system_events_conversation_id", table_name="system_events")
    op.drop_index("ix_system_events_event_type", table_name="system_events")
    op.drop_index("ix_system_events_level", table_name="system_events")
    op.drop_index("ix_system_events_created_at", table_name="system_events")
    op.drop_table("system_events")

    op.drop_index("ix_client_profiles_phone_number_id", table_name="client_profiles")
    op.drop_index("ix_client_profiles_status", table_name="client_profiles")
    op.drop_table("client_profiles")

    op.drop_index("ix_processed_messages_processed_at", table_name="processed_messages")
    op.drop_index("ix_processed_messages_conversation_id", table_name="processed_messages")
    op.drop_index("ix_processed_messages_message_id", table_name="processed_messages")
    op.drop_table("processed_messages")

    op.drop_index("ix_conversations_updated_at", table_name="conversations")
    op.drop_table("conversations")
