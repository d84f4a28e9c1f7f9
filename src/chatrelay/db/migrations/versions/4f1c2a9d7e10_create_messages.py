"""create messages table

The append-only chat log. No update/delete paths exist in the application,
so the table carries no updated_at column and no soft-delete flag.

Revision ID: 4f1c2a9d7e10
Revises:
Create Date: 2026-10-19 10:12:41.503118
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f1c2a9d7e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("sender_name", sa.String(100), nullable=False),
        sa.Column("sender_role", sa.String(50), nullable=False),
        sa.Column("receiver_name", sa.String(100), nullable=False),
        sa.Column("receiver_role", sa.String(50), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_messages_sender", "messages", ["sender_name", "created_at"])
    op.create_index("idx_messages_receiver", "messages", ["receiver_name", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_messages_receiver", table_name="messages")
    op.drop_index("idx_messages_sender", table_name="messages")
    op.drop_table("messages")
