"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Alembic auto-generates migrations by comparing these models to the actual DB.

The messages table is an append-only log. Rows are inserted by the
MessageStore and never updated or deleted; ordering is (created_at, id).
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(Base):
    """One chat message between two named participants.

    Learn: Roles are stored for display only — nothing in the relay uses
    them for access control. created_at is set client-side (utcnow) rather
    than with server_default so SQLite keeps sub-second precision; id breaks
    ties when two rows share a timestamp.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_sender", "sender_name", "created_at"),
        Index("idx_messages_receiver", "receiver_name", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_name: Mapped[str] = mapped_column(String(100), nullable=False)
    sender_role: Mapped[str] = mapped_column(String(50), nullable=False)
    receiver_name: Mapped[str] = mapped_column(String(100), nullable=False)
    receiver_role: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
