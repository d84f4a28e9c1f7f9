"""Message store — append-only message log.

Learn: A message row is written once and never touched again. The store has
no update or delete methods and keeps no derived tables (unread counts
etc.), so the log stays trivially consistent and can be replayed.

Id assignment is the database's autoincrement primary key, which is atomic
under concurrent inserts. Ordering everywhere is (created_at, id) ascending.
"""

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.db.models import Message, utcnow
from chatrelay.events.types import PERSISTENCE_ERROR

logger = structlog.get_logger()


class PersistenceError(Exception):
    """Raised when a message could not be appended to the log."""

    kind = PERSISTENCE_ERROR


class MessageStore:
    """Append-only message log backed by the messages table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        sender_name: str,
        sender_role: str,
        receiver_name: str,
        receiver_role: str,
        message: str,
    ) -> Message:
        """Append a message. Returns the row with id and created_at assigned.

        Raises PersistenceError if the insert or commit fails; the session is
        rolled back so nothing partial is left behind.
        """
        row = Message(
            sender_name=sender_name,
            sender_role=sender_role,
            receiver_name=receiver_name,
            receiver_role=receiver_role,
            message=message,
            created_at=utcnow(),
        )
        try:
            self.db.add(row)
            await self.db.flush()  # get the auto-generated id
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "store.append_failed",
                sender=sender_name,
                receiver=receiver_name,
                error=str(e),
            )
            raise PersistenceError(str(e)) from e
        return row

    async def find_by_participant(
        self,
        username: str,
    ) -> list[Message]:
        """All messages sent or received by username, oldest first."""
        query = (
            select(Message)
            .where(
                or_(
                    Message.sender_name == username,
                    Message.receiver_name == username,
                )
            )
            .order_by(Message.created_at, Message.id)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_conversation(
        self,
        user_a: str,
        user_b: str,
    ) -> list[Message]:
        """Messages exchanged between user_a and user_b, oldest first.

        The filter is symmetric, so (a, b) and (b, a) select the same rows.
        """
        query = (
            select(Message)
            .where(
                or_(
                    and_(
                        Message.sender_name == user_a,
                        Message.receiver_name == user_b,
                    ),
                    and_(
                        Message.sender_name == user_b,
                        Message.receiver_name == user_a,
                    ),
                )
            )
            .order_by(Message.created_at, Message.id)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count(self) -> int:
        result = await self.db.execute(select(func.count(Message.id)))
        return int(result.scalar() or 0)
