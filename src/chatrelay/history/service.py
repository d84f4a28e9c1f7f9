"""History query service — read-only access to past conversations.

Learn: A thin facade between external callers (HTTP routes, the chat
router's get_messages) and the MessageStore. Same filters, same ordering;
it only converts rows to the wire shape. It performs no authorization:
whoever calls it has already decided the caller may read.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.history.store import MessageStore
from chatrelay.schemas.message import MessageRead


class HistoryService:
    """Read-only queries over the message log."""

    def __init__(self, db: AsyncSession):
        self.store = MessageStore(db)

    async def messages_for_user(self, username: str) -> list[MessageRead]:
        rows = await self.store.find_by_participant(username)
        return [MessageRead.model_validate(r) for r in rows]

    async def conversation(self, user_a: str, user_b: str) -> list[MessageRead]:
        rows = await self.store.find_conversation(user_a, user_b)
        return [MessageRead.model_validate(r) for r in rows]
