"""Message history API routes — the request/response side of the chat.

Learn: These routes never touch the ConnectionRegistry. POST /messages is
the non-live ingestion path (other services recording a message); it stores
the message but does not push it to any connected session. Reads go through
the HistoryService with the same ordering the WebSocket get_messages uses.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.db.engine import get_db
from chatrelay.history import HistoryService, MessageStore, PersistenceError
from chatrelay.realtime.pubsub import notify_message_created
from chatrelay.schemas.message import MessageCreate, MessageRead

router = APIRouter()


def _history(db: AsyncSession = Depends(get_db)) -> HistoryService:
    return HistoryService(db)


@router.post("/messages", response_model=MessageRead, status_code=201)
async def create_message(
    body: MessageCreate,
    db: AsyncSession = Depends(get_db),
):
    """Record a message without live delivery."""
    try:
        row = await MessageStore(db).create(
            sender_name=body.sender_name,
            sender_role=body.sender_role,
            receiver_name=body.receiver_name,
            receiver_role=body.receiver_role,
            message=body.message,
        )
    except PersistenceError:
        raise HTTPException(status_code=503, detail="Message could not be stored")

    record = MessageRead.model_validate(row)
    await notify_message_created(record.to_wire())
    return record


@router.get("/messages/conversation/{user1}/{user2}", response_model=list[MessageRead])
async def get_conversation(
    user1: str,
    user2: str,
    svc: HistoryService = Depends(_history),
):
    """Messages exchanged between two users, oldest first."""
    try:
        return await svc.conversation(user1, user2)
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail="Messages could not be loaded")


@router.get("/messages/{username}", response_model=list[MessageRead])
async def get_messages_for_user(
    username: str,
    svc: HistoryService = Depends(_history),
):
    """Every message a user sent or received, oldest first."""
    try:
        return await svc.messages_for_user(username)
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail="Messages could not be loaded")
