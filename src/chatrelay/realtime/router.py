"""Message router — the per-session chat protocol state machine.

Learn: Each WebSocket session moves through three states:

    UNJOINED ──join──▶ JOINED ──disconnect──▶ CLOSED
        └──────────────disconnect──────────────┘

send and get_messages are only accepted once JOINED. CLOSED is terminal;
events that arrive after it are dropped.

The send path has two phases:
1. Persist via MessageStore. This must succeed before anything else happens.
2. Ack the sender with the persisted record, then (best effort) push the
   same record to the receiver's channel if the registry knows one.

Persistence is exactly-once; live delivery is at-most-once. An offline
receiver is not an error: they pick the message up later through history.
Nothing is buffered per recipient and nothing is retried here.

All protocol errors (InvalidPayload, NotJoined, PersistenceError) are turned
into error events on the originating session's own channel and never
propagate out of handle().
"""

import enum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatrelay.events.types import (
    GET_MESSAGES,
    INVALID_PAYLOAD,
    JOIN_EVENTS,
    MESSAGE_ERROR,
    MESSAGE_SENT,
    MESSAGES_ERROR,
    MESSAGES_LIST,
    NOT_JOINED,
    PING,
    PONG,
    RECEIVE_MESSAGE,
    SEND_EVENTS,
)
from chatrelay.history.service import HistoryService
from chatrelay.history.store import MessageStore, PersistenceError
from chatrelay.realtime.channel import Channel
from chatrelay.realtime.pubsub import notify_message_created
from chatrelay.realtime.registry import ConnectionRegistry
from chatrelay.schemas.message import (
    ChatEvent,
    ErrorPayload,
    HistoryRequest,
    JoinPayload,
    MessageCreate,
    MessageRead,
)

logger = structlog.get_logger()


class SessionState(str, enum.Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    CLOSED = "closed"


class ChatError(Exception):
    """A protocol error reported back to the originating session."""

    kind = "ChatError"


class InvalidPayloadError(ChatError):
    kind = INVALID_PAYLOAD


class NotJoinedError(ChatError):
    kind = NOT_JOINED


class ChatSession:
    """State for one connected client. Owned by its WebSocket handler."""

    def __init__(self, channel: Channel):
        self.channel = channel
        self.state = SessionState.UNJOINED
        self.username: Optional[str] = None
        self.role: Optional[str] = None

    def require_joined(self) -> None:
        if self.state is not SessionState.JOINED:
            raise NotJoinedError("join before sending or reading messages")


def _parse(model: type[BaseModel], data: Any) -> BaseModel:
    if not isinstance(data, dict):
        raise InvalidPayloadError("payload must be a JSON object")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) or "payload" for err in e.errors()
        )
        raise InvalidPayloadError(f"invalid fields: {fields}") from e


def _error(kind: str, detail: str) -> dict[str, Any]:
    return ErrorPayload(error=kind, detail=detail).model_dump()


class MessageRouter:
    """Routes protocol events between sessions, the registry and the store."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.registry = registry
        self.session_factory = session_factory

    async def handle(self, session: ChatSession, event: ChatEvent) -> None:
        """Dispatch one inbound event. Unknown event types are ignored."""
        if session.state is SessionState.CLOSED:
            return

        if event.type in JOIN_EVENTS:
            await self.join(session, event.data)
        elif event.type in SEND_EVENTS:
            await self.send(session, event.data)
        elif event.type == GET_MESSAGES:
            await self.history(session, event.data)
        elif event.type == PING:
            session.channel.push(PONG)
        else:
            logger.debug("chat.unknown_event", type=event.type, channel=session.channel.id)

    # ─── join ─────────────────────────────────────────────

    async def join(self, session: ChatSession, data: Any) -> None:
        """Register the session under its claimed username.

        Re-joining while JOINED simply re-registers (possibly under a new
        name; the old name's entry is released first).
        """
        try:
            payload = _parse(JoinPayload, data)
        except InvalidPayloadError as e:
            session.channel.push(MESSAGE_ERROR, _error(e.kind, str(e)))
            return

        if session.username and session.username != payload.username:
            await self.registry.leave(session.channel)

        await self.registry.join(payload.username, payload.role, session.channel)
        session.username = payload.username
        session.role = payload.role
        session.state = SessionState.JOINED
        logger.info(
            "chat.joined",
            username=payload.username,
            role=payload.role,
            channel=session.channel.id,
        )

    # ─── send ─────────────────────────────────────────────

    async def send(self, session: ChatSession, data: Any) -> Optional[MessageRead]:
        """Persist, ack, then best-effort deliver. Returns the record on success."""
        try:
            session.require_joined()
            payload = _parse(MessageCreate, data)
        except ChatError as e:
            session.channel.push(MESSAGE_ERROR, _error(e.kind, str(e)))
            logger.info("chat.send_rejected", kind=e.kind, channel=session.channel.id)
            return None

        try:
            record = await self._persist(payload)
        except PersistenceError as e:
            # Not recorded, so nothing is delivered either.
            session.channel.push(
                MESSAGE_ERROR,
                _error(e.kind, "message could not be stored"),
            )
            logger.error(
                "chat.persist_failed",
                sender=payload.sender_name,
                receiver=payload.receiver_name,
                error=str(e),
            )
            return None

        wire = record.to_wire()
        session.channel.push(MESSAGE_SENT, wire)

        receiver_channel = await self.registry.lookup(record.receiver_name)
        delivered = False
        if receiver_channel is not None:
            delivered = receiver_channel.push(RECEIVE_MESSAGE, wire)

        logger.info(
            "chat.message_persisted",
            message_id=record.id,
            sender=record.sender_name,
            receiver=record.receiver_name,
            delivered=delivered,
        )

        await notify_message_created(wire)
        return record

    async def _persist(self, payload: MessageCreate) -> MessageRead:
        try:
            async with self.session_factory() as db:
                row = await MessageStore(db).create(
                    sender_name=payload.sender_name,
                    sender_role=payload.sender_role,
                    receiver_name=payload.receiver_name,
                    receiver_role=payload.receiver_role,
                    message=payload.message,
                )
                return MessageRead.model_validate(row)
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

    # ─── history ──────────────────────────────────────────

    async def history(self, session: ChatSession, data: Any) -> None:
        """Reply with every message involving the requested username."""
        try:
            session.require_joined()
            payload = _parse(HistoryRequest, data)
        except ChatError as e:
            session.channel.push(MESSAGES_ERROR, _error(e.kind, str(e)))
            return

        try:
            async with self.session_factory() as db:
                messages = await HistoryService(db).messages_for_user(payload.username)
        except SQLAlchemyError as e:
            session.channel.push(
                MESSAGES_ERROR,
                _error(PersistenceError.kind, "messages could not be loaded"),
            )
            logger.error("chat.history_failed", username=payload.username, error=str(e))
            return

        session.channel.push(MESSAGES_LIST, [m.to_wire() for m in messages])

    # ─── disconnect ───────────────────────────────────────

    async def disconnect(self, session: ChatSession) -> None:
        """Close the session for good and release its registry entry."""
        if session.state is SessionState.CLOSED:
            return
        session.state = SessionState.CLOSED
        await self.registry.leave(session.channel)
        session.channel.close()
        logger.info(
            "chat.disconnected",
            username=session.username,
            channel=session.channel.id,
        )
