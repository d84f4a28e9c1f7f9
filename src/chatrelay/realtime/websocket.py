"""WebSocket endpoint — the live side of the chat relay.

Learn: Each client connects to /ws/chat. The handler owns one ChatSession
and runs two concurrent tasks:
1. Reader — parses inbound frames and feeds them to the MessageRouter
2. Writer — drains the session's Channel onto the socket

When either side finishes (usually client disconnect), the other is
cancelled, the session is closed and its registry entry released.

Identity is not verified here: the username/role in the join event were
already authenticated upstream and are trusted as given.
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.websockets import WebSocketState

from chatrelay.db.engine import get_session_factory
from chatrelay.realtime.channel import Channel
from chatrelay.realtime.router import ChatSession, MessageRouter
from chatrelay.schemas.message import ChatEvent

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/ws/chat")
async def chat_websocket(
    websocket: WebSocket,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """One chat session per connection."""
    await websocket.accept()

    relay = MessageRouter(websocket.app.state.registry, session_factory)
    session = ChatSession(Channel())
    logger.info("chat.connected", channel=session.channel.id)

    async def writer():
        """Forward queued events to the client."""
        try:
            await session.channel.drain(websocket.send_json)
        except (WebSocketDisconnect, RuntimeError, asyncio.CancelledError):
            pass

    async def reader():
        """Read frames until the client goes away. Non-text frames are skipped."""
        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    return
                text = frame.get("text")
                if text is None:
                    continue
                try:
                    event = ChatEvent.model_validate(json.loads(text))
                except (json.JSONDecodeError, ValidationError):
                    continue
                try:
                    await relay.handle(session, event)
                except Exception:
                    # A fault in one event must not take the session down.
                    logger.exception(
                        "chat.event_failed",
                        type=event.type,
                        channel=session.channel.id,
                    )
        except (WebSocketDisconnect, asyncio.CancelledError):
            pass

    writer_task = asyncio.create_task(writer())
    reader_task = asyncio.create_task(reader())

    try:
        done, pending = await asyncio.wait(
            [writer_task, reader_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    "chat.session_task_failed",
                    channel=session.channel.id,
                    error=repr(task.exception()),
                )
    finally:
        await relay.disconnect(session)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
