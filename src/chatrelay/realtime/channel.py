"""Per-session outbound channel.

Learn: A Channel is the mailbox the relay pushes events into for one
WebSocket session. The router never touches the socket itself; a writer
task owned by the WebSocket handler drains the mailbox onto the wire. That
keeps socket I/O out of the registry lock and lets a slow client delay only
its own deliveries.

push() never blocks. Once closed, a channel silently drops further pushes:
a send racing a disconnect is a lost live delivery, not an error (the
message is already persisted).
"""

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Optional


class Channel:
    """Outbound event mailbox for one session."""

    def __init__(self, channel_id: Optional[str] = None):
        self.id = channel_id or uuid.uuid4().hex
        self._queue: asyncio.Queue[Optional[dict[str, Any]]] = asyncio.Queue()
        self._closed = False

    def __repr__(self) -> str:
        return f"Channel({self.id!r})"

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event_type: str, data: Any = None) -> bool:
        """Queue an event for delivery. Returns False if the channel is closed."""
        if self._closed:
            return False
        self._queue.put_nowait({"type": event_type, "data": data})
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)  # wake the writer

    def pending(self) -> list[dict[str, Any]]:
        """Take every queued event without waiting."""
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not None:
                events.append(item)
        return events

    async def drain(self, send: Callable[[dict[str, Any]], Awaitable[None]]) -> None:
        """Forward queued events to send() until the channel is closed."""
        while True:
            item = await self._queue.get()
            if item is None:
                return
            await send(item)
