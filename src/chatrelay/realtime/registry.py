"""Connection registry — who is reachable right now, and on which channel.

Learn: This is the only shared mutable state in the relay. Every session
task calls join/leave/lookup concurrently, so the map lives behind an
asyncio.Lock and nothing outside this class ever sees the dict itself.

Policy is last-write-wins: a second join for the same username silently
replaces the first entry. The superseded session is not notified and stays
connected; it just stops receiving live deliveries. leave() matches on the
channel, so when that stale session later disconnects it cannot remove the
newer session's entry.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from chatrelay.realtime.channel import Channel

logger = structlog.get_logger()


@dataclass(frozen=True)
class ConnectionRecord:
    username: str
    role: str
    channel: Channel


class ConnectionRegistry:
    """Username → active channel, safe under concurrent access."""

    def __init__(self):
        self._entries: dict[str, ConnectionRecord] = {}
        self._lock = asyncio.Lock()

    async def join(self, username: str, role: str, channel: Channel) -> None:
        """Register (or re-register) username on channel. Last join wins."""
        record = ConnectionRecord(username=username, role=role, channel=channel)
        async with self._lock:
            previous = self._entries.get(username)
            self._entries[username] = record
        if previous is not None and previous.channel is not channel:
            logger.info(
                "registry.superseded",
                username=username,
                old_channel=previous.channel.id,
                new_channel=channel.id,
            )

    async def leave(self, channel: Channel) -> None:
        """Drop whichever entry is bound to channel. No-op if none is."""
        async with self._lock:
            for username, record in self._entries.items():
                if record.channel is channel:
                    del self._entries[username]
                    break

    async def lookup(self, username: str) -> Optional[Channel]:
        async with self._lock:
            record = self._entries.get(username)
        return record.channel if record else None

    async def online(self) -> list[str]:
        """Usernames currently registered, sorted."""
        async with self._lock:
            return sorted(self._entries)
