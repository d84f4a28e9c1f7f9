"""Redis pub/sub — outward feed of chat activity for other services.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the event
is lost. That's fine here: this feed is a notification for the rest of the
application (dashboards, CRM hooks), never a delivery path for chat
participants. The messages table remains the source of truth.

Channel naming: chatrelay:events:{username}
Redis is optional. When it was never initialised, publishing is a no-op.
"""

import json
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from chatrelay.config import settings
from chatrelay.events.types import MESSAGE_CREATED

logger = structlog.get_logger()

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection before exposing it
    try:
        await client.ping()
    except RedisError:
        await client.aclose()
        raise
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def redis_enabled() -> bool:
    return _redis is not None


def channel_for(username: str) -> str:
    return f"chatrelay:events:{username}"


async def publish_event(
    username: str,
    event_type: str,
    data: dict[str, Any],
) -> None:
    """Publish an event to a user's Redis channel."""
    r = get_redis()
    payload = json.dumps({
        "type": event_type,
        **data,
    })
    await r.publish(channel_for(username), payload)


async def notify_message_created(record: dict[str, Any]) -> None:
    """Best-effort message.created notification for the receiver's channel.

    Never raises: the message is already persisted and acknowledged, so a
    Redis hiccup only costs the notification.
    """
    if not redis_enabled():
        return
    try:
        await publish_event(record["receiverName"], MESSAGE_CREATED, record)
    except RedisError as e:
        logger.warning(
            "pubsub.publish_failed",
            message_id=record.get("id"),
            error=str(e),
        )
