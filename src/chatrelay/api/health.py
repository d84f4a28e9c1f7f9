"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and its
dependencies are reachable. Postgres/SQLite is required; Redis is optional,
so a Redis outage only reports "degraded".
"""

from fastapi import APIRouter, Request
from redis.exceptions import RedisError
from sqlalchemy import text

from chatrelay import __version__
from chatrelay.db.engine import engine
from chatrelay.realtime.pubsub import get_redis, redis_enabled

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    # Check database
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    # Check Redis (the same pooled client the event feed publishes on)
    if not redis_enabled():
        checks["redis"] = "error: not connected"
    else:
        try:
            await get_redis().ping()
            checks["redis"] = "ok"
        except RedisError as e:
            checks["redis"] = f"error: {e}"

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k != "version"
    ) else "degraded"

    online = await request.app.state.registry.online()
    return {"status": status, "connected_users": len(online), **checks}
