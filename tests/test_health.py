"""Health endpoint tests."""

from unittest.mock import AsyncMock, patch

import pytest


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status, version and database check."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert data["database"] == "ok"
    assert "version" in data
    assert data["connected_users"] == 0


@pytest.mark.asyncio
async def test_health_degraded_without_redis(client):
    """Redis is optional: unreachable Redis reports degraded, not an error."""
    data = (await client.get("/api/v1/health")).json()
    assert data["redis"].startswith("error")
    assert data["status"] == "degraded"


@pytest.mark.asyncio
async def test_health_uses_pooled_redis(client):
    """With the feed's Redis client connected, health is fully green."""
    fake = AsyncMock()
    with patch("chatrelay.realtime.pubsub._redis", fake):
        data = (await client.get("/api/v1/health")).json()
    fake.ping.assert_awaited_once()
    assert data["redis"] == "ok"
    assert data["status"] == "healthy"
