"""Test fixtures — a throwaway SQLite database, rebuilt for every test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. CHATRELAY_DATABASE_URL is pointed at a temp SQLite file *before* anything
   imports chatrelay, so the app's own engine and session factory are the
   ones under test (no parallel wiring to drift out of sync).
2. Every test drops and recreates the tables, so ids start at 1 again and
   no rows leak between tests.
3. The engine uses NullPool for SQLite, which lets the same engine serve
   pytest-asyncio's loop and the TestClient's portal loop.

Redis points at a port nothing listens on, so the event feed stays off.
"""

import asyncio
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="chatrelay-tests-")
os.environ.setdefault("CHATRELAY_DATABASE_URL", f"sqlite+aiosqlite:///{_TMP}/chat.db")
os.environ.setdefault("CHATRELAY_REDIS_URL", "redis://127.0.0.1:1/0")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from chatrelay.db.engine import async_session_factory, engine  # noqa: E402
from chatrelay.db.models import Base  # noqa: E402
from chatrelay.main import create_app  # noqa: E402
from chatrelay.realtime.registry import ConnectionRegistry  # noqa: E402
from chatrelay.realtime.router import MessageRouter  # noqa: E402


async def _reset_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def _drop_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture()
async def tables():
    """Fresh, empty schema for one async test."""
    await _reset_tables()
    yield
    await _drop_tables()


@pytest_asyncio.fixture()
async def db_session(tables):
    """A session on the app's own factory."""
    async with async_session_factory() as session:
        yield session


@pytest.fixture()
def registry():
    return ConnectionRegistry()


@pytest_asyncio.fixture()
async def relay(tables, registry):
    """MessageRouter wired to a fresh registry and the test database."""
    return MessageRouter(registry, async_session_factory)


@pytest_asyncio.fixture()
async def client(tables):
    """HTTP client talking to a fresh app instance in-process.

    Learn: ASGITransport does not run the lifespan, which is fine here —
    the tables fixture already built the schema and Redis stays off.
    """
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def ws_client():
    """Synchronous TestClient for WebSocket tests (runs the real lifespan).

    Learn: Starlette's TestClient drives the app in its own event loop, so
    this fixture is sync and resets the schema with
    asyncio.run() instead of sharing pytest-asyncio's loop.
    """
    asyncio.run(_reset_tables())
    with TestClient(create_app()) as tc:
        yield tc
    asyncio.run(_drop_tables())
