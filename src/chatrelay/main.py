"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (tables, Redis, engine).
Middleware, CORS, routers and the shared ConnectionRegistry are all
wired up here, so each concern stays in its own module.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatrelay import __version__
from chatrelay.api import api_router
from chatrelay.config import settings
from chatrelay.realtime.registry import ConnectionRegistry

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown.
    """
    logger.info(
        "chatrelay.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from chatrelay.db.engine import engine, init_models

    if settings.auto_create_tables:
        await init_models(engine)

    from chatrelay.realtime.pubsub import close_redis, init_redis
    try:
        await init_redis()
        logger.info("chatrelay.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("chatrelay.redis_unavailable", error=str(e))
        # Redis is optional — chat works without the event feed

    yield

    logger.info("chatrelay.shutdown")
    await close_redis()
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Chat Relay",
        description="Real-time customer/staff chat relay with persisted history",
        version=__version__,
        lifespan=lifespan,
    )

    # One registry per app instance — the only state shared between sessions.
    app.state.registry = ConnectionRegistry()

    # ── Middleware stack ──────────────────────────────────────
    # Request flow: RequestId → CORS → handler
    from chatrelay.middleware.request_id import RequestIdMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    from chatrelay.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: chatrelay.main:app)
app = create_app()
