"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sgmi.api.realtime import router as realtime_router
from sgmi.api.v1.router import api_v1_router
from sgmi.core.config import settings
from sgmi.core.database import async_session_factory, close_db, init_db
from sgmi.core.redis import close_redis, init_redis
from sgmi.db.seed import seed_if_empty
from sgmi.realtime.gateway import RealtimeGateway
from sgmi.realtime.manager import ConnectionManager
from sgmi.realtime.timers import BatchTimerBroadcaster
from sgmi.services.batch_service import BatchService
from sgmi.services.plan_completion import PlanCompletionWatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    logger.info("Starting %s ...", settings.PROJECT_NAME)

    # Startup
    await init_db()
    logger.info("Database initialized")

    if settings.SEED_DEMO_DATA:
        async with async_session_factory() as session:
            result = await seed_if_empty(session)
            if result:
                await session.commit()
                logger.info("Demo data seeded: %s", result)
            else:
                logger.info("Database already has data, skipping seed")

    if await init_redis(app.state) is not None:
        logger.info("Redis connected")

    manager = ConnectionManager(
        heartbeat_interval=settings.WS_HEARTBEAT_INTERVAL_SECONDS,
        outbox_size=settings.WS_OUTBOX_SIZE,
    )
    watcher = PlanCompletionWatcher(async_session_factory, manager)
    batch_service = BatchService(async_session_factory, manager, completion_watcher=watcher)
    timers = BatchTimerBroadcaster(
        manager, batch_service.list_in_progress, interval=settings.WS_TIMER_INTERVAL_SECONDS
    )

    app.state.connection_manager = manager
    app.state.batch_service = batch_service
    app.state.realtime_gateway = RealtimeGateway(
        manager,
        batch_service.perform_action,
        settings.JWT_SECRET,
        settings.JWT_ALGORITHM,
    )
    app.state.batch_timers = timers

    manager.start()
    timers.start()
    logger.info("Realtime hub listening on %s", settings.WS_PATH)

    yield

    # Shutdown
    await timers.stop()
    await manager.close()
    logger.info("Realtime hub stopped")

    await close_redis(app.state)
    logger.info("Redis disconnected")

    await close_db()
    logger.info("Database disconnected")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept"],
)

# Register API v1 router and the websocket endpoint
app.include_router(api_v1_router, prefix="/api/v1")
app.include_router(realtime_router)
