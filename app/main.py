import asyncio
import logging
from contextlib import asynccontextmanager
from contextlib import suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import engine
from app.services.live_event_bus import listen_fixture_snapshots, close_redis
from app.services.websocket_manager import get_websocket_manager

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    stop_event = asyncio.Event()

    # Snapshots built by other processes go straight to local viewers.
    manager = get_websocket_manager()
    subscriber_task = asyncio.create_task(
        listen_fixture_snapshots(manager.broadcast_fixture, stop_event=stop_event)
    )
    logger.info("Live fixture service started (atomic writes: %s)", settings.live_atomic_writes)
    yield
    # Shutdown
    stop_event.set()
    subscriber_task.cancel()
    with suppress(asyncio.CancelledError):
        await subscriber_task

    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Matchday Live",
    description="Live fixture scoring, clock control and viewer feed",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
_origins = (
    settings.allowed_origins.split(",")
    if settings.allowed_origins != "*"
    else ["*"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# Import and include routers after app is created
from app.api.router import api_router
app.include_router(api_router, prefix="/api/v1")
