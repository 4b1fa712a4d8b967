"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from friendrec.config import settings
from friendrec.core.decay_worker import DecayWorker
from friendrec.core.dlq_replay_worker import DlqReplayWorker
from friendrec.core.logging_config import configure_logging
from friendrec.db.database import async_session, engine, Base
from friendrec.db.redis import create_redis_client, close_redis
from friendrec.services.friend_events import create_friend_event_handler


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)

    # Startup: create tables (dev only; use Alembic in production)
    import friendrec.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.redis = create_redis_client(settings.REDIS_URL)
    # Event intake for in-process producers (see get_friend_event_handler)
    handler = create_friend_event_handler(app.state.redis, async_session)
    app.state.friend_events = handler

    decay_worker = DecayWorker(handler.interactions)
    if settings.DECAY_ENABLED:
        decay_worker.start()
    app.state.decay_worker = decay_worker

    replay_worker = DlqReplayWorker(handler.dead_letters, handler, app.state.redis)
    if settings.DLQ_REPLAY_ENABLED:
        replay_worker.start()
    app.state.dlq_replay_worker = replay_worker
    yield
    # Shutdown: stop background work, then close connections
    await replay_worker.stop()
    await decay_worker.stop()
    await engine.dispose()
    await close_redis(app.state.redis)


app = FastAPI(
    title="Friend Recommendation API",
    description="Friend-of-friend recommendations ranked by interaction score",
    version="0.1.0",
    lifespan=lifespan,
)

# --- Routes ---
from friendrec.api.routes import recommend  # noqa: E402

app.include_router(recommend.router, prefix="/api/friends", tags=["friends"])


@app.get("/health")
async def health_check():
    return {"status": "ok"}
