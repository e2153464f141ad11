"""FastAPI application factory.

create_app() returns a configured FastAPI instance. The lifespan manages
startup/shutdown: Redis for the real-time layer, the rate limiter's
cleanup loop, and the database engine.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from teamchat import __version__
from teamchat.api import api_router
from teamchat.config import settings

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "teamchat.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from teamchat.realtime.pubsub import close_redis, init_redis
    try:
        await init_redis()
        logger.info("teamchat.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("teamchat.redis_unavailable", error=str(e))
        # Redis is optional: mutations and notifications work without live updates

    from teamchat.ratelimit.limiter import rate_limiter
    cleanup_task = asyncio.create_task(
        rate_limiter.run_cleanup_loop(settings.rate_limit_cleanup_interval_seconds)
    )

    yield

    # Shutdown
    logger.info("teamchat.shutdown")

    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    await close_redis()

    from teamchat.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Teamchat",
        description="Team chat backend: real-time broadcast and notification fan-out",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → RateLimit → CORS → handler

    from teamchat.middleware.rate_limit import RateLimitMiddleware
    from teamchat.middleware.request_id import RequestIdMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        limit=settings.rate_limit_requests,
        window_ms=settings.rate_limit_window_ms,
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    from teamchat.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: teamchat.main:app)
app = create_app()
