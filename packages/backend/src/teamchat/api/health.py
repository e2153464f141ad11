"""Health check endpoint.

Postgres down means mutations fail, so the service is "down". Redis down
only costs live updates; mutations and notifications still land, so the
service is "degraded" and still answers 200.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from teamchat import __version__
from teamchat.config import settings
from teamchat.db import engine as db_engine
from teamchat.ratelimit.limiter import rate_limiter
from teamchat.realtime.pubsub import get_redis

router = APIRouter()


async def _check_database() -> str:
    try:
        async with db_engine.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        return f"error: {e}"
    return "ok"


async def _check_realtime() -> str:
    try:
        await get_redis().ping()
    except Exception as e:
        return f"error: {e}"
    return "ok"


@router.get("/health")
async def health_check():
    database = await _check_database()
    realtime = await _check_realtime()

    if database != "ok":
        status = "down"
    elif realtime != "ok":
        status = "degraded"
    else:
        status = "healthy"

    body = {
        "status": status,
        "version": __version__,
        "environment": settings.environment,
        "database": database,
        "realtime": realtime,
        "rate_limiter_keys": len(rate_limiter),
    }
    return JSONResponse(status_code=503 if status == "down" else 200, content=body)
