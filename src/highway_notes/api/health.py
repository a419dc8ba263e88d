"""Health check endpoint.

Learn: Reports whether the process can reach its database and Redis.
The database is required, Redis only backs the per-IP rate limiter, so
both failures answer 200 with status "degraded" and the error text; a
load balancer decides what to do with that.

Redis is probed through the shared pool when lifespan managed to open
it, otherwise with a one-off connection so the report still says why.
"""

from fastapi import APIRouter, Request
from redis.asyncio import from_url
from sqlalchemy import text

from highway_notes import __version__
from highway_notes.cache import get_redis
from highway_notes.db.engine import engine

router = APIRouter()


async def _check_database() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        return f"error: {e}"
    return "ok"


async def _check_redis(url: str) -> str:
    try:
        await get_redis().ping()
        return "ok"
    except RuntimeError:
        pass
    except Exception as e:
        return f"error: {e}"

    client = from_url(url, socket_connect_timeout=1)
    try:
        await client.ping()
    except Exception as e:
        return f"error: {e}"
    finally:
        await client.aclose()
    return "ok"


@router.get("/health")
async def health_check(request: Request):
    checks = {
        "server": "ok",
        "database": await _check_database(),
        "redis": await _check_redis(request.app.state.settings.redis_url),
    }
    status = "healthy" if all(v == "ok" for v in checks.values()) else "degraded"
    return {"status": status, "version": __version__, **checks}
