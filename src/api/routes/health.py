from __future__ import annotations

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter
from sqlalchemy import text
from src.core.config import get_settings
from src.infrastructure.db.session import get_session_factory

router = APIRouter(tags=["Observability"])
logger = structlog.get_logger(__name__)

HEALTHY = {"ok", "skipped"}


async def check_postgres() -> dict:
    """Run a trivial query against the primary database."""
    try:
        session_factory = get_session_factory()
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
            return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "message": str(e)[:100]}


async def check_redis() -> dict:
    """Ping Redis when it backs the rate limiter; otherwise report it as skipped."""
    settings = get_settings()
    if settings.rate_limit_backend.lower() != "redis":
        return {"status": "skipped", "message": "rate limiter uses in-process counters"}

    try:
        import redis.asyncio as aioredis

        client = aioredis.from_url(settings.redis_url)
        try:
            await client.ping()
        finally:
            await client.aclose()
        return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "message": str(e)[:100]}


@router.get("/health", summary="Service health probe")
async def health_check() -> dict:
    """Return service and datastore status information."""
    settings = get_settings()

    datastores = {
        "postgres": await check_postgres(),
        "redis": await check_redis(),
    }
    healthy = all(check.get("status") in HEALTHY for check in datastores.values())

    payload = {
        "service": settings.app_name,
        "version": settings.version,
        "status": "ok" if healthy else "degraded",
        "timestamp": datetime.now(UTC).isoformat(),
        "datastores": datastores,
    }
    await logger.ainfo("health_probe", **payload)
    return payload
