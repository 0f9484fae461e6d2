"""Health check endpoints."""

import logging

import redis.asyncio as redis
from fastapi import APIRouter, Depends, Response, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_hub, get_redis_client
from apps.realtime.hub import ConnectionRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def health_check(hub: ConnectionRegistry = Depends(get_hub)) -> dict[str, str | int | bool]:
    """Liveness plus the realtime hub state."""
    return {"status": "ok", "hub_running": hub.running, "ws_sessions": hub.session_count}


@router.get("/db")
async def health_check_db(response: Response, db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database health check failed: {e}")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}
    return {"status": "healthy", "database": "connected"}


@router.get("/redis")
async def health_check_redis(
    response: Response, redis_client: redis.Redis = Depends(get_redis_client)
) -> dict[str, str]:
    try:
        await redis_client.ping()
    except (RedisError, OSError) as e:
        logger.error(f"Redis health check failed: {e}")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unhealthy", "redis": "disconnected", "error": str(e)}
    return {"status": "healthy", "redis": "connected"}
