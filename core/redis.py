import redis.asyncio as redis

from core.config import settings

_redis_client: redis.Redis | None = None

SESSION_KEY = "session:{user_id}"
MATCH_KEY = "match:{match_id}"


async def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    global _redis_client
    if _redis_client is None:
        _redis_client = await redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


async def store_session(client: redis.Redis, user_id: int, fields: dict, ttl_seconds: int) -> None:
    """Write the login session hash for a user and set its lifetime."""
    key = SESSION_KEY.format(user_id=user_id)
    await client.hset(key, mapping=fields)
    await client.expire(key, ttl_seconds)


async def drop_session(client: redis.Redis, user_id: int) -> None:
    await client.delete(SESSION_KEY.format(user_id=user_id))
