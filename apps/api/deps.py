"""FastAPI dependencies."""

from collections.abc import AsyncGenerator

import redis.asyncio as redis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from apps.matching.access import conversation_for_participant
from apps.matching.engine import MatchEngine
from apps.realtime.hub import ConnectionRegistry, hub
from apps.realtime.session import JoinGuard
from apps.storage.blob import BlobStore
from apps.storage.blob import get_blob_store as _get_blob_store
from apps.workers.notifier import Notifier, notifier
from core.db import AsyncSessionLocal
from core.db import get_db as _get_db
from core.redis import get_redis as _get_redis


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async for session in _get_db():
        yield session


async def get_redis_client() -> redis.Redis:
    """Get Redis client dependency."""
    return await _get_redis()


def get_hub() -> ConnectionRegistry:
    return hub


def get_notifier() -> Notifier:
    return notifier


def get_blob_store() -> BlobStore:
    return _get_blob_store()


async def _conversation_access_guard(user_id: int, conversation_id: int) -> bool:
    async with AsyncSessionLocal() as db:
        return await conversation_for_participant(db, conversation_id, user_id) is not None


def get_join_guard() -> JoinGuard:
    """Guard consulted before a WebSocket session joins a conversation."""
    return _conversation_access_guard


async def get_match_engine(
    db: AsyncSession = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis_client),
    registry: ConnectionRegistry = Depends(get_hub),
    sink: Notifier = Depends(get_notifier),
) -> MatchEngine:
    return MatchEngine(db, notifier=sink, hub=registry, redis_client=redis_client)
