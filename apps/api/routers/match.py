"""Match endpoints."""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import select

from apps.api.deps import get_match_engine
from apps.api.queries import primary_photo_urls
from apps.api.schemas import UserPublic
from apps.matching.engine import MatchEngine
from core.auth import get_current_user_id
from models import User

router = APIRouter(prefix="/matches", tags=["matches"])
logger = logging.getLogger(__name__)


class MatchOut(BaseModel):
    id: int
    conversation_id: int | None
    user: UserPublic
    created_at: datetime


@router.post("/like/{user_id}")
async def like_user(
    user_id: int,
    response: Response,
    caller_id: int = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
) -> dict[str, Any]:
    """
    Like a user.

    Returns 200 for a one-sided like and 201 with the match when the like
    completes a mutual pair.
    """
    result = await engine.like(caller_id, user_id)
    if not result.matched:
        return {"message": "User liked successfully"}

    record = result.match
    other = await engine.db.scalar(select(User).where(User.id == record.other_user(caller_id)))
    photos = await primary_photo_urls(engine.db, [other.id])

    response.status_code = status.HTTP_201_CREATED
    return {
        "message": "It's a match!",
        "match": MatchOut(
            id=record.id,
            conversation_id=record.conversation_id,
            user=UserPublic.from_user(other, photos.get(other.id)),
            created_at=record.created_at,
        ),
    }


@router.post("/dislike/{user_id}")
async def dislike_user(
    user_id: int,
    caller_id: int = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
) -> dict[str, str]:
    await engine.dislike(caller_id, user_id)
    return {"message": "User disliked successfully"}


@router.get("")
async def get_matches(
    caller_id: int = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
) -> dict[str, list[MatchOut]]:
    views = await engine.list_matches(caller_id)
    photos = await primary_photo_urls(engine.db, [v.other_user.id for v in views])
    return {
        "matches": [
            MatchOut(
                id=v.match_id,
                conversation_id=v.conversation_id,
                user=UserPublic.from_user(v.other_user, photos.get(v.other_user.id)),
                created_at=v.created_at,
            )
            for v in views
        ]
    }


@router.delete("/{match_id}")
async def unmatch(
    match_id: int,
    caller_id: int = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
) -> dict[str, str]:
    await engine.unmatch(caller_id, match_id)
    return {"message": "Unmatched successfully"}
