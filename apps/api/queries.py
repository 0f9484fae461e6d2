"""Read helpers reused across routers."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import ProfilePhoto


async def primary_photo_urls(db: AsyncSession, user_ids: list[int]) -> dict[int, str]:
    """Map user id to primary photo URL for the given users (one query)."""
    if not user_ids:
        return {}
    result = await db.execute(
        select(ProfilePhoto.user_id, ProfilePhoto.url).where(
            ProfilePhoto.user_id.in_(user_ids), ProfilePhoto.is_primary.is_(True)
        )
    )
    return {user_id: url for user_id, url in result.all()}
