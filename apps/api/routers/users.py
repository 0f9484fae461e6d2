"""Profile, discovery, favorites and safety endpoints."""

import logging
import uuid
from datetime import date
from pathlib import PurePath
from typing import Any, Literal

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy import delete, exists, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_blob_store, get_db
from apps.api.queries import primary_photo_urls
from apps.api.schemas import InterestOut, PhotoOut, UserOut, UserPublic
from apps.storage.blob import BlobStore, StorageError
from core.auth import get_current_user_id
from core.config import settings
from core.errors import BadRequest, Conflict, Internal, NotFound
from core.metrics import blocks_total, reports_total
from models import BlockedUser, Dislike, Favorite, Interest, Like, ProfilePhoto, Report, User, UserInterest

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)

KM_PER_DEGREE = 111


class ProfileOut(UserOut):
    photos: list[PhotoOut] = []
    interests: list[InterestOut] = []


class UpdateProfileRequest(BaseModel):
    first_name: str | None = Field(default=None, min_length=1)
    last_name: str | None = Field(default=None, min_length=1)
    bio: str | None = None
    location: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    interests: list[int] | None = None


class ReportRequest(BaseModel):
    reported_id: int
    reason: str = Field(min_length=1, max_length=64)
    description: str | None = None


async def _load_profile(db: AsyncSession, user_id: int) -> ProfileOut:
    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise NotFound("User not found")

    photos = await db.scalars(
        select(ProfilePhoto).where(ProfilePhoto.user_id == user_id).order_by(ProfilePhoto.order, ProfilePhoto.id)
    )
    interests = await db.scalars(
        select(Interest)
        .join(UserInterest, UserInterest.interest_id == Interest.id)
        .where(UserInterest.user_id == user_id)
        .order_by(Interest.name)
    )
    profile = ProfileOut.model_validate(user)
    profile.photos = [PhotoOut.model_validate(p) for p in photos]
    profile.interests = [InterestOut.model_validate(i) for i in interests]
    return profile


def _years_before(today: date, years: int) -> date:
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return today.replace(year=today.year - years, day=28)


async def _require_user(db: AsyncSession, user_id: int) -> None:
    if await db.scalar(select(User.id).where(User.id == user_id)) is None:
        raise NotFound("User not found")


@router.get("/profile")
async def get_profile(
    user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict[str, ProfileOut]:
    return {"user": await _load_profile(db, user_id)}


@router.put("/profile")
async def update_profile(
    body: UpdateProfileRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Partial update; interests are replaced when the list is provided."""
    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise NotFound("User not found")

    changes = body.model_dump(exclude_unset=True, exclude={"interests"})
    for field, value in changes.items():
        if field in ("first_name", "last_name") and value is None:
            continue
        setattr(user, field, value)

    if body.interests is not None:
        known = set(await db.scalars(select(Interest.id).where(Interest.id.in_(body.interests))))
        unknown = set(body.interests) - known
        if unknown:
            raise BadRequest(f"Unknown interests: {sorted(unknown)}")
        await db.execute(delete(UserInterest).where(UserInterest.user_id == user_id))
        db.add_all(UserInterest(user_id=user_id, interest_id=interest_id) for interest_id in known)

    await db.commit()
    logger.info(f"User {user_id} updated profile")
    return {"message": "Profile updated successfully", "user": await _load_profile(db, user_id)}


@router.post("/profile/photo", status_code=status.HTTP_201_CREATED)
async def upload_photo(
    photo: UploadFile = File(...),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> dict[str, Any]:
    if photo.content_type not in settings.allowed_image_types:
        raise BadRequest(f"Unsupported image type. Allowed: {', '.join(settings.allowed_image_types)}")

    data = await photo.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        raise BadRequest(f"File too large. Maximum size is {settings.max_file_size // (1024 * 1024)}MB")
    if not data:
        raise BadRequest("No photo provided")

    suffix = PurePath(photo.filename or "").suffix.lower()
    key = f"profile_photos/{user_id}_{uuid.uuid4()}{suffix}"
    try:
        url = await store.put(key, data, photo.content_type)
    except StorageError as e:
        raise Internal("Failed to upload photo") from e

    try:
        count = await db.scalar(select(func.count(ProfilePhoto.id)).where(ProfilePhoto.user_id == user_id))
        record = ProfilePhoto(user_id=user_id, url=url, storage_key=key, is_primary=count == 0, order=count)
        db.add(record)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to save photo {key} for user {user_id}: {e}")
        await _discard_blob(store, key)
        raise Internal("Failed to save photo") from e

    logger.info(f"User {user_id} uploaded photo {record.id}")
    return {"message": "Photo uploaded successfully", "photo": PhotoOut.model_validate(record)}


async def _discard_blob(store: BlobStore, key: str) -> None:
    try:
        await store.delete(key)
    except StorageError as e:
        logger.error(f"Failed to remove orphaned object {key}: {e}")


@router.delete("/profile/photo/{photo_id}")
async def delete_photo(
    photo_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> dict[str, str]:
    record = await db.scalar(
        select(ProfilePhoto).where(ProfilePhoto.id == photo_id, ProfilePhoto.user_id == user_id)
    )
    if record is None:
        raise NotFound("Photo not found")

    try:
        await store.delete(record.storage_key)
    except StorageError as e:
        # the row is removed even when the object delete fails
        logger.error(f"Failed to delete photo {photo_id} from storage: {e}")

    was_primary = record.is_primary
    await db.delete(record)
    await db.flush()

    if was_primary:
        successor = await db.scalar(
            select(ProfilePhoto)
            .where(ProfilePhoto.user_id == user_id)
            .order_by(ProfilePhoto.order, ProfilePhoto.id)
            .limit(1)
        )
        if successor is not None:
            successor.is_primary = True

    await db.commit()
    return {"message": "Photo deleted successfully"}


@router.get("/discover")
async def discover_users(
    age_min: int | None = Query(default=None, ge=18),
    age_max: int | None = Query(default=None, ge=18),
    gender: Literal["male", "female", "other"] | None = None,
    location: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    max_distance: int | None = Query(default=None, gt=0, description="Kilometers"),
    interests: list[int] | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=50),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """
    Candidate profiles for the caller.

    Excludes the caller, inactive or unverified accounts, users the caller
    blocked, and users the caller already liked or disliked. Distance is a
    flat-earth approximation (degrees * 111 km).
    """
    await _require_user(db, user_id)

    conditions = [
        User.id != user_id,
        User.is_active.is_(True),
        User.is_verified.is_(True),
        User.id.not_in(select(BlockedUser.blocked_id).where(BlockedUser.blocker_id == user_id)),
        User.id.not_in(select(Like.liked_id).where(Like.liker_id == user_id)),
        User.id.not_in(select(Dislike.disliked_id).where(Dislike.disliker_id == user_id)),
    ]

    today = date.today()
    if age_min is not None:
        conditions.append(User.date_of_birth <= _years_before(today, age_min))
    if age_max is not None:
        conditions.append(User.date_of_birth > _years_before(today, age_max + 1))
    if gender is not None:
        conditions.append(User.gender == gender)
    if location:
        conditions.append(User.location.ilike(f"%{location}%"))
    if latitude is not None and longitude is not None and max_distance is not None:
        dlat = User.latitude - latitude
        dlon = User.longitude - longitude
        radius = max_distance / KM_PER_DEGREE
        conditions += [
            User.latitude.is_not(None),
            User.longitude.is_not(None),
            dlat * dlat + dlon * dlon <= radius * radius,
        ]
    if interests:
        conditions.append(
            exists().where(UserInterest.user_id == User.id, UserInterest.interest_id.in_(interests))
        )

    total = await db.scalar(select(func.count(User.id)).where(*conditions))
    users = list(
        await db.scalars(
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
    )
    photos = await primary_photo_urls(db, [u.id for u in users])

    return {
        "users": [UserPublic.from_user(u, photos.get(u.id)) for u in users],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


@router.get("/favorites")
async def get_favorites(
    user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict[str, list[UserPublic]]:
    users = list(
        await db.scalars(
            select(User)
            .join(Favorite, Favorite.favorite_id == User.id)
            .where(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc())
        )
    )
    photos = await primary_photo_urls(db, [u.id for u in users])
    return {"favorites": [UserPublic.from_user(u, photos.get(u.id)) for u in users]}


@router.post("/favorites/{favorite_id}", status_code=status.HTTP_201_CREATED)
async def add_favorite(
    favorite_id: int, user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict[str, str]:
    await _require_user(db, favorite_id)

    existing = await db.scalar(
        select(Favorite.id).where(Favorite.user_id == user_id, Favorite.favorite_id == favorite_id)
    )
    if existing is not None:
        raise Conflict("User already in favorites")

    db.add(Favorite(user_id=user_id, favorite_id=favorite_id))
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise Conflict("User already in favorites") from e
    return {"message": "Added to favorites successfully"}


@router.delete("/favorites/{favorite_id}")
async def remove_favorite(
    favorite_id: int, user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict[str, str]:
    await db.execute(delete(Favorite).where(Favorite.user_id == user_id, Favorite.favorite_id == favorite_id))
    await db.commit()
    return {"message": "Removed from favorites successfully"}


@router.post("/block/{blocked_id}", status_code=status.HTTP_201_CREATED)
async def block_user(
    blocked_id: int, user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict[str, str]:
    """Block a user. Also drops them from the caller's favorites."""
    if blocked_id == user_id:
        raise BadRequest("Cannot block yourself")
    await _require_user(db, blocked_id)

    existing = await db.scalar(
        select(BlockedUser.id).where(BlockedUser.blocker_id == user_id, BlockedUser.blocked_id == blocked_id)
    )
    if existing is not None:
        raise Conflict("User already blocked")

    db.add(BlockedUser(blocker_id=user_id, blocked_id=blocked_id))
    await db.execute(delete(Favorite).where(Favorite.user_id == user_id, Favorite.favorite_id == blocked_id))
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise Conflict("User already blocked") from e

    blocks_total.inc()
    logger.info(f"User {user_id} blocked {blocked_id}")
    return {"message": "User blocked successfully"}


@router.delete("/block/{blocked_id}")
async def unblock_user(
    blocked_id: int, user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict[str, str]:
    await db.execute(
        delete(BlockedUser).where(BlockedUser.blocker_id == user_id, BlockedUser.blocked_id == blocked_id)
    )
    await db.commit()
    return {"message": "User unblocked successfully"}


@router.post("/report", status_code=status.HTTP_201_CREATED)
async def report_user(
    body: ReportRequest, user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict[str, Any]:
    if body.reported_id == user_id:
        raise BadRequest("Cannot report yourself")
    await _require_user(db, body.reported_id)

    existing = await db.scalar(
        select(Report.id).where(Report.reporter_id == user_id, Report.reported_id == body.reported_id)
    )
    if existing is not None:
        raise Conflict("User already reported")

    report = Report(
        reporter_id=user_id, reported_id=body.reported_id, reason=body.reason, description=body.description
    )
    db.add(report)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise Conflict("User already reported") from e

    reports_total.inc()
    logger.info(f"Report created: from={user_id}, to={body.reported_id}, reason={body.reason}")
    return {"message": "User reported successfully", "report_id": report.id}
