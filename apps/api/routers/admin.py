"""Moderation endpoints. Every route requires an active admin account."""

import logging
from datetime import datetime, timedelta
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db
from apps.api.schemas import UserOut
from core.auth import require_admin
from core.errors import NotFound
from models import Admin, Match, Message, Report, User, UserActivity

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


class AdminUserOut(UserOut):
    is_online: bool
    last_seen: datetime | None = None


class ActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    actor_id: int | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reporter_id: int
    reported_id: int
    reason: str
    description: str | None = None
    status: str
    created_at: datetime
    updated_at: datetime


class UserStatusRequest(BaseModel):
    status: Literal["active", "inactive", "suspended"]


class ReportStatusRequest(BaseModel):
    status: Literal["pending", "reviewed", "resolved", "dismissed"]


@router.get("/users")
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: Literal["active", "inactive", "verified", "unverified"] | None = None,
    search: str | None = None,
    admin: Admin = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    conditions = []
    if status == "active":
        conditions.append(User.is_active.is_(True))
    elif status == "inactive":
        conditions.append(User.is_active.is_(False))
    elif status == "verified":
        conditions.append(User.is_verified.is_(True))
    elif status == "unverified":
        conditions.append(User.is_verified.is_(False))
    if search:
        pattern = f"%{search}%"
        conditions.append(
            or_(User.first_name.ilike(pattern), User.last_name.ilike(pattern), User.email.ilike(pattern))
        )

    total = await db.scalar(select(func.count(User.id)).where(*conditions))
    users = await db.scalars(
        select(User).where(*conditions).order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return {
        "users": [AdminUserOut.model_validate(u) for u in users],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/users/{user_id}")
async def get_user(
    user_id: int, admin: Admin = Depends(require_admin), db: AsyncSession = Depends(get_db)
) -> dict[str, Any]:
    """User detail with the last 10 activities and reports filed against them."""
    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise NotFound("User not found")

    activities = await db.scalars(
        select(UserActivity)
        .where(UserActivity.user_id == user_id)
        .order_by(UserActivity.created_at.desc(), UserActivity.id.desc())
        .limit(10)
    )
    reports = await db.scalars(
        select(Report).where(Report.reported_id == user_id).order_by(Report.created_at.desc())
    )
    return {
        "user": AdminUserOut.model_validate(user),
        "activities": [ActivityOut.model_validate(a) for a in activities],
        "reports": [ReportOut.model_validate(r) for r in reports],
    }


@router.put("/users/{user_id}/status")
async def update_user_status(
    user_id: int,
    body: UserStatusRequest,
    request: Request,
    admin: Admin = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise NotFound("User not found")

    # suspended has no separate flag yet; it deactivates like inactive
    user.is_active = body.status == "active"
    db.add(
        UserActivity(
            user_id=user_id,
            action="status_updated",
            actor_id=admin.user_id,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    )
    await db.commit()

    logger.info(f"Admin {admin.user_id} set user {user_id} status to {body.status}")
    return {"message": "User status updated successfully"}


@router.get("/reports")
async def list_reports(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: Literal["pending", "reviewed", "resolved", "dismissed"] | None = None,
    admin: Admin = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    conditions = [Report.status == status] if status else []
    total = await db.scalar(select(func.count(Report.id)).where(*conditions))
    reports = await db.scalars(
        select(Report).where(*conditions).order_by(Report.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return {
        "reports": [ReportOut.model_validate(r) for r in reports],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.put("/reports/{report_id}/status")
async def update_report_status(
    report_id: int,
    body: ReportStatusRequest,
    admin: Admin = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    report = await db.scalar(select(Report).where(Report.id == report_id))
    if report is None:
        raise NotFound("Report not found")

    report.status = body.status
    await db.commit()

    logger.info(f"Admin {admin.user_id} set report {report_id} status to {body.status}")
    return {"message": "Report status updated successfully"}


@router.get("/analytics")
async def analytics(admin: Admin = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    now = datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    async def count(column, *conditions) -> int:
        return await db.scalar(select(func.count(column)).where(*conditions)) or 0

    summary = {
        "total_users": await count(User.id),
        "active_users": await count(User.id, User.last_seen > now - timedelta(days=7)),
        "new_users_today": await count(User.id, User.created_at >= today),
        "total_matches": await count(Match.id, Match.is_active.is_(True)),
        "matches_today": await count(Match.id, Match.is_active.is_(True), Match.created_at >= today),
        "total_messages": await count(Message.id),
        "messages_today": await count(Message.id, Message.created_at >= today),
        "pending_reports": await count(Report.id, Report.status == "pending"),
        "date": now,
    }

    day = func.date(User.created_at)
    daily = await db.execute(
        select(day.label("date"), func.count(User.id).label("count"))
        .where(User.created_at >= now - timedelta(days=30))
        .group_by(day)
        .order_by(day)
    )
    genders = await db.execute(select(User.gender, func.count(User.id)).group_by(User.gender))

    return {
        "analytics": summary,
        "daily_registrations": [{"date": str(d), "count": c} for d, c in daily.all()],
        "gender_distribution": [{"gender": g, "count": c} for g, c in genders.all()],
    }
