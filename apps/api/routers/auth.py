"""Registration, login and token endpoints."""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Literal

import redis.asyncio as redis
from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, EmailStr, Field
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_redis_client
from apps.api.schemas import UserOut, age_on
from core.auth import get_current_user_id
from core.config import settings
from core.errors import BadRequest, Conflict, Internal, NotFound, Unauthorized
from core.metrics import logins_total, registrations_total
from core.redis import drop_session, store_session
from core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    format_phone_number,
    generate_otp,
    hash_password,
    is_otp_expired,
    verify_password,
)
from models import Otp, User, UserActivity

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

MIN_AGE = 18


class RegisterRequest(BaseModel):
    email: EmailStr
    phone: str | None = None
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    date_of_birth: date  # YYYY-MM-DD
    gender: Literal["male", "female", "other"]


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    code: str


class ResendOtpRequest(BaseModel):
    email: EmailStr


class RefreshRequest(BaseModel):
    refresh_token: str


async def _issue_session(redis_client: redis.Redis, user: User) -> dict[str, Any]:
    """Create a token pair and record the session in Redis."""
    access_token = create_access_token(user.id, user.email)
    refresh_token = create_refresh_token(user.id)

    expires_at = datetime.utcnow() + timedelta(hours=settings.jwt_expiry_hours)
    fields = {
        "user_id": user.id,
        "email": user.email,
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_at": int(expires_at.timestamp()),
    }
    try:
        await store_session(redis_client, user.id, fields, settings.jwt_expiry_hours * 3600)
    except RedisError as e:
        logger.error(f"Failed to store session for user {user.id}: {e}")
        raise Internal("Failed to store session") from e

    return {"access_token": access_token, "refresh_token": refresh_token}


def _client_meta(request: Request) -> dict[str, str | None]:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis_client),
) -> dict[str, Any]:
    """
    Create an account.

    With OTP enabled the account starts unverified and the code is returned
    in the response (delivery over SMS/email is not wired up yet). Otherwise
    tokens are issued right away.

    Raises:
        BadRequest: Under 18
        Conflict: Email or phone already registered
    """
    if age_on(body.date_of_birth) < MIN_AGE:
        raise BadRequest("You must be 18 or older to use this app")

    if await db.scalar(select(User.id).where(User.email == body.email)) is not None:
        raise Conflict("User already exists with this email")

    phone = format_phone_number(body.phone) if body.phone else None
    if phone and await db.scalar(select(User.id).where(User.phone == phone)) is not None:
        raise Conflict("User already exists with this phone number")

    user = User(
        email=body.email,
        phone=phone,
        password_hash=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        date_of_birth=body.date_of_birth,
        gender=body.gender,
        is_verified=not settings.otp_enabled,
        is_active=True,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise Conflict("User already exists") from e

    if settings.otp_enabled:
        code = generate_otp()
        db.add(
            Otp(
                email=body.email,
                phone=phone,
                code=code,
                expires_at=datetime.utcnow() + timedelta(minutes=settings.otp_expiry_minutes),
            )
        )
        await db.commit()
        registrations_total.inc()
        logger.info(f"User {user.id} registered, awaiting verification")
        return {"message": "User created successfully. Please verify your account.", "otp": code}

    await db.commit()
    registrations_total.inc()
    logger.info(f"User {user.id} registered")

    tokens = await _issue_session(redis_client, user)
    return {"message": "User created successfully", **tokens, "user": UserOut.model_validate(user)}


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis_client),
) -> dict[str, Any]:
    user = await db.scalar(select(User).where(User.email == body.email))
    if user is None or not verify_password(body.password, user.password_hash):
        logins_total.labels(status="invalid").inc()
        raise Unauthorized("Invalid credentials")
    if not user.is_active:
        logins_total.labels(status="inactive").inc()
        raise Unauthorized("Account is deactivated")

    tokens = await _issue_session(redis_client, user)

    user.last_seen = datetime.utcnow()
    user.is_online = True
    db.add(UserActivity(user_id=user.id, action="login", **_client_meta(request)))
    await db.commit()

    logins_total.labels(status="ok").inc()
    logger.info(f"User {user.id} logged in")
    return {**tokens, "user": UserOut.model_validate(user)}


@router.post("/verify-otp")
async def verify_otp(
    body: VerifyOtpRequest,
    db: AsyncSession = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis_client),
) -> dict[str, Any]:
    otp = await db.scalar(
        select(Otp)
        .where(Otp.email == body.email, Otp.code == body.code, Otp.is_used.is_(False))
        .order_by(Otp.created_at.desc())
    )
    if otp is None:
        raise BadRequest("Invalid or expired OTP")
    if is_otp_expired(otp.created_at):
        raise BadRequest("OTP has expired")

    user = await db.scalar(select(User).where(User.email == body.email))
    if user is None:
        raise NotFound("User not found")

    otp.is_used = True
    user.is_verified = True
    await db.commit()
    logger.info(f"User {user.id} verified")

    tokens = await _issue_session(redis_client, user)
    return {"message": "Account verified successfully", **tokens, "user": UserOut.model_validate(user)}


@router.post("/resend-otp")
async def resend_otp(body: ResendOtpRequest, db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    user = await db.scalar(select(User).where(User.email == body.email))
    if user is None:
        raise NotFound("User not found")

    code = generate_otp()
    db.add(
        Otp(
            email=user.email,
            phone=user.phone,
            code=code,
            expires_at=datetime.utcnow() + timedelta(minutes=settings.otp_expiry_minutes),
        )
    )
    await db.commit()
    return {"message": "OTP sent successfully", "otp": code}


@router.post("/refresh")
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    user_id = decode_token(body.refresh_token, expected_type="refresh")
    if user_id is None:
        raise Unauthorized("Invalid refresh token")

    user = await db.scalar(select(User).where(User.id == user_id, User.is_active.is_(True)))
    if user is None:
        raise Unauthorized("User not found")

    return {
        "access_token": create_access_token(user.id, user.email),
        "refresh_token": create_refresh_token(user.id),
    }


@router.post("/logout")
async def logout(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis_client),
) -> dict[str, str]:
    try:
        await drop_session(redis_client, user_id)
    except RedisError as e:
        logger.warning(f"Failed to drop session for user {user_id}: {e}")

    user = await db.scalar(select(User).where(User.id == user_id))
    if user is not None:
        user.is_online = False
        user.last_seen = datetime.utcnow()
        db.add(UserActivity(user_id=user_id, action="logout", **_client_meta(request)))
        await db.commit()

    logger.info(f"User {user_id} logged out")
    return {"message": "Logged out successfully"}
