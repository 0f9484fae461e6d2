import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from core.config import settings

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def _encode(payload: dict[str, Any]) -> str:
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def create_access_token(user_id: int, email: str) -> str:
    """Short-lived access token carrying the user id."""
    now = datetime.now(timezone.utc)
    return _encode(
        {
            "user_id": user_id,
            "email": email,
            "type": "access",
            "iat": now,
            "exp": now + timedelta(hours=settings.jwt_expiry_hours),
        }
    )


def create_refresh_token(user_id: int) -> str:
    """Long-lived refresh token; only exchangeable for a new token pair."""
    now = datetime.now(timezone.utc)
    return _encode(
        {
            "user_id": user_id,
            "type": "refresh",
            "jti": secrets.token_urlsafe(16),
            "iat": now,
            "exp": now + timedelta(days=settings.refresh_expiry_days),
        }
    )


def decode_token(token: str, expected_type: str = "access") -> int | None:
    """
    Validate a token and return its user id.

    Args:
        token: Encoded JWT
        expected_type: "access" or "refresh"

    Returns:
        User id, or None if the token is invalid, expired or of the wrong type
    """
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None

    if claims.get("type") != expected_type:
        return None

    user_id = claims.get("user_id")
    if not isinstance(user_id, int):
        return None
    return user_id


def generate_otp() -> str:
    """Generate a 6-digit one-time code."""
    return f"{secrets.randbelow(1_000_000):06d}"


def is_otp_expired(created_at: datetime, now: datetime | None = None) -> bool:
    """Check whether an OTP issued at created_at is past its lifetime."""
    now = now or datetime.utcnow()
    return now - created_at > timedelta(minutes=settings.otp_expiry_minutes)


def format_phone_number(phone: str) -> str:
    """Normalize a phone number to +251 international format."""
    cleaned = re.sub(r"\D", "", phone)

    if len(cleaned) == 9 and cleaned.startswith("9"):
        return "+251" + cleaned
    if len(cleaned) == 10 and cleaned.startswith("0"):
        return "+251" + cleaned[1:]
    if len(cleaned) == 12 and cleaned.startswith("251"):
        return "+" + cleaned
    return "+" + cleaned
