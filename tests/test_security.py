from datetime import datetime, timedelta, timezone

import jwt
import pytest

from core.config import settings
from core.security import (
    JWT_ALGORITHM,
    create_access_token,
    create_refresh_token,
    decode_token,
    format_phone_number,
    generate_otp,
    hash_password,
    is_otp_expired,
    verify_password,
)


def test_password_hash_roundtrip():
    hashed = hash_password("password123")
    assert hashed != "password123"
    assert verify_password("password123", hashed)
    assert not verify_password("password124", hashed)


def test_verify_password_rejects_garbage_hash():
    assert not verify_password("password123", "not-a-bcrypt-hash")


def test_access_token_decodes_to_user_id():
    assert decode_token(create_access_token(42, "a@example.com")) == 42


def test_token_types_are_not_interchangeable():
    refresh = create_refresh_token(42)
    access = create_access_token(42, "a@example.com")
    assert decode_token(refresh) is None
    assert decode_token(refresh, expected_type="refresh") == 42
    assert decode_token(access, expected_type="refresh") is None


def test_expired_and_foreign_tokens_are_rejected():
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    expired = jwt.encode(
        {"user_id": 1, "type": "access", "exp": past}, settings.jwt_secret, algorithm=JWT_ALGORITHM
    )
    forged = jwt.encode(
        {"user_id": 1, "type": "access", "exp": past + timedelta(days=1)}, "other-secret", algorithm=JWT_ALGORITHM
    )
    assert decode_token(expired) is None
    assert decode_token(forged) is None
    assert decode_token("not.a.token") is None


def test_token_without_integer_user_id_is_rejected():
    token = jwt.encode({"user_id": "1", "type": "access"}, settings.jwt_secret, algorithm=JWT_ALGORITHM)
    assert decode_token(token) is None


def test_generate_otp_is_six_digits():
    codes = {generate_otp() for _ in range(20)}
    assert all(len(code) == 6 and code.isdigit() for code in codes)


def test_is_otp_expired():
    now = datetime(2026, 1, 1, 12, 0, 0)
    lifetime = timedelta(minutes=settings.otp_expiry_minutes)
    assert not is_otp_expired(now - lifetime + timedelta(seconds=1), now=now)
    assert is_otp_expired(now - lifetime - timedelta(seconds=1), now=now)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("911234567", "+251911234567"),
        ("0911234567", "+251911234567"),
        ("251911234567", "+251911234567"),
        ("+251 91 123 4567", "+251911234567"),
    ],
)
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected
