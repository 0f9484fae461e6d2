from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select, update

from apps.api.routers import auth
from core.config import settings
from core.security import create_refresh_token
from models import Otp, User, UserActivity


@pytest.fixture
def client(make_client):
    return make_client(auth.router)


def registration(**overrides):
    body = {
        "email": "abebe@example.com",
        "phone": "0911234567",
        "password": "password123",
        "first_name": "Abebe",
        "last_name": "Kebede",
        "date_of_birth": "1996-04-12",
        "gender": "male",
    }
    body.update(overrides)
    return body


def test_register_and_verify_otp(client, db_run, dummy_redis):
    resp = client.post("/api/v1/auth/register", json=registration())
    assert resp.status_code == 201
    code = resp.json()["otp"]

    async def load_user(db):
        return await db.scalar(select(User).where(User.email == "abebe@example.com"))

    user = db_run(load_user)
    assert user.phone == "+251911234567"
    assert not user.is_verified

    resp = client.post("/api/v1/auth/verify-otp", json={"email": "abebe@example.com", "code": code})
    assert resp.status_code == 200
    body = resp.json()
    assert body["access_token"] and body["refresh_token"]
    assert body["user"]["is_verified"]
    assert "password_hash" not in body["user"]
    assert dummy_redis.ttls[f"session:{user.id}"] == settings.jwt_expiry_hours * 3600

    resp = client.post("/api/v1/auth/verify-otp", json={"email": "abebe@example.com", "code": code})
    assert resp.status_code == 400


def test_register_without_otp_issues_tokens(client, monkeypatch):
    monkeypatch.setattr(settings, "otp_enabled", False)
    resp = client.post("/api/v1/auth/register", json=registration())
    assert resp.status_code == 201
    body = resp.json()
    assert body["access_token"]
    assert body["user"]["is_verified"]


def test_register_rejects_minors_and_duplicates(client):
    today = date.today()
    minor = today.replace(year=today.year - 17).isoformat()
    resp = client.post("/api/v1/auth/register", json=registration(date_of_birth=minor))
    assert resp.status_code == 400

    assert client.post("/api/v1/auth/register", json=registration()).status_code == 201
    resp = client.post("/api/v1/auth/register", json=registration(phone=None))
    assert resp.status_code == 409
    assert resp.json() == {"error": "User already exists with this email"}
    resp = client.post("/api/v1/auth/register", json=registration(email="other@example.com", phone="+251911234567"))
    assert resp.status_code == 409


def test_register_validates_payload(client):
    assert client.post("/api/v1/auth/register", json=registration(password="short")).status_code == 422
    assert client.post("/api/v1/auth/register", json=registration(gender="unknown")).status_code == 422
    assert client.post("/api/v1/auth/register", json=registration(email="not-an-email")).status_code == 422


def test_expired_otp(client, db_run):
    code = client.post("/api/v1/auth/register", json=registration()).json()["otp"]

    async def age_otp(db):
        stale = datetime.utcnow() - timedelta(minutes=settings.otp_expiry_minutes + 1)
        await db.execute(update(Otp).values(created_at=stale))
        await db.commit()

    db_run(age_otp)
    resp = client.post("/api/v1/auth/verify-otp", json={"email": "abebe@example.com", "code": code})
    assert resp.status_code == 400
    assert resp.json() == {"error": "OTP has expired"}


def test_resend_otp(client):
    assert client.post("/api/v1/auth/resend-otp", json={"email": "nobody@example.com"}).status_code == 404
    client.post("/api/v1/auth/register", json=registration())
    resp = client.post("/api/v1/auth/resend-otp", json={"email": "abebe@example.com"})
    assert resp.status_code == 200
    assert len(resp.json()["otp"]) == 6


def test_login(client, create_user, db_run):
    user_id = create_user(email="tigist@example.com")

    resp = client.post("/api/v1/auth/login", json={"email": "tigist@example.com", "password": "wrong-password"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid credentials"}

    resp = client.post("/api/v1/auth/login", json={"email": "tigist@example.com", "password": "password123"})
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == user_id

    async def state(db):
        user = await db.get(User, user_id)
        actions = list(await db.scalars(select(UserActivity.action).where(UserActivity.user_id == user_id)))
        return user.is_online, actions

    assert db_run(state) == (True, ["login"])


def test_login_of_deactivated_account(client, create_user):
    create_user(email="gone@example.com", is_active=False)
    resp = client.post("/api/v1/auth/login", json={"email": "gone@example.com", "password": "password123"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Account is deactivated"}


def test_login_fails_when_session_store_is_down(client, create_user, dummy_redis):
    create_user(email="tigist@example.com")
    dummy_redis.fail = True
    resp = client.post("/api/v1/auth/login", json={"email": "tigist@example.com", "password": "password123"})
    assert resp.status_code == 500


def test_refresh(client, create_user):
    user_id = create_user()
    resp = client.post("/api/v1/auth/refresh", json={"refresh_token": create_refresh_token(user_id)})
    assert resp.status_code == 200
    assert set(resp.json()) == {"access_token", "refresh_token"}

    access = client.post("/api/v1/auth/refresh", json={"refresh_token": resp.json()["access_token"]})
    assert access.status_code == 401
    missing = client.post("/api/v1/auth/refresh", json={"refresh_token": create_refresh_token(9999)})
    assert missing.status_code == 401


def test_logout(client, create_user, auth_headers, dummy_redis, db_run):
    user_id = create_user(email="tigist@example.com")
    client.post("/api/v1/auth/login", json={"email": "tigist@example.com", "password": "password123"})
    assert f"session:{user_id}" in dummy_redis.values

    resp = client.post("/api/v1/auth/logout", headers=auth_headers(user_id))
    assert resp.status_code == 200
    assert f"session:{user_id}" not in dummy_redis.values

    async def online(db):
        return (await db.get(User, user_id)).is_online

    assert db_run(online) is False
