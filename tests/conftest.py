from __future__ import annotations

import asyncio
import os
import socket
from datetime import date
from typing import Any

import pytest

# Unit-test-safe configuration, set before any app module reads settings.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")

from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from redis.exceptions import RedisError  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

import core.db as core_db  # noqa: E402
import models  # noqa: E402,F401
from apps.api import deps  # noqa: E402
from apps.matching.access import conversation_for_participant  # noqa: E402
from apps.storage.blob import StorageError  # noqa: E402
from core.db import Base  # noqa: E402
from core.errors import AppError, app_error_handler  # noqa: E402
from core.security import create_access_token, hash_password  # noqa: E402
from models import User  # noqa: E402

PASSWORD_HASH = hash_password("password123")


class NetworkBlockedError(RuntimeError):
    pass


def _blocked(*_args: Any, **_kwargs: Any) -> Any:
    raise NetworkBlockedError("Network access is disabled during tests.")


@pytest.fixture(autouse=True)
def _disable_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent accidental outbound calls (Postgres, Redis, S3) in unit tests."""
    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(socket, "getaddrinfo", _blocked)


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite; NullPool so each event loop opens its own connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async def _create() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    return engine


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def add_user(session_factory):
    """Async helper inserting a verified, active user; returns its id."""
    counter = {"n": 0}

    async def _add_user(**overrides: Any) -> int:
        counter["n"] += 1
        fields = {
            "email": f"user{counter['n']}@example.com",
            "password_hash": PASSWORD_HASH,
            "first_name": f"User{counter['n']}",
            "last_name": "Tester",
            "date_of_birth": date(1995, 5, 17),
            "gender": "female" if counter["n"] % 2 else "male",
            "is_verified": True,
            "is_active": True,
        }
        fields.update(overrides)
        async with session_factory() as db:
            user = User(**fields)
            db.add(user)
            await db.commit()
            return user.id

    return _add_user


class DummyRedis:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.values: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}

    def _check(self) -> None:
        if self.fail:
            raise RedisError("redis unavailable")

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        self._check()
        self.values[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def get(self, key: str) -> Any:
        self._check()
        return self.values.get(key)

    async def hset(self, key: str, mapping: dict[str, Any]) -> int:
        self._check()
        self.values.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def expire(self, key: str, seconds: int) -> bool:
        self._check()
        self.ttls[key] = seconds
        return key in self.values

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            removed += self.values.pop(key, None) is not None
            self.ttls.pop(key, None)
        return removed

    async def ping(self) -> bool:
        self._check()
        return True


class DummyNotifier:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.sent: list[dict[str, Any]] = []

    async def notify(self, user_id: int, kind: str, title: str, body: str, data: dict | None = None) -> bool:
        self.sent.append({"user_id": user_id, "kind": kind, "title": title, "body": body, "data": data})
        return self.ok

    async def notify_match(self, user_id: int, match_id: int) -> bool:
        return await self.notify(user_id, "match", "New Match!", "match", {"match_id": match_id})

    async def notify_message(self, user_id: int, conversation_id: int, content: str) -> bool:
        return await self.notify(user_id, "message", "New Message", content, {"conversation_id": conversation_id})


class DummyHub:
    """Records fan-out commands instead of delivering them."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.to_user: list[tuple[int, str]] = []
        self.to_conversation: list[tuple[int, str]] = []

    def broadcast_to_user(self, user_id: int, payload: str) -> None:
        if self.fail:
            raise RuntimeError("Connection registry is not running")
        self.to_user.append((user_id, payload))

    def broadcast_to_conversation(self, conversation_id: int, payload: str) -> None:
        if self.fail:
            raise RuntimeError("Connection registry is not running")
        self.to_conversation.append((conversation_id, payload))


_DISCONNECT = {"type": "websocket.disconnect", "code": 1000}


class FakeWebSocket:
    """In-memory stand-in for starlette's WebSocket, speaking ASGI receive messages."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[str] = []
        self.closed = False
        self.close_code: int | None = None

    def feed(self, text: str) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "text": text})

    def feed_bytes(self, data: bytes) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self) -> None:
        self.incoming.put_nowait(_DISCONNECT)

    async def receive(self) -> dict:
        return await self.incoming.get()

    async def send_text(self, data: str) -> None:
        if self.closed:
            raise RuntimeError("Cannot send once a close message has been sent")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        if self.closed:
            raise RuntimeError("Already closed")
        self.closed = True
        self.close_code = code
        self.incoming.put_nowait(_DISCONNECT)


class StuckWebSocket(FakeWebSocket):
    """A peer that never drains its socket."""

    def __init__(self) -> None:
        super().__init__()
        self._never = asyncio.Event()

    async def send_text(self, data: str) -> None:
        await self._never.wait()


@pytest.fixture
def dummy_redis() -> DummyRedis:
    return DummyRedis()


@pytest.fixture
def dummy_notifier() -> DummyNotifier:
    return DummyNotifier()


@pytest.fixture
def dummy_hub() -> DummyHub:
    return DummyHub()


@pytest.fixture
def fake_ws() -> type[FakeWebSocket]:
    return FakeWebSocket


@pytest.fixture
def stuck_ws() -> type[StuckWebSocket]:
    return StuckWebSocket


class DummyBlobStore:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.objects: dict[str, bytes] = {}

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail:
            raise StorageError("object store unavailable")
        self.objects[key] = data
        return f"https://media.example.com/{key}"

    async def delete(self, key: str) -> None:
        if self.fail:
            raise StorageError("object store unavailable")
        self.objects.pop(key, None)


@pytest.fixture
def dummy_blob_store() -> DummyBlobStore:
    return DummyBlobStore()


@pytest.fixture
def create_user(add_user):
    """Synchronous add_user for TestClient-driven tests."""

    def _create_user(**overrides: Any) -> int:
        return asyncio.run(add_user(**overrides))

    return _create_user


@pytest.fixture
def db_run(session_factory):
    """Run `fn(db)` against a fresh session and return its result."""

    def _db_run(fn):
        async def _main():
            async with session_factory() as db:
                return await fn(db)

        return asyncio.run(_main())

    return _db_run


def _auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, f'user{user_id}@example.com')}"}


@pytest.fixture
def make_client(session_factory, dummy_redis, dummy_hub, dummy_notifier, dummy_blob_store):
    """
    Build a TestClient over the given routers, mounted under /api/v1, with
    storage, cache, hub and notifications replaced by in-memory doubles.
    """

    def _make_client(*routers, hub: Any = None, lifespan: Any = None) -> TestClient:
        app = FastAPI(lifespan=lifespan)
        app.add_exception_handler(AppError, app_error_handler)
        for router in routers:
            app.include_router(router, prefix="/api/v1")

        async def _get_db():
            async with session_factory() as session:
                yield session

        app.dependency_overrides[deps.get_db] = _get_db
        app.dependency_overrides[core_db.get_db] = _get_db
        app.dependency_overrides[deps.get_redis_client] = lambda: dummy_redis
        app.dependency_overrides[deps.get_hub] = lambda: hub if hub is not None else dummy_hub
        app.dependency_overrides[deps.get_notifier] = lambda: dummy_notifier
        app.dependency_overrides[deps.get_blob_store] = lambda: dummy_blob_store

        async def _join_guard(user_id: int, conversation_id: int) -> bool:
            async with session_factory() as session:
                return await conversation_for_participant(session, conversation_id, user_id) is not None

        app.dependency_overrides[deps.get_join_guard] = lambda: _join_guard
        return TestClient(app)

    return _make_client


@pytest.fixture
def auth_headers():
    """Bearer headers carrying a valid access token for a user id."""
    return _auth_headers
