import json

import pytest
from sqlalchemy import func, select

from apps.api.routers import match
from models import BlockedUser, Match


@pytest.fixture
def client(make_client):
    return make_client(match.router)


def test_like_then_mutual_like_returns_match(client, create_user, auth_headers, dummy_hub, dummy_notifier):
    a, b = create_user(), create_user()

    resp = client.post(f"/api/v1/matches/like/{b}", headers=auth_headers(a))
    assert resp.status_code == 200
    assert resp.json() == {"message": "User liked successfully"}

    resp = client.post(f"/api/v1/matches/like/{a}", headers=auth_headers(b))
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "It's a match!"
    assert body["match"]["user"]["id"] == a
    assert body["match"]["conversation_id"] > 0

    assert {user_id for user_id, _ in dummy_hub.to_user} == {a, b}
    frame = json.loads(dummy_hub.to_user[0][1])
    assert frame["type"] == "match"
    assert frame["match_id"] == body["match"]["id"]
    assert len(dummy_notifier.sent) == 2


def test_like_errors(client, create_user, auth_headers, db_run):
    a, b = create_user(), create_user()

    assert client.post(f"/api/v1/matches/like/{a}", headers=auth_headers(a)).status_code == 400
    assert client.post("/api/v1/matches/like/9999", headers=auth_headers(a)).status_code == 404

    client.post(f"/api/v1/matches/like/{b}", headers=auth_headers(a))
    resp = client.post(f"/api/v1/matches/like/{b}", headers=auth_headers(a))
    assert resp.status_code == 409
    assert resp.json() == {"error": "User already liked"}

    c = create_user()

    async def block(db):
        db.add(BlockedUser(blocker_id=a, blocked_id=c))
        await db.commit()

    db_run(block)
    assert client.post(f"/api/v1/matches/like/{c}", headers=auth_headers(a)).status_code == 403


def test_requires_authentication(client):
    resp = client.post("/api/v1/matches/like/2")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Bearer token required"}

    resp = client.get("/api/v1/matches", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401


def test_dislike(client, create_user, auth_headers):
    a, b = create_user(), create_user()
    assert client.post(f"/api/v1/matches/dislike/{b}", headers=auth_headers(a)).status_code == 200
    assert client.post(f"/api/v1/matches/dislike/{b}", headers=auth_headers(a)).status_code == 409
    assert client.post("/api/v1/matches/dislike/9999", headers=auth_headers(a)).status_code == 404


def test_list_and_unmatch(client, create_user, auth_headers, db_run):
    a, b, c = create_user(), create_user(), create_user()
    client.post(f"/api/v1/matches/like/{b}", headers=auth_headers(a))
    match_id = client.post(f"/api/v1/matches/like/{a}", headers=auth_headers(b)).json()["match"]["id"]

    matches = client.get("/api/v1/matches", headers=auth_headers(a)).json()["matches"]
    assert [m["id"] for m in matches] == [match_id]
    assert matches[0]["user"]["id"] == b
    assert "email" not in matches[0]["user"]

    assert client.delete(f"/api/v1/matches/{match_id}", headers=auth_headers(c)).status_code == 404

    resp = client.delete(f"/api/v1/matches/{match_id}", headers=auth_headers(b))
    assert resp.status_code == 200
    assert resp.json() == {"message": "Unmatched successfully"}
    assert client.get("/api/v1/matches", headers=auth_headers(a)).json() == {"matches": []}
    assert client.delete(f"/api/v1/matches/{match_id}", headers=auth_headers(a)).status_code == 404

    async def active_matches(db):
        return await db.scalar(select(func.count()).select_from(Match).where(Match.is_active.is_(True)))

    assert db_run(active_matches) == 0
