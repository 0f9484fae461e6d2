import asyncio
import json

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from apps.matching.engine import MATCH_CACHE_TTL, MatchEngine
from core.errors import BadRequest, Conflict, Forbidden, Internal, NotFound
from models import BlockedUser, Conversation, Dislike, Like, Match


def run(session_factory, scenario, **deps):
    """Run scenario(engine, db) on a fresh session inside its own event loop."""

    async def _main():
        async with session_factory() as db:
            return await scenario(MatchEngine(db, **deps), db)

    return asyncio.run(_main())


async def count(db, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


def test_one_sided_like_creates_no_match(session_factory, add_user, dummy_notifier, dummy_hub):
    async def scenario(engine, db):
        a, b = await add_user(), await add_user()
        result = await engine.like(a, b)

        assert not result.matched
        assert await count(db, Like) == 1
        assert await count(db, Match) == 0
        assert dummy_notifier.sent == []
        assert dummy_hub.to_user == []

    run(session_factory, scenario, notifier=dummy_notifier, hub=dummy_hub)


def test_mutual_like_creates_single_match_and_conversation(
    session_factory, add_user, dummy_notifier, dummy_hub, dummy_redis
):
    async def scenario(engine, db):
        a, b = await add_user(), await add_user()
        assert not (await engine.like(a, b)).matched
        result = await engine.like(b, a)

        assert result.matched
        record = result.match
        # the second liker completes the pair
        assert (record.user_a, record.user_b) == (b, a)
        assert record.other_user(a) == b

        assert await count(db, Match) == 1
        assert await count(db, Conversation) == 1
        conversation = await db.scalar(select(Conversation))
        assert conversation.id == record.conversation_id
        assert conversation.match_id == record.id

        assert sorted(n["user_id"] for n in dummy_notifier.sent) == sorted([a, b])
        assert all(n["data"] == {"match_id": record.id} for n in dummy_notifier.sent)

        pushed = {user_id: json.loads(payload) for user_id, payload in dummy_hub.to_user}
        assert pushed[a] == {
            "type": "match",
            "match_id": record.id,
            "conversation_id": record.conversation_id,
            "user_id": b,
        }
        assert pushed[b]["user_id"] == a

        key = f"match:{record.id}"
        assert dummy_redis.ttls[key] == MATCH_CACHE_TTL
        cached = json.loads(dummy_redis.values[key])
        assert cached["conversation_id"] == record.conversation_id

    run(session_factory, scenario, notifier=dummy_notifier, hub=dummy_hub, redis_client=dummy_redis)


def test_self_like_is_rejected(session_factory, add_user):
    async def scenario(engine, db):
        a = await add_user()
        with pytest.raises(BadRequest):
            await engine.like(a, a)

    run(session_factory, scenario)


@pytest.mark.parametrize("inactive", [True, False])
def test_like_of_missing_or_inactive_user(session_factory, add_user, inactive):
    async def scenario(engine, db):
        a = await add_user()
        target = await add_user(is_active=False) if inactive else 9999
        with pytest.raises(NotFound):
            await engine.like(a, target)
        assert await count(db, Like) == 0

    run(session_factory, scenario)


def test_duplicate_like_conflicts(session_factory, add_user):
    async def scenario(engine, db):
        a, b = await add_user(), await add_user()
        await engine.like(a, b)
        with pytest.raises(Conflict):
            await engine.like(a, b)
        assert await count(db, Like) == 1

    run(session_factory, scenario)


def test_block_forbids_like_in_one_direction_only(session_factory, add_user):
    async def scenario(engine, db):
        a, b = await add_user(), await add_user()
        db.add(BlockedUser(blocker_id=a, blocked_id=b))
        await db.commit()

        with pytest.raises(Forbidden):
            await engine.like(a, b)
        assert not (await engine.like(b, a)).matched

    run(session_factory, scenario)


def test_dislike(session_factory, add_user):
    async def scenario(engine, db):
        a, b = await add_user(), await add_user()
        await engine.dislike(a, b)
        assert await count(db, Dislike) == 1

        with pytest.raises(Conflict):
            await engine.dislike(a, b)
        with pytest.raises(NotFound):
            await engine.dislike(a, 9999)

    run(session_factory, scenario)


def test_dislike_does_not_retract_an_earlier_like(session_factory, add_user):
    async def scenario(engine, db):
        a, b = await add_user(), await add_user()
        await engine.like(a, b)
        await engine.dislike(a, b)
        assert (await engine.like(b, a)).matched

    run(session_factory, scenario)


def test_unmatch_deactivates_match_and_conversation(session_factory, add_user, dummy_redis):
    async def scenario(engine, db):
        a, b, c = await add_user(), await add_user(), await add_user()
        await engine.like(a, b)
        record = (await engine.like(b, a)).match
        assert f"match:{record.id}" in dummy_redis.values

        with pytest.raises(NotFound):
            await engine.unmatch(c, record.id)

        await engine.unmatch(a, record.id)

        match = await db.get(Match, record.id)
        conversation = await db.get(Conversation, record.conversation_id)
        await db.refresh(match)
        await db.refresh(conversation)
        assert not match.is_active
        assert not conversation.is_active
        assert f"match:{record.id}" not in dummy_redis.values
        assert await engine.list_matches(a) == []

        with pytest.raises(NotFound):
            await engine.unmatch(b, record.id)

        # likes are kept, so the pair cannot simply like each other again
        with pytest.raises(Conflict):
            await engine.like(a, b)

    run(session_factory, scenario, redis_client=dummy_redis)


def test_existing_active_match_is_reused(session_factory, add_user, dummy_notifier):
    async def scenario(engine, db):
        a, b = await add_user(), await add_user()
        match = Match(user_a=a, user_b=b, u_lo=min(a, b), u_hi=max(a, b))
        db.add(match)
        await db.flush()
        conversation = Conversation(match_id=match.id)
        db.add_all([conversation, Like(liker_id=a, liked_id=b)])
        await db.commit()

        result = await engine.like(b, a)

        assert result.match.id == match.id
        assert result.match.conversation_id == conversation.id
        assert await count(db, Match) == 1
        assert dummy_notifier.sent == []

    run(session_factory, scenario, notifier=dummy_notifier)


def test_side_effect_failures_do_not_fail_the_match(
    session_factory, add_user, dummy_notifier, dummy_hub, dummy_redis
):
    dummy_notifier.ok = False
    dummy_hub.fail = True
    dummy_redis.fail = True

    async def scenario(engine, db):
        a, b = await add_user(), await add_user()
        await engine.like(a, b)
        result = await engine.like(b, a)

        assert result.matched
        assert await count(db, Match) == 1

    run(session_factory, scenario, notifier=dummy_notifier, hub=dummy_hub, redis_client=dummy_redis)


def _integrity_error() -> IntegrityError:
    return IntegrityError("INSERT INTO matches", {}, Exception("duplicate key value"))


def test_concurrent_write_is_retried(session_factory, add_user):
    async def scenario(engine, db):
        a, b = await add_user(), await add_user()
        await engine.like(a, b)

        original = engine._record_like
        calls = []

        async def flaky(liker_id, liked_id):
            calls.append((liker_id, liked_id))
            if len(calls) == 1:
                raise _integrity_error()
            return await original(liker_id, liked_id)

        engine._record_like = flaky
        result = await engine.like(b, a)

        assert len(calls) == 2
        assert result.matched
        assert await count(db, Match) == 1

    run(session_factory, scenario)


def test_retries_are_bounded(session_factory, add_user):
    async def scenario(engine, db):
        a, b = await add_user(), await add_user()
        calls = []

        async def always_conflicting(liker_id, liked_id):
            calls.append(1)
            raise _integrity_error()

        engine._record_like = always_conflicting
        with pytest.raises(Internal):
            await engine.like(a, b)
        assert len(calls) == engine.max_attempts
        assert await count(db, Like) == 0

    run(session_factory, scenario)


def test_list_matches_shows_the_other_participant(session_factory, add_user):
    async def scenario(engine, db):
        a, b, c = await add_user(), await add_user(), await add_user()
        await engine.like(a, b)
        first = (await engine.like(b, a)).match
        await engine.like(c, a)
        second = (await engine.like(a, c)).match

        views = await engine.list_matches(a)
        assert {v.match_id for v in views} == {first.id, second.id}
        by_match = {v.match_id: v for v in views}
        assert by_match[first.id].other_user.id == b
        assert by_match[second.id].other_user.id == c
        assert by_match[first.id].conversation_id == first.conversation_id

        assert [v.other_user.id for v in await engine.list_matches(b)] == [a]

    run(session_factory, scenario)
