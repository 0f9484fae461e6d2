"""Like / dislike / unmatch with atomic mutual-match creation."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime

import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from apps.realtime.hub import ConnectionRegistry
from apps.realtime.protocol import MatchFrame, encode
from apps.workers.notifier import Notifier
from core.db import advisory_xact_lock
from core.errors import BadRequest, Conflict, Forbidden, Internal, NotFound
from core.metrics import (
    dislikes_total,
    likes_total,
    match_retries_total,
    matches_created_total,
    unmatches_total,
)
from core.redis import MATCH_KEY
from models import BlockedUser, Conversation, Dislike, Like, Match, User

logger = logging.getLogger(__name__)

MATCH_CACHE_TTL = 24 * 60 * 60  # seconds
MAX_MATCH_ATTEMPTS = 3


@dataclass(frozen=True)
class MatchRecord:
    id: int
    user_a: int
    user_b: int
    conversation_id: int
    created_at: datetime

    def other_user(self, user_id: int) -> int:
        return self.user_b if self.user_a == user_id else self.user_a


@dataclass(frozen=True)
class LikeResult:
    """Outcome of a like: plain like, or like that completed a match."""

    match: MatchRecord | None = None

    @property
    def matched(self) -> bool:
        return self.match is not None


@dataclass(frozen=True)
class MatchView:
    """A match as seen by one participant."""

    match_id: int
    conversation_id: int | None
    other_user: User
    created_at: datetime


class MatchEngine:
    """
    Records likes and turns reciprocated likes into a Match + Conversation.

    The like, the match and the conversation are written in one transaction.
    On PostgreSQL a per-pair advisory lock serializes concurrent likes of the
    same pair; the partial unique index on active matches is the backstop
    and a losing writer retries.

    Side effects (notifications, hub frames, cache) run only after commit
    and never fail the operation.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        notifier: Notifier | None = None,
        hub: ConnectionRegistry | None = None,
        redis_client: redis.Redis | None = None,
        max_attempts: int = MAX_MATCH_ATTEMPTS,
    ):
        self.db = db
        self.notifier = notifier
        self.hub = hub
        self.redis = redis_client
        self.max_attempts = max_attempts

    async def like(self, liker_id: int, liked_id: int) -> LikeResult:
        """
        Like a user; creates a match when the like is reciprocated.

        Raises:
            BadRequest: Self-like
            NotFound: Liked user missing or inactive
            Conflict: Like already recorded
            Forbidden: Liker has blocked the liked user
        """
        if liker_id == liked_id:
            raise BadRequest("Cannot like yourself")

        liked = await self.db.scalar(select(User.id).where(User.id == liked_id, User.is_active.is_(True)))
        if liked is None:
            raise NotFound("User not found")

        for attempt in range(1, self.max_attempts + 1):
            if await self._like_exists(liker_id, liked_id):
                raise Conflict("User already liked")
            if await self._has_blocked(liker_id, liked_id):
                raise Forbidden("Cannot like a blocked user")

            try:
                record, created = await self._record_like(liker_id, liked_id)
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                if await self._like_exists(liker_id, liked_id):
                    raise Conflict("User already liked") from e
                match_retries_total.inc()
                logger.warning(f"Concurrent write on pair {liker_id}/{liked_id}, retry {attempt}")
                continue

            likes_total.inc()
            if record is None:
                logger.info(f"User {liker_id} liked {liked_id}")
                return LikeResult()

            if created:
                matches_created_total.inc()
                logger.info(f"Match {record.id} created between {record.user_a} and {record.user_b}")
                await self._announce(record)
            return LikeResult(match=record)

        logger.error(f"Giving up on like {liker_id}->{liked_id} after {self.max_attempts} attempts")
        raise Internal("Failed to record like")

    async def dislike(self, disliker_id: int, disliked_id: int) -> None:
        """
        Record a dislike. Existing likes and the block list are not consulted.

        Raises:
            NotFound: Disliked user does not exist
            Conflict: Dislike already recorded
        """
        exists = await self.db.scalar(select(User.id).where(User.id == disliked_id))
        if exists is None:
            raise NotFound("User not found")

        already = await self.db.scalar(
            select(Dislike.id).where(Dislike.disliker_id == disliker_id, Dislike.disliked_id == disliked_id)
        )
        if already is not None:
            raise Conflict("User already disliked")

        self.db.add(Dislike(disliker_id=disliker_id, disliked_id=disliked_id))
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise Conflict("User already disliked") from e

        dislikes_total.inc()
        logger.info(f"User {disliker_id} disliked {disliked_id}")

    async def unmatch(self, requester_id: int, match_id: int) -> None:
        """
        Deactivate an active match and its conversation. Likes are kept.

        Raises:
            NotFound: No active match with this id involving the requester
        """
        match = await self.db.scalar(
            select(Match).where(
                Match.id == match_id,
                or_(Match.user_a == requester_id, Match.user_b == requester_id),
                Match.is_active.is_(True),
            )
        )
        if match is None:
            raise NotFound("Match not found")

        match.is_active = False
        await self.db.execute(
            update(Conversation).where(Conversation.match_id == match.id).values(is_active=False)
        )
        await self.db.commit()

        unmatches_total.inc()
        logger.info(f"User {requester_id} unmatched match {match_id}")

        if self.redis is not None:
            try:
                await self.redis.delete(MATCH_KEY.format(match_id=match_id))
            except RedisError as e:
                logger.warning(f"Failed to evict match {match_id} from cache: {e}")

    async def list_matches(self, user_id: int) -> list[MatchView]:
        """Active matches of user_id, newest first, with the other participant."""
        other_id = case((Match.user_a == user_id, Match.user_b), else_=Match.user_a)
        stmt = (
            select(Match, User, Conversation.id)
            .join(User, User.id == other_id)
            .outerjoin(Conversation, Conversation.match_id == Match.id)
            .where(or_(Match.user_a == user_id, Match.user_b == user_id), Match.is_active.is_(True))
            .order_by(Match.created_at.desc(), Match.id.desc())
        )
        result = await self.db.execute(stmt)
        return [
            MatchView(match_id=match.id, conversation_id=conversation_id, other_user=user, created_at=match.created_at)
            for match, user, conversation_id in result.all()
        ]

    async def _like_exists(self, liker_id: int, liked_id: int) -> bool:
        found = await self.db.scalar(select(Like.id).where(Like.liker_id == liker_id, Like.liked_id == liked_id))
        return found is not None

    async def _has_blocked(self, blocker_id: int, blocked_id: int) -> bool:
        found = await self.db.scalar(
            select(BlockedUser.id).where(BlockedUser.blocker_id == blocker_id, BlockedUser.blocked_id == blocked_id)
        )
        return found is not None

    async def _record_like(self, liker_id: int, liked_id: int) -> tuple[MatchRecord | None, bool]:
        """
        Insert the like and, if reciprocated, the match + conversation.

        Runs inside the caller's transaction; nothing is committed here.

        Returns:
            (match record or None, whether the match was created by this call)
        """
        lo, hi = min(liker_id, liked_id), max(liker_id, liked_id)
        await advisory_xact_lock(self.db, f"match:{lo}:{hi}")

        self.db.add(Like(liker_id=liker_id, liked_id=liked_id))
        await self.db.flush()

        reciprocated = await self._like_exists(liked_id, liker_id)
        if not reciprocated:
            return None, False

        existing = await self.db.execute(
            select(Match, Conversation.id)
            .outerjoin(Conversation, Conversation.match_id == Match.id)
            .where(and_(Match.u_lo == lo, Match.u_hi == hi, Match.is_active.is_(True)))
        )
        row = existing.first()
        if row is not None:
            match, conversation_id = row
            return self._to_record(match, conversation_id), False

        match = Match(user_a=liker_id, user_b=liked_id, u_lo=lo, u_hi=hi)
        self.db.add(match)
        await self.db.flush()

        conversation = Conversation(match_id=match.id)
        self.db.add(conversation)
        await self.db.flush()

        return self._to_record(match, conversation.id), True

    @staticmethod
    def _to_record(match: Match, conversation_id: int | None) -> MatchRecord:
        return MatchRecord(
            id=match.id,
            user_a=match.user_a,
            user_b=match.user_b,
            conversation_id=conversation_id or 0,
            created_at=match.created_at,
        )

    async def _announce(self, record: MatchRecord) -> None:
        """Best-effort fan-out of a freshly created match."""
        for user_id in (record.user_a, record.user_b):
            if self.notifier is not None:
                await self.notifier.notify_match(user_id, record.id)
            if self.hub is not None:
                frame = MatchFrame(
                    match_id=record.id, conversation_id=record.conversation_id, user_id=record.other_user(user_id)
                )
                try:
                    self.hub.broadcast_to_user(user_id, encode(frame))
                except RuntimeError as e:
                    logger.warning(f"Match {record.id} not pushed to user {user_id}: {e}")

        if self.redis is not None:
            payload = {
                "user_a": record.user_a,
                "user_b": record.user_b,
                "conversation_id": record.conversation_id,
                "created_at": record.created_at.isoformat(),
            }
            try:
                await self.redis.set(MATCH_KEY.format(match_id=record.id), json.dumps(payload), ex=MATCH_CACHE_TTL)
            except RedisError as e:
                logger.warning(f"Failed to cache match {record.id}: {e}")
