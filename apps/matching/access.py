"""Participant checks shared by messaging and the WebSocket join guard."""

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Conversation, Match


async def conversation_for_participant(
    db: AsyncSession, conversation_id: int, user_id: int
) -> tuple[Conversation, Match] | None:
    """
    Load an active conversation if user_id is one of its match's participants.

    Returns:
        (conversation, match), or None when missing, inactive or not a participant
    """
    result = await db.execute(
        select(Conversation, Match)
        .join(Match, Match.id == Conversation.match_id)
        .where(
            Conversation.id == conversation_id,
            Conversation.is_active.is_(True),
            or_(Match.user_a == user_id, Match.user_b == user_id),
        )
    )
    row = result.first()
    if row is None:
        return None
    return row[0], row[1]
