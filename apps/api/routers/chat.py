"""Conversation and message endpoints."""

import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_hub, get_notifier
from apps.api.queries import primary_photo_urls
from apps.api.schemas import UserPublic
from apps.matching.access import conversation_for_participant
from apps.realtime.hub import ConnectionRegistry
from apps.realtime.protocol import ChatMessageFrame, encode, rfc3339
from apps.workers.notifier import Notifier
from core.auth import get_current_user_id
from core.errors import Forbidden
from core.metrics import messages_sent_total
from models import Conversation, Match, Message, User

router = APIRouter(prefix="/messages", tags=["messages"])
logger = logging.getLogger(__name__)


class SendMessageRequest(BaseModel):
    content: str = Field(min_length=1)
    message_type: Literal["text", "image", "emoji"] = "text"


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: int
    sender_id: int
    content: str
    message_type: str
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class ConversationOut(BaseModel):
    id: int
    match_id: int
    other_user: UserPublic
    last_message: MessageOut | None = None
    unread_count: int
    created_at: datetime
    updated_at: datetime


async def _require_access(db: AsyncSession, conversation_id: int, user_id: int) -> Match:
    found = await conversation_for_participant(db, conversation_id, user_id)
    if found is None:
        raise Forbidden("Access denied to this conversation")
    return found[1]


async def _mark_read(db: AsyncSession, conversation_id: int, reader_id: int) -> int:
    result = await db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation_id,
            Message.sender_id != reader_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.utcnow())
    )
    await db.commit()
    return result.rowcount


@router.get("/conversations")
async def get_conversations(
    user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict[str, list[ConversationOut]]:
    """Active conversations, most recent activity first."""
    other_id = case((Match.user_a == user_id, Match.user_b), else_=Match.user_a)
    last_id = (
        select(func.max(Message.id))
        .where(Message.conversation_id == Conversation.id)
        .correlate(Conversation)
        .scalar_subquery()
    )
    unread = (
        select(func.count(Message.id))
        .where(
            Message.conversation_id == Conversation.id,
            Message.sender_id != user_id,
            Message.is_read.is_(False),
        )
        .correlate(Conversation)
        .scalar_subquery()
    )
    result = await db.execute(
        select(Conversation, User, last_id.label("last_id"), unread.label("unread"))
        .join(Match, Match.id == Conversation.match_id)
        .join(User, User.id == other_id)
        .where(
            Conversation.is_active.is_(True),
            Match.is_active.is_(True),
            or_(Match.user_a == user_id, Match.user_b == user_id),
        )
    )
    rows = result.all()

    last_ids = [row.last_id for row in rows if row.last_id is not None]
    last_messages = {}
    if last_ids:
        last_messages = {m.id: m for m in await db.scalars(select(Message).where(Message.id.in_(last_ids)))}
    photos = await primary_photo_urls(db, [row.User.id for row in rows])

    conversations = []
    for conversation, other, message_id, unread_count in rows:
        last = last_messages.get(message_id)
        conversations.append(
            ConversationOut(
                id=conversation.id,
                match_id=conversation.match_id,
                other_user=UserPublic.from_user(other, photos.get(other.id)),
                last_message=MessageOut.model_validate(last) if last else None,
                unread_count=unread_count,
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
            )
        )

    conversations.sort(
        key=lambda c: c.last_message.created_at if c.last_message else c.updated_at,
        reverse=True,
    )
    return {"conversations": conversations}


@router.get("/conversations/{conversation_id}")
async def get_messages(
    conversation_id: int, user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict[str, list[MessageOut]]:
    """History in ascending order; incoming messages are marked read afterwards."""
    await _require_access(db, conversation_id, user_id)

    messages = [
        MessageOut.model_validate(m)
        for m in await db.scalars(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, Message.id)
        )
    ]
    await _mark_read(db, conversation_id, user_id)
    return {"messages": messages}


@router.post("/conversations/{conversation_id}", status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: int,
    body: SendMessageRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    hub: ConnectionRegistry = Depends(get_hub),
    notifier: Notifier = Depends(get_notifier),
) -> dict[str, MessageOut]:
    """
    Persist a message, then push it to live sessions in the conversation and
    notify the other participant. The row is committed before any fan-out.
    """
    match = await _require_access(db, conversation_id, user_id)

    message = Message(
        conversation_id=conversation_id,
        sender_id=user_id,
        content=body.content,
        message_type=body.message_type,
    )
    db.add(message)
    await db.execute(
        update(Conversation).where(Conversation.id == conversation_id).values(updated_at=datetime.utcnow())
    )
    await db.commit()
    messages_sent_total.labels(message_type=body.message_type).inc()

    frame = ChatMessageFrame(
        conversation_id=conversation_id,
        sender_id=user_id,
        content=message.content,
        message_type=message.message_type,
        timestamp=rfc3339(message.created_at),
    )
    try:
        hub.broadcast_to_conversation(conversation_id, encode(frame))
    except RuntimeError as e:
        logger.warning(f"Message {message.id} not pushed live: {e}")

    await notifier.notify_message(match.other_user(user_id), conversation_id, body.content)

    logger.info(f"User {user_id} sent message {message.id} to conversation {conversation_id}")
    return {"message": MessageOut.model_validate(message)}


@router.put("/conversations/{conversation_id}/read")
async def mark_as_read(
    conversation_id: int, user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
) -> dict[str, str | int]:
    await _require_access(db, conversation_id, user_id)
    updated = await _mark_read(db, conversation_id, user_id)
    return {"message": "Messages marked as read", "updated": updated}
