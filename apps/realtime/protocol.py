"""WebSocket control-frame protocol (JSON text frames)."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, StrictInt, ValidationError

JOIN_CONVERSATION = "join_conversation"
TYPING = "typing"
STOP_TYPING = "stop_typing"

# Client frame types that must carry a conversation id
CONVERSATION_FRAMES = {JOIN_CONVERSATION, TYPING, STOP_TYPING}


class ProtocolError(ValueError):
    """Inbound frame could not be decoded; the session is torn down."""


class ClientFrame(BaseModel):
    """Client -> Server."""

    model_config = ConfigDict(extra="ignore")

    type: str  # join_conversation | typing | stop_typing
    conversation_id: StrictInt | None = None


class TypingFrame(BaseModel):
    """Server -> Client typing indicator."""

    type: Literal["typing"] = "typing"
    conversation_id: int
    user_id: int
    is_typing: bool


class ChatMessageFrame(BaseModel):
    """Server -> Client chat delivery, sent after the message is persisted."""

    type: Literal["message"] = "message"
    conversation_id: int
    sender_id: int
    content: str
    message_type: str
    timestamp: str  # RFC3339


class MatchFrame(BaseModel):
    """Server -> Client new-match announcement."""

    type: Literal["match"] = "match"
    match_id: int
    conversation_id: int
    user_id: int  # the other participant


class ErrorFrame(BaseModel):
    """Server -> Client non-fatal error."""

    type: Literal["error"] = "error"
    detail: str


def parse_client_frame(raw: str) -> ClientFrame:
    """
    Decode one inbound text frame.

    Raises:
        ProtocolError: On malformed JSON, a missing type, or a conversation
            frame without a positive integer conversation_id
    """
    try:
        frame = ClientFrame.model_validate_json(raw)
    except ValidationError as e:
        raise ProtocolError(f"Malformed frame: {e.error_count()} error(s)") from e

    if frame.type in CONVERSATION_FRAMES and (frame.conversation_id is None or frame.conversation_id <= 0):
        raise ProtocolError(f"{frame.type} requires a positive conversation_id")
    return frame


def encode(frame: BaseModel) -> str:
    """Serialize an outbound frame to compact JSON."""
    return frame.model_dump_json()


def rfc3339(moment: datetime) -> str:
    """Format a naive-UTC or aware datetime as RFC3339 with a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
