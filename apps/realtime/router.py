"""Conversation and user membership index for the connection registry."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from apps.realtime.session import ClientSession


class ConversationRouter:
    """
    Maps conversation ids and user ids to live sessions.

    Only the registry coordinator mutates the index, so membership here is
    always a subset of the registry's live set.
    """

    def __init__(self) -> None:
        self._by_conversation: dict[int, set[ClientSession]] = defaultdict(set)
        self._by_user: dict[int, set[ClientSession]] = defaultdict(set)

    def add(self, session: ClientSession) -> None:
        self._by_user[session.user_id].add(session)

    def join(self, session: ClientSession, conversation_id: int) -> None:
        """Move a session into conversation_id, leaving its previous one."""
        previous = session.conversation_id
        if previous is not None and previous != conversation_id:
            self._leave(session, previous)
        session.conversation_id = conversation_id
        self._by_conversation[conversation_id].add(session)

    def discard(self, session: ClientSession) -> None:
        if session.conversation_id is not None:
            self._leave(session, session.conversation_id)

        sessions = self._by_user.get(session.user_id)
        if sessions is not None:
            sessions.discard(session)
            if not sessions:
                del self._by_user[session.user_id]

    def members(self, conversation_id: int) -> list[ClientSession]:
        return list(self._by_conversation.get(conversation_id, ()))

    def sessions_for_user(self, user_id: int) -> list[ClientSession]:
        return list(self._by_user.get(user_id, ()))

    def _leave(self, session: ClientSession, conversation_id: int) -> None:
        members = self._by_conversation.get(conversation_id)
        if members is None:
            return
        members.discard(session)
        if not members:
            del self._by_conversation[conversation_id]
