"""
Connection registry.

A single coordinator task owns the set of live sessions and the
conversation index. Every mutation and every fan-out is a command on one
inbox queue, so commands are applied in submission order and no locks are
needed. Callers only enqueue; they never wait for delivery.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from contextlib import suppress
from dataclasses import dataclass

from apps.realtime.router import ConversationRouter
from apps.realtime.session import ClientSession
from core.config import settings
from core.metrics import ws_evictions_total, ws_frames_delivered_total, ws_sessions_active

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Register:
    session: ClientSession


@dataclass(frozen=True)
class _Unregister:
    session: ClientSession


@dataclass(frozen=True)
class _Join:
    session: ClientSession
    conversation_id: int


@dataclass(frozen=True)
class _Broadcast:
    payload: str
    conversation_id: int | None = None
    user_id: int | None = None


class ConnectionRegistry:
    """Actor that owns every live ClientSession."""

    def __init__(self, send_queue_size: int = 256):
        self.send_queue_size = send_queue_size
        self.router = ConversationRouter()
        self._sessions: set[ClientSession] = set()
        self._inbox: asyncio.Queue | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def is_registered(self, session: ClientSession) -> bool:
        return session in self._sessions

    async def start(self) -> None:
        if self.running:
            return
        self._inbox = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name="connection-registry")
        logger.info("Connection registry started")

    async def stop(self) -> None:
        """Apply pending commands, close every session and stop the coordinator."""
        if not self.running:
            return
        await self.drain()
        for session in list(self._sessions):
            self._remove(session)

        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Connection registry stopped")

    async def drain(self) -> None:
        """Wait until every command submitted so far has been applied."""
        if self.running:
            await self._inbox.join()

    # Commands. All of them return immediately.

    def register(self, session: ClientSession) -> None:
        self._submit(_Register(session))

    def unregister(self, session: ClientSession) -> None:
        self._submit(_Unregister(session))

    def join(self, session: ClientSession, conversation_id: int) -> None:
        self._submit(_Join(session, conversation_id))

    def broadcast_all(self, payload: str) -> None:
        self._submit(_Broadcast(payload))

    def broadcast_to_conversation(self, conversation_id: int, payload: str) -> None:
        self._submit(_Broadcast(payload, conversation_id=conversation_id))

    def broadcast_to_user(self, user_id: int, payload: str) -> None:
        self._submit(_Broadcast(payload, user_id=user_id))

    def create_session(self, websocket, user_id: int, join_guard=None) -> ClientSession:
        return ClientSession(self, websocket, user_id, queue_size=self.send_queue_size, join_guard=join_guard)

    def _submit(self, command) -> None:
        if self._inbox is None:
            raise RuntimeError("Connection registry is not running")
        self._inbox.put_nowait(command)

    async def _run(self) -> None:
        while True:
            command = await self._inbox.get()
            try:
                self._apply(command)
            except Exception:
                logger.exception(f"Registry command failed: {command!r}")
            finally:
                self._inbox.task_done()

    def _apply(self, command) -> None:
        if isinstance(command, _Register):
            self._add(command.session)
        elif isinstance(command, _Unregister):
            self._remove(command.session)
        elif isinstance(command, _Join):
            # a session that is already gone never re-enters the index
            if command.session in self._sessions:
                self.router.join(command.session, command.conversation_id)
        elif isinstance(command, _Broadcast):
            if command.conversation_id is not None:
                targets = self.router.members(command.conversation_id)
            elif command.user_id is not None:
                targets = self.router.sessions_for_user(command.user_id)
            else:
                targets = list(self._sessions)
            self._deliver(targets, command.payload)

    def _add(self, session: ClientSession) -> None:
        if session.closed or session in self._sessions:
            return
        self._sessions.add(session)
        self.router.add(session)
        ws_sessions_active.set(len(self._sessions))
        logger.info(f"User {session.user_id} connected ({len(self._sessions)} sessions)")

    def _remove(self, session: ClientSession, evicted: bool = False) -> None:
        if session not in self._sessions:
            return
        self._sessions.discard(session)
        self.router.discard(session)
        session.close_outbound()
        ws_sessions_active.set(len(self._sessions))
        if evicted:
            ws_evictions_total.inc()
            logger.warning(f"Evicted slow session for user {session.user_id}")
        else:
            logger.info(f"User {session.user_id} disconnected ({len(self._sessions)} sessions)")

    def _deliver(self, targets: Iterable[ClientSession], payload: str) -> None:
        for session in targets:
            if session.offer(payload):
                ws_frames_delivered_total.inc()
            else:
                self._remove(session, evicted=True)


hub = ConnectionRegistry(send_queue_size=settings.ws_send_queue_size)
