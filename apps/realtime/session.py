"""One live WebSocket connection with its read and write pumps."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol

from starlette.websockets import WebSocketDisconnect

from apps.realtime.protocol import (
    JOIN_CONVERSATION,
    STOP_TYPING,
    TYPING,
    ClientFrame,
    ErrorFrame,
    ProtocolError,
    TypingFrame,
    encode,
    parse_client_frame,
)
from core.metrics import ws_protocol_errors_total

if TYPE_CHECKING:
    from apps.realtime.hub import ConnectionRegistry

logger = logging.getLogger(__name__)

# Returns True when user_id may join conversation_id
JoinGuard = Callable[[int, int], Awaitable[bool]]

_CLOSE = None


class Transport(Protocol):
    """The part of starlette's WebSocket a session uses."""

    async def receive(self) -> dict: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ClientSession:
    """
    Authenticated connection.

    The outbound queue is bounded; the registry evicts the session when an
    offer does not fit. Closing the outbound side pushes a sentinel that
    makes the write pump close the socket.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        websocket: Transport,
        user_id: int,
        *,
        queue_size: int = 256,
        join_guard: JoinGuard | None = None,
    ):
        self.registry = registry
        self.websocket = websocket
        self.user_id = user_id
        self.conversation_id: int | None = None
        self._join_guard = join_guard
        # last conversation that passed the guard; typing is only relayed there
        self._admitted: int | None = None
        self._outbound: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    def __repr__(self) -> str:
        return f"<ClientSession(user_id={self.user_id}, conversation_id={self.conversation_id})>"

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, payload: str) -> bool:
        """Non-blocking enqueue; False when closed or full."""
        if self._closed:
            return False
        try:
            self._outbound.put_nowait(payload)
        except asyncio.QueueFull:
            return False
        return True

    def close_outbound(self) -> None:
        """Idempotent. Buffered frames are dropped if the sentinel does not fit."""
        if self._closed:
            return
        self._closed = True
        try:
            self._outbound.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            while not self._outbound.empty():
                self._outbound.get_nowait()
            self._outbound.put_nowait(_CLOSE)

    async def serve(self) -> None:
        """Run both pumps until the connection ends."""
        writer = asyncio.create_task(self.write_pump())
        try:
            await self.read_pump()
        finally:
            # unregister closes the outbound side, which ends the writer
            await writer

    async def read_pump(self) -> None:
        try:
            while True:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
                try:
                    raw = message.get("text")
                    if raw is None:
                        raise ProtocolError("binary frames are not supported")
                    frame = parse_client_frame(raw)
                except ProtocolError as e:
                    ws_protocol_errors_total.inc()
                    logger.warning(f"Protocol violation from user {self.user_id}: {e}")
                    break
                await self._handle(frame)
        except WebSocketDisconnect:
            logger.debug(f"User {self.user_id} disconnected")
        except RuntimeError as e:
            # starlette raises once the socket has been closed from our side
            logger.debug(f"Read loop for user {self.user_id} ended: {e}")
        finally:
            self.registry.unregister(self)

    async def write_pump(self) -> None:
        try:
            while True:
                payload = await self._outbound.get()
                if payload is _CLOSE:
                    break
                await self.websocket.send_text(payload)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.info(f"Write to user {self.user_id} failed: {e}")
        finally:
            self.registry.unregister(self)
            await self._close_socket()

    async def _handle(self, frame: ClientFrame) -> None:
        if frame.type == JOIN_CONVERSATION:
            await self._join(frame.conversation_id)
        elif frame.type in (TYPING, STOP_TYPING):
            if frame.conversation_id != self._admitted:
                logger.info(f"User {self.user_id} sent typing to unjoined conversation {frame.conversation_id}")
                self.offer(encode(ErrorFrame(detail="Not joined to conversation")))
                return
            payload = encode(
                TypingFrame(
                    conversation_id=frame.conversation_id,
                    user_id=self.user_id,
                    is_typing=frame.type == TYPING,
                )
            )
            self.registry.broadcast_to_conversation(frame.conversation_id, payload)
        else:
            logger.debug(f"Ignoring frame type {frame.type!r} from user {self.user_id}")

    async def _join(self, conversation_id: int) -> None:
        if not await self._may_join(conversation_id):
            logger.info(f"User {self.user_id} denied join to conversation {conversation_id}")
            self.offer(encode(ErrorFrame(detail="Access denied to conversation")))
            return
        self._admitted = conversation_id
        self.registry.join(self, conversation_id)

    async def _may_join(self, conversation_id: int) -> bool:
        if self._join_guard is None:
            return True
        try:
            return await self._join_guard(self.user_id, conversation_id)
        except Exception as e:
            logger.error(f"Join check for user {self.user_id} on conversation {conversation_id} failed: {e}")
            return False

    async def _close_socket(self) -> None:
        try:
            await self.websocket.close()
        except RuntimeError:
            # already closed by the peer
            pass
