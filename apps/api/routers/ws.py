"""WebSocket endpoint."""

import logging

from fastapi import APIRouter, Depends, WebSocket

from apps.api.deps import get_hub, get_join_guard
from apps.realtime.hub import ConnectionRegistry
from apps.realtime.session import JoinGuard
from core.auth import websocket_user_id

router = APIRouter(tags=["ws"])
logger = logging.getLogger(__name__)

# Application close code for a missing or invalid token
WS_CLOSE_UNAUTHORIZED = 4401


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    hub: ConnectionRegistry = Depends(get_hub),
    join_guard: JoinGuard = Depends(get_join_guard),
) -> None:
    """
    Authenticated real-time channel.

    The token comes from the Authorization header or the `token` query
    parameter. Unauthenticated upgrades are closed before the session is
    registered.
    """
    user_id = websocket_user_id(websocket)
    if user_id is None:
        logger.info("Rejected unauthenticated WebSocket upgrade")
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    session = hub.create_session(websocket, user_id, join_guard=join_guard)
    hub.register(session)
    await session.serve()
