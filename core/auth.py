"""Authentication and authorization utilities for API."""

from fastapi import Depends, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.db import get_db
from core.errors import Forbidden, Unauthorized
from core.security import decode_token
from models.admin import Admin

# Bearer security for user endpoints
_security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
) -> int:
    """
    Resolve the authenticated user id from a bearer access token.

    Args:
        credentials: Bearer credentials from the Authorization header

    Returns:
        Authenticated user id

    Raises:
        Unauthorized: If the header is missing or the token is invalid
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Bearer token required")

    user_id = decode_token(credentials.credentials)
    if user_id is None:
        raise Unauthorized("Invalid token")
    return user_id


async def require_admin(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Admin:
    """
    Allow only users that map to an active admin account.

    Raises:
        Forbidden: If the caller is not an active admin
    """
    result = await db.execute(select(Admin).where(Admin.user_id == user_id, Admin.is_active.is_(True)))
    admin = result.scalar_one_or_none()
    if admin is None:
        raise Forbidden("Admin access required")
    return admin


def websocket_user_id(websocket: WebSocket) -> int | None:
    """
    Authenticate a WebSocket upgrade request.

    Browsers cannot set headers on WebSocket upgrades, so the access token is
    also accepted as a `token` query parameter.

    Returns:
        User id, or None if no valid token was presented
    """
    token = None
    header = websocket.headers.get("authorization")
    if header and header.lower().startswith("bearer "):
        token = header[7:].strip()
    if not token:
        token = websocket.query_params.get("token")
    if not token:
        return None
    return decode_token(token)
