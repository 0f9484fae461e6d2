"""Notification sink: persists user notifications and hands them to push delivery."""

import json
import logging
from typing import Any

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.db import AsyncSessionLocal
from core.metrics import notifications_failed_total
from models import Notification

logger = logging.getLogger(__name__)


class Notifier:
    """
    Best-effort notification delivery.

    Uses its own database session so a failure never touches the caller's
    transaction. Failures are logged and reported as False.
    """

    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal) -> None:
        self.session_factory = session_factory

    async def notify(
        self, user_id: int, kind: str, title: str, body: str, data: dict[str, Any] | None = None
    ) -> bool:
        """
        Persist a notification for a user and attempt push delivery.

        Args:
            user_id: Recipient
            kind: Notification type (match, message)
            title: Short title
            body: Body text
            data: Extra JSON payload

        Returns:
            True if the notification was stored
        """
        try:
            async with self.session_factory() as db:
                db.add(
                    Notification(
                        user_id=user_id,
                        type=kind,
                        title=title,
                        body=body,
                        data=json.dumps(data) if data else None,
                    )
                )
                await db.commit()
        except Exception as e:
            notifications_failed_total.labels(kind=kind).inc()
            logger.error(f"Failed to store {kind} notification for user {user_id}: {e}")
            return False

        await self.push(user_id, title, body, data)
        return True

    async def notify_match(self, user_id: int, match_id: int) -> bool:
        return await self.notify(
            user_id, "match", "New Match!", "You have a new match! Start chatting now.", {"match_id": match_id}
        )

    async def notify_message(self, user_id: int, conversation_id: int, content: str) -> bool:
        return await self.notify(user_id, "message", "New Message", content, {"conversation_id": conversation_id})

    async def push(self, user_id: int, title: str, body: str, data: dict[str, Any] | None = None) -> None:
        # TODO: deliver through FCM once device tokens are stored per user
        logger.debug(f"Push to user {user_id} skipped: no push provider configured ({title})")


# Global notifier instance
notifier = Notifier()
