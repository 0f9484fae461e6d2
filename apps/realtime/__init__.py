"""Real-time delivery over WebSocket."""

from apps.realtime.hub import ConnectionRegistry, hub
from apps.realtime.router import ConversationRouter
from apps.realtime.session import ClientSession

__all__ = ["ConnectionRegistry", "ConversationRouter", "ClientSession", "hub"]
