"""Database models."""

from models.admin import Admin, UserActivity
from models.chat import Message, Notification
from models.match import Conversation, Dislike, Like, Match
from models.safety import BlockedUser, Favorite, Report
from models.user import Interest, Otp, ProfilePhoto, User, UserInterest

__all__ = [
    "User",
    "ProfilePhoto",
    "Interest",
    "UserInterest",
    "Otp",
    "Like",
    "Dislike",
    "Match",
    "Conversation",
    "Message",
    "Notification",
    "BlockedUser",
    "Favorite",
    "Report",
    "Admin",
    "UserActivity",
]
