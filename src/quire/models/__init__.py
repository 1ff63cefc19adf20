"""SQLAlchemy models for the Quire messaging service."""

from .message import Message
from .user import User, UserBlock

__all__ = [
    "Message",
    "User", "UserBlock",
]
