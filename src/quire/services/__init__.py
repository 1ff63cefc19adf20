# src/quire/services/__init__.py
"""Business logic services for the Quire messaging core."""

from .background import BackgroundTaskSet
from .delivery import MessageDeliveryService, Transport
from .directory import UserDirectory
from .media import MediaStorageClient
from .message_store import MessageStore
from .presence import InMemoryPresenceStore, PresenceStore, RedisPresenceStore
from .push import PushDispatcher, PushNotification

__all__ = [
    "BackgroundTaskSet",
    "InMemoryPresenceStore",
    "MediaStorageClient",
    "MessageDeliveryService",
    "MessageStore",
    "PresenceStore",
    "PushDispatcher",
    "PushNotification",
    "RedisPresenceStore",
    "Transport",
    "UserDirectory",
]
