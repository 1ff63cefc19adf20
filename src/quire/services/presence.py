"""Presence tracking: which users currently hold a realtime connection.

The store only answers membership questions. It is created at application
startup and owned by the connection gateway; nothing keeps it at module level.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

import redis

from quire.core.settings import Settings

logger = logging.getLogger(__name__)


class PresenceStore(Protocol):
    """Membership contract shared by every presence backend."""

    def add(self, user_id: object) -> None: ...

    def remove(self, user_id: object) -> None: ...

    def has(self, user_id: object) -> bool: ...

    def get_status(self, ids: Iterable[object]) -> dict[str, bool]: ...


class InMemoryPresenceStore:
    """Process-local presence set keyed by the string form of the user id."""

    def __init__(self) -> None:
        self._online: set[str] = set()

    def add(self, user_id: object) -> None:
        self._online.add(str(user_id))

    def remove(self, user_id: object) -> None:
        self._online.discard(str(user_id))

    def has(self, user_id: object) -> bool:
        return str(user_id) in self._online

    def get_status(self, ids: Iterable[object]) -> dict[str, bool]:
        return {str(user_id): str(user_id) in self._online for user_id in ids or ()}

    def __len__(self) -> int:
        return len(self._online)


class RedisPresenceStore:
    """Presence set shared between processes through a Redis set."""

    def __init__(self, client: redis.Redis, key: str = "quire:presence") -> None:
        self._redis = client
        self._key = key

    @classmethod
    def from_url(cls, url: str, key: str) -> RedisPresenceStore:
        return cls(redis.Redis.from_url(url, decode_responses=True), key=key)

    def add(self, user_id: object) -> None:
        self._redis.sadd(self._key, str(user_id))

    def remove(self, user_id: object) -> None:
        self._redis.srem(self._key, str(user_id))

    def has(self, user_id: object) -> bool:
        return bool(self._redis.sismember(self._key, str(user_id)))

    def get_status(self, ids: Iterable[object]) -> dict[str, bool]:
        keys = [str(user_id) for user_id in ids or ()]
        if not keys:
            return {}
        flags = self._redis.smismember(self._key, keys)
        return {key: bool(flag) for key, flag in zip(keys, flags)}


def build_presence_store(config: Settings) -> PresenceStore:
    """Return the presence backend selected by ``PRESENCE_BACKEND``."""
    if config.presence_backend == "redis":
        logger.info("Using Redis presence store at %s", config.redis_url)
        return RedisPresenceStore.from_url(config.redis_url, config.presence_redis_key)
    return InMemoryPresenceStore()
