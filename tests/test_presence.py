# tests/test_presence.py
from __future__ import annotations

from unittest.mock import MagicMock

from pytest_mock import MockerFixture

from quire.core.settings import Settings
from quire.services.presence import (
    InMemoryPresenceStore,
    RedisPresenceStore,
    build_presence_store,
)


def test_add_and_remove_are_idempotent() -> None:
    store = InMemoryPresenceStore()
    store.add(5)
    store.add("5")
    assert store.has(5)
    assert len(store) == 1

    store.remove(5)
    store.remove(5)
    assert not store.has("5")
    assert len(store) == 0


def test_ids_are_normalized_to_strings() -> None:
    store = InMemoryPresenceStore()
    store.add(42)
    assert store.has("42")
    assert store.get_status([42, "7"]) == {"42": True, "7": False}


def test_get_status_reports_after_disconnect() -> None:
    store = InMemoryPresenceStore()
    store.add("a")
    store.add("b")
    store.remove("a")
    assert store.get_status(["a", "b", "c"]) == {"a": False, "b": True, "c": False}


def test_get_status_of_nothing_is_empty() -> None:
    assert InMemoryPresenceStore().get_status([]) == {}


def test_redis_store_uses_set_commands() -> None:
    client = MagicMock()
    client.sismember.return_value = 1
    client.smismember.return_value = [1, 0]
    store = RedisPresenceStore(client, key="presence:test")

    store.add(3)
    store.remove(4)
    assert store.has(3) is True
    assert store.get_status([3, 4]) == {"3": True, "4": False}

    client.sadd.assert_called_once_with("presence:test", "3")
    client.srem.assert_called_once_with("presence:test", "4")
    client.smismember.assert_called_once_with("presence:test", ["3", "4"])


def test_redis_store_skips_empty_status_query() -> None:
    client = MagicMock()
    assert RedisPresenceStore(client).get_status([]) == {}
    client.smismember.assert_not_called()


def test_build_presence_store_defaults_to_memory() -> None:
    config = Settings(PRESENCE_BACKEND="memory")
    assert isinstance(build_presence_store(config), InMemoryPresenceStore)


def test_build_presence_store_selects_redis(mocker: MockerFixture) -> None:
    from_url = mocker.patch("quire.services.presence.redis.Redis.from_url")
    config = Settings(PRESENCE_BACKEND="redis", REDIS_URL="redis://cache:6379/1")

    store = build_presence_store(config)

    assert isinstance(store, RedisPresenceStore)
    from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)
