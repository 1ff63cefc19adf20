# tests/realtime/test_rooms.py
from __future__ import annotations

import pytest

from quire.realtime.rooms import RoomHub, room_for
from tests.conftest import FakeSocket


def test_room_for_user() -> None:
    assert room_for(12) == "user:12"


def test_leave_reports_remaining_connections() -> None:
    hub = RoomHub()
    phone, laptop = FakeSocket(), FakeSocket()
    hub.join("user:1", phone)
    hub.join("user:1", laptop)

    assert hub.leave("user:1", phone) == 1
    assert hub.connections("user:1") == frozenset({laptop})
    assert hub.leave("user:1", laptop) == 0
    assert hub.leave("user:1", laptop) == 0
    assert hub.connections("user:1") == frozenset()


@pytest.mark.asyncio
async def test_emit_reaches_every_connection_in_room() -> None:
    hub = RoomHub()
    phone, laptop, stranger = FakeSocket(), FakeSocket(), FakeSocket()
    hub.join("user:1", phone)
    hub.join("user:1", laptop)
    hub.join("user:2", stranger)

    await hub.emit("user:1", "typing_start", {"user_id": 2})

    expected = [{"event": "typing_start", "data": {"user_id": 2}}]
    assert phone.sent == expected
    assert laptop.sent == expected
    assert stranger.sent == []


@pytest.mark.asyncio
async def test_emit_drops_failed_connection() -> None:
    hub = RoomHub()
    healthy, broken = FakeSocket(), FakeSocket(fail=True)
    hub.join("user:1", healthy)
    hub.join("user:1", broken)

    await hub.emit("user:1", "new_message", {"id": 1})

    assert healthy.sent == [{"event": "new_message", "data": {"id": 1}}]
    assert hub.connections("user:1") == frozenset({healthy})


@pytest.mark.asyncio
async def test_emit_to_empty_room_is_noop() -> None:
    await RoomHub().emit("user:404", "new_message", {})
