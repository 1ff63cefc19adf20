"""Named groups of live sockets, one room per user."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Protocol

from quire.schemas.realtime import EventFrame

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Anything that can receive a JSON frame (a Starlette ``WebSocket``)."""

    async def send_json(self, data: Any, mode: str = "text") -> None: ...


def room_for(user_id: object) -> str:
    """Return the room every connection of ``user_id`` joins."""
    return f"user:{user_id}"


class RoomHub:
    """Tracks room membership and broadcasts event frames to rooms."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[Connection]] = defaultdict(set)

    def join(self, room: str, conn: Connection) -> None:
        self._rooms[room].add(conn)

    def leave(self, room: str, conn: Connection) -> int:
        """Remove ``conn`` from ``room`` and return how many connections remain."""
        members = self._rooms.get(room)
        if members is None:
            return 0
        members.discard(conn)
        if not members:
            del self._rooms[room]
            return 0
        return len(members)

    def connections(self, room: str) -> frozenset[Connection]:
        return frozenset(self._rooms.get(room, ()))

    async def emit(self, room: str, event: str, data: dict[str, Any]) -> None:
        """Send ``event`` to every connection in ``room`` concurrently.

        A connection whose send fails is dropped from the room; the others
        still receive the frame.
        """
        members = list(self._rooms.get(room, ()))
        if not members:
            return
        frame = EventFrame(event=event, data=data).model_dump(mode="json")
        results = await asyncio.gather(
            *(conn.send_json(frame) for conn in members),
            return_exceptions=True,
        )
        for conn, result in zip(members, results):
            if isinstance(result, BaseException):
                logger.warning("Dropping connection from %s after failed send: %s", room, result)
                self.leave(room, conn)
