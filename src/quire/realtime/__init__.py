"""Realtime transport: WebSocket gateway and per-user rooms."""

from .rooms import RoomHub, room_for

__all__ = ["RoomHub", "room_for"]
