"""WebSocket frame models.

Inbound frames name an event and may carry a correlation ``id``; when present,
the server answers with exactly one ``ack`` frame echoing that id.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class InboundFrame(BaseModel):
    """Client -> server."""

    event: str
    id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class ErrorDetail(BaseModel):
    code: str
    message: str


class AckFrame(BaseModel):
    """Server -> client reply to a correlated inbound frame."""

    event: Literal["ack"] = "ack"
    id: str | None = None
    ok: bool
    data: dict[str, Any] | None = None
    error: ErrorDetail | None = None

    @classmethod
    def success(cls, frame_id: str | None, data: dict[str, Any] | None = None) -> AckFrame:
        return cls(id=frame_id, ok=True, data=data)

    @classmethod
    def failure(cls, frame_id: str | None, code: str, message: str) -> AckFrame:
        return cls(id=frame_id, ok=False, error=ErrorDetail(code=code, message=message))


class EventFrame(BaseModel):
    """Server -> client push of a named event."""

    event: str
    data: dict[str, Any]


class TypingRequest(BaseModel):
    receiver_id: int | None = None


class MarkReadRequest(BaseModel):
    other_user_id: int | None = None


class DeleteMessageRequest(BaseModel):
    message_id: int | None = None
