# src/quire/schemas/__init__.py
"""Pydantic schemas for the Quire API and realtime protocol."""

from .message import (
    ConversationSummary,
    EncryptedPayload,
    EncryptedVoicePayload,
    MessageOut,
    MessagePayload,
    SendMessageRequest,
    TextPayload,
    VoicePayload,
)
from .realtime import AckFrame, EventFrame, InboundFrame

__all__ = [
    "AckFrame",
    "ConversationSummary",
    "EncryptedPayload",
    "EncryptedVoicePayload",
    "EventFrame",
    "InboundFrame",
    "MessageOut",
    "MessagePayload",
    "SendMessageRequest",
    "TextPayload",
    "VoicePayload",
]
