# src/quire/schemas/message.py
"""Message payload and response schemas.

A message carries exactly one payload variant. The variants form a
discriminated union on ``kind`` so that zero or multiple variants can never be
set at the same time; everything downstream branches on ``kind`` alone.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator

from quire.db.time import as_utc

MESSAGE_KINDS = ("text", "voice", "encrypted", "encrypted_voice")
ENCRYPTED_KINDS = frozenset({"encrypted", "encrypted_voice"})


class TextPayload(BaseModel):
    """Plain text body."""

    kind: Literal["text"] = "text"
    text: str

    @field_validator("text")
    @classmethod
    def strip_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Message text cannot be empty")
        return stripped


class VoicePayload(BaseModel):
    """Voice note stored in external media storage."""

    kind: Literal["voice"] = "voice"
    url: str = Field(..., min_length=1)
    duration: float = Field(..., ge=0)
    storage_ref: str | None = None


class EncryptedPayload(BaseModel):
    """End-to-end encrypted text.

    ``sender_public_key`` snapshots the key used at encryption time so the
    message stays decryptable after the sender rotates keys.
    """

    kind: Literal["encrypted"] = "encrypted"
    ciphertext: str = Field(..., min_length=1)
    nonce: str = Field(..., min_length=1)
    sender_public_key: str | None = None


class EncryptedVoicePayload(BaseModel):
    """End-to-end encrypted voice note."""

    kind: Literal["encrypted_voice"] = "encrypted_voice"
    ciphertext: str = Field(..., min_length=1)
    nonce: str = Field(..., min_length=1)
    sender_public_key: str | None = None
    duration: float = Field(..., ge=0)


MessagePayload = Annotated[
    Union[TextPayload, VoicePayload, EncryptedPayload, EncryptedVoicePayload],
    Field(discriminator="kind"),
]

payload_adapter: TypeAdapter[MessagePayload] = TypeAdapter(MessagePayload)


class SendMessageRequest(BaseModel):
    """Body for ``POST /messages`` and data of the ``send_message`` event.

    The payload is kept loose here so the delivery protocol can apply its
    validation order (receiver first, payload second).
    """

    receiver_id: int | None = None
    payload: dict[str, Any] | None = None


class UserBrief(BaseModel):
    """Display fields for a message participant."""

    id: int
    username: str
    profile_img: str = ""

    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    """Persisted message enriched with participant display fields."""

    id: int
    sender: UserBrief
    receiver: UserBrief
    kind: str
    payload: MessagePayload
    is_encrypted: bool
    read: bool
    created_at: datetime

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return as_utc(value).isoformat()


class MessagePreview(BaseModel):
    """Latest-message summary shown in the conversation list."""

    id: int
    kind: str
    preview: str
    sender_id: int
    is_encrypted: bool
    read: bool
    created_at: datetime

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return as_utc(value).isoformat()


class ConversationSummary(BaseModel):
    """One row of ``GET /messages/conversations``."""

    user: UserBrief
    last_message: MessagePreview
    unread_count: int = 0


class ConversationListResponse(BaseModel):
    conversations: list[ConversationSummary]


class MessagePageResponse(BaseModel):
    messages: list[MessageOut]
    has_more: bool


class MessageEnvelope(BaseModel):
    message: MessageOut
