# src/quire/services/delivery.py
"""Message delivery protocol shared by the realtime and HTTP transports.

Both transports run the same validation sequence and persist through the same
store; they differ only in how notifications are emitted. Realtime sends
awaited emits to both participants before acknowledging, while HTTP notifies
the receiver from a detached task after the response is produced.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from quire.core.settings import settings
from quire.realtime.rooms import RoomHub, room_for
from quire.schemas.message import (
    ENCRYPTED_KINDS,
    MessagePayload,
    TextPayload,
    VoicePayload,
    payload_adapter,
)
from quire.services.background import BackgroundTaskSet
from quire.services.directory import UserDirectory
from quire.services.errors import (
    BlockedByRecipient,
    NotMessageOwner,
    PlaintextNotAllowed,
    RecipientBlocked,
    RecipientNotE2EEReady,
    ValidationFailed,
)
from quire.services.media import MediaStorageClient
from quire.services.message_store import MessageStore, serialize_message
from quire.services.push import PushDispatcher, PushNotification

logger = logging.getLogger(__name__)

PUSH_PREVIEW_LENGTH = 80


class Transport(enum.Enum):
    """Surface a delivery request arrived on."""

    REALTIME = "realtime"
    HTTP = "http"


def push_body(payload: MessagePayload) -> str:
    """Notification text for a payload; never includes ciphertext."""
    if payload.kind == "encrypted":
        return "🔒 Encrypted message"
    if payload.kind == "voice":
        return "🎤 Voice message"
    if payload.kind == "encrypted_voice":
        return "🔒 Encrypted voice message"
    text = payload.text if isinstance(payload, TextPayload) else ""
    if len(text) > PUSH_PREVIEW_LENGTH:
        return text[: PUSH_PREVIEW_LENGTH - 3] + "…"
    return text


class MessageDeliveryService:
    """Validate, persist and fan out direct messages."""

    def __init__(
        self,
        db: Session,
        hub: RoomHub,
        push: PushDispatcher,
        tasks: BackgroundTaskSet,
        media: MediaStorageClient | None = None,
    ) -> None:
        self.db = db
        self.hub = hub
        self.push = push
        self.tasks = tasks
        self.store = MessageStore(db, media=media, tasks=tasks)
        self.directory = UserDirectory(db)

    async def send(
        self,
        sender_id: int,
        receiver_id: int | None,
        payload: dict[str, Any] | None,
        transport: Transport,
        *,
        storage_ref: str | None = None,
    ) -> dict[str, Any]:
        """Deliver one message and return its enriched form.

        ``storage_ref`` names the uploaded file behind a voice payload. Only
        the server sets it; a client-supplied value in ``payload`` is dropped.

        Raises:
            MessagingError: The first failing check, before anything is stored.
        """
        if receiver_id is None:
            raise ValidationFailed("Receiver is required", code="receiver_required")
        if receiver_id == sender_id:
            raise ValidationFailed("You cannot message yourself", code="cannot_message_self")

        parsed = self._parse_payload(payload)
        if isinstance(parsed, VoicePayload) and storage_ref is not None:
            parsed = parsed.model_copy(update={"storage_ref": storage_ref})

        receiver = self.directory.require(receiver_id)
        if parsed.kind in ENCRYPTED_KINDS and not receiver.e2ee_enabled:
            raise RecipientNotE2EEReady()
        if self.directory.has_blocked(receiver_id, sender_id):
            raise BlockedByRecipient()
        if self.directory.has_blocked(sender_id, receiver_id):
            raise RecipientBlocked()

        sender = self.directory.require(sender_id)
        if parsed.kind in ENCRYPTED_KINDS and parsed.sender_public_key is None:
            parsed = parsed.model_copy(update={"sender_public_key": sender.public_key})

        message = self.store.create(sender_id, receiver_id, parsed)
        enriched = serialize_message(message)

        if transport is Transport.REALTIME:
            await self.hub.emit(room_for(receiver_id), "new_message", enriched)
            await self.hub.emit(room_for(sender_id), "new_message", enriched)
        else:
            self.tasks.spawn(
                self.hub.emit(room_for(receiver_id), "new_message", enriched),
                name="notify-new-message",
            )

        if receiver.push_token:
            self.push.dispatch(
                receiver.push_token,
                PushNotification(
                    title=sender.username or "Someone",
                    body=push_body(parsed),
                    data={"type": "message", "senderId": sender_id, "messageId": message.id},
                ),
            )
        return enriched

    async def mark_read(
        self,
        reader_id: int,
        other_user_id: int | None,
        transport: Transport,
    ) -> list[int]:
        """Mark messages from ``other_user_id`` as read by ``reader_id``."""
        if other_user_id is None or other_user_id == reader_id:
            return []
        message_ids = self.store.mark_read(other_user_id, reader_id)
        if message_ids:
            await self._notify(
                transport,
                [other_user_id],
                "messages_read",
                {"message_ids": message_ids, "read_by": reader_id},
            )
        return message_ids

    async def delete_message(
        self,
        user_id: int,
        message_id: int | None,
        transport: Transport,
    ) -> dict[str, Any]:
        if message_id is None:
            raise ValidationFailed("Message id is required", code="message_id_required")
        message = self.store.get_owned(message_id, user_id)
        if message is None:
            raise NotMessageOwner()
        receiver_id = message.receiver_id
        self.store.delete(message)
        await self._notify(
            transport,
            [receiver_id, user_id],
            "message_deleted",
            {"message_id": message_id},
        )
        return {"message_id": message_id}

    async def clear_conversation(
        self,
        user_id: int,
        other_user_id: int | None,
        transport: Transport,
    ) -> int:
        """Delete every message between two users and tell both sides."""
        if other_user_id is None or other_user_id == user_id:
            raise ValidationFailed("Invalid user", code="invalid_user")
        deleted = self.store.delete_conversation(user_id, other_user_id)
        await self._notify(
            transport,
            [other_user_id, user_id],
            "conversation_cleared",
            {"cleared_by": user_id},
        )
        return deleted

    async def relay_typing(self, user_id: int, receiver_id: int | None, started: bool) -> None:
        if receiver_id is None or receiver_id == user_id:
            return
        event = "typing_start" if started else "typing_stop"
        await self.hub.emit(room_for(receiver_id), event, {"user_id": user_id})

    def _parse_payload(self, payload: dict[str, Any] | None) -> MessagePayload:
        if not payload:
            raise ValidationFailed("Message payload is required", code="invalid_payload")
        payload = {key: value for key, value in payload.items() if key != "storage_ref"}
        try:
            parsed = payload_adapter.validate_python(payload)
        except ValidationError as err:
            first = err.errors()[0]
            raise ValidationFailed(
                f"Invalid message payload: {first.get('msg', 'validation error')}",
                code="invalid_payload",
            ) from err
        if isinstance(parsed, TextPayload) and not settings.plaintext_messages_allowed:
            raise PlaintextNotAllowed()
        return parsed

    async def _notify(
        self,
        transport: Transport,
        user_ids: list[int],
        event: str,
        data: dict[str, Any],
    ) -> None:
        for user_id in user_ids:
            coro = self.hub.emit(room_for(user_id), event, data)
            if transport is Transport.REALTIME:
                await coro
            else:
                self.tasks.spawn(coro, name=f"notify-{event}")
