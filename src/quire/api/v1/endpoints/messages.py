# src/quire/api/v1/endpoints/messages.py
"""Direct message endpoints: the HTTP fallback for the realtime transport."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status

from quire.api.v1.dependencies import (
    CurrentUserDep,
    DeliveryDep,
    MediaDep,
    MessageStoreDep,
    TasksDep,
    as_http_error,
)
from quire.core.settings import settings
from quire.schemas.message import (
    ConversationListResponse,
    MessageEnvelope,
    MessagePageResponse,
    SendMessageRequest,
)
from quire.services.delivery import Transport
from quire.services.errors import MessagingError
from quire.services.media import (
    VOICE_CONTENT_TYPES,
    MediaStorageDisabledError,
    MediaStorageError,
)
from quire.services.message_store import parse_cursor, serialize_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


def _parse_user_id(raw: str, detail: str) -> int:
    try:
        return int(raw)
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail) from err


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    current_user: CurrentUserDep,
    store: MessageStoreDep,
) -> ConversationListResponse:
    """List every counterpart with the latest message and unread count."""
    return ConversationListResponse(conversations=store.list_conversations(current_user.id))


@router.get("/{other_user_id}", response_model=MessagePageResponse)
async def get_conversation(
    other_user_id: str,
    current_user: CurrentUserDep,
    store: MessageStoreDep,
    delivery: DeliveryDep,
    limit: Annotated[int | None, Query()] = None,
    before: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    """Return one page of history and mark the counterpart's messages as read."""
    other_id = _parse_user_id(other_user_id, "Invalid other user")
    if other_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid other user")

    messages, has_more = store.find_conversation(
        current_user.id, other_id, before=parse_cursor(before), limit=limit
    )
    payload = {
        "messages": [serialize_message(message) for message in messages],
        "has_more": has_more,
    }
    await delivery.mark_read(current_user.id, other_id, Transport.HTTP)
    return payload


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=MessageEnvelope)
async def send_message(
    body: SendMessageRequest,
    current_user: CurrentUserDep,
    delivery: DeliveryDep,
) -> dict[str, Any]:
    """Send a message without a live connection."""
    try:
        message = await delivery.send(
            current_user.id, body.receiver_id, body.payload, Transport.HTTP
        )
    except MessagingError as err:
        raise as_http_error(err) from err
    return {"message": message}


@router.post("/voice", status_code=status.HTTP_201_CREATED, response_model=MessageEnvelope)
async def send_voice_message(
    current_user: CurrentUserDep,
    delivery: DeliveryDep,
    media: MediaDep,
    tasks: TasksDep,
    receiver_id: Annotated[int, Form()],
    voice: Annotated[UploadFile, File()],
    duration: Annotated[float, Form(ge=0)] = 0.0,
) -> dict[str, Any]:
    """Upload a voice note to media storage and send it as a voice message."""
    content_type = (voice.content_type or "").lower()
    if content_type not in VOICE_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only audio files are allowed",
        )
    too_large = HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail="Voice file is too large",
    )
    if voice.size is not None and voice.size > settings.voice_max_bytes:
        raise too_large
    content = await voice.read(settings.voice_max_bytes + 1)
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Voice file is empty")
    if len(content) > settings.voice_max_bytes:
        raise too_large

    try:
        stored = await media.upload(content, voice.filename or "voice", content_type)
    except MediaStorageDisabledError as err:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Media storage is not configured",
        ) from err
    except MediaStorageError as err:
        logger.warning("Voice upload failed for user %s: %s", current_user.id, err)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to upload voice message",
        ) from err

    payload = {
        "kind": "voice",
        "url": stored.url,
        "duration": duration,
    }
    try:
        message = await delivery.send(
            current_user.id,
            receiver_id,
            payload,
            Transport.HTTP,
            storage_ref=stored.file_id,
        )
    except MessagingError as err:
        tasks.spawn(media.delete(stored.file_id), name="media-cleanup")
        raise as_http_error(err) from err
    return {"message": message}


@router.delete("/conversation/{other_user_id}")
async def clear_conversation(
    other_user_id: str,
    current_user: CurrentUserDep,
    delivery: DeliveryDep,
) -> dict[str, Any]:
    """Delete every message between the caller and another user."""
    other_id = _parse_user_id(other_user_id, "Invalid other user ID")
    try:
        deleted = await delivery.clear_conversation(current_user.id, other_id, Transport.HTTP)
    except MessagingError as err:
        raise as_http_error(err) from err
    return {"status": "cleared", "deleted_count": deleted}


@router.delete("/{message_id}")
async def delete_message(
    message_id: int,
    current_user: CurrentUserDep,
    delivery: DeliveryDep,
) -> dict[str, str]:
    """Delete one message the caller sent."""
    try:
        await delivery.delete_message(current_user.id, message_id, Transport.HTTP)
    except MessagingError as err:
        raise as_http_error(err) from err
    return {"status": "deleted"}
