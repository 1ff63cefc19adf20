"""Persistence and query operations for direct messages."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import and_, case, desc, func, or_, select
from sqlalchemy.orm import Session

from quire.core.settings import settings
from quire.db.time import as_utc
from quire.models import Message, User
from quire.schemas.message import (
    ConversationSummary,
    MessageOut,
    MessagePayload,
    MessagePreview,
    UserBrief,
)
from quire.services.background import BackgroundTaskSet
from quire.services.media import MediaStorageClient, MediaStorageError

logger = logging.getLogger(__name__)


def parse_cursor(value: str | None) -> datetime | None:
    """Parse a ``before`` cursor.

    A value that fails to parse is treated as "no cursor" so the caller gets the
    newest page instead of an error. Naive timestamps are read as UTC.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    return as_utc(parsed)


def clamp_page_size(limit: int | None) -> int:
    """Bound a requested page size to ``[1, MESSAGE_MAX_PAGE_SIZE]``."""
    if limit is None or limit <= 0:
        limit = settings.message_page_size
    return max(1, min(limit, settings.message_max_page_size))


def serialize_message(message: Message) -> dict[str, Any]:
    """Return the enriched, JSON-ready form of a message."""
    return MessageOut(
        id=message.id,
        sender=UserBrief.model_validate(message.sender),
        receiver=UserBrief.model_validate(message.receiver),
        kind=message.kind,
        payload=message.to_payload(),
        is_encrypted=message.is_encrypted,
        read=message.read,
        created_at=message.created_at,
    ).model_dump(mode="json")


def _pair_filter(user_a: int, user_b: int):
    return or_(
        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
        and_(Message.sender_id == user_b, Message.receiver_id == user_a),
    )


class MessageStore:
    """Message persistence with indexed retrieval by conversation pair and time."""

    def __init__(
        self,
        db: Session,
        media: MediaStorageClient | None = None,
        tasks: BackgroundTaskSet | None = None,
    ) -> None:
        self.db = db
        self._media = media
        self._tasks = tasks

    def create(
        self,
        sender_id: int,
        receiver_id: int,
        payload: MessagePayload,
        created_at: datetime | None = None,
    ) -> Message:
        """Persist a validated payload and return the stored record."""
        message = Message.from_payload(sender_id, receiver_id, payload, created_at=created_at)
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def get(self, message_id: int) -> Message | None:
        return self.db.get(Message, message_id)

    def get_owned(self, message_id: int, owner_id: int) -> Message | None:
        """Return the message only if ``owner_id`` sent it."""
        return (
            self.db.query(Message)
            .filter(Message.id == message_id, Message.sender_id == owner_id)
            .first()
        )

    def find_conversation(
        self,
        user_a: int,
        user_b: int,
        before: datetime | None = None,
        limit: int | None = None,
    ) -> tuple[list[Message], bool]:
        """Return one page of history between two users in chronological order.

        Returns:
            ``(messages, has_more)`` where ``has_more`` is True when older
            messages exist beyond this page.
        """
        page_size = clamp_page_size(limit)
        query = self.db.query(Message).filter(_pair_filter(user_a, user_b))
        if before is not None:
            query = query.filter(Message.created_at < before.astimezone(UTC))

        rows = (
            query.order_by(desc(Message.created_at), desc(Message.id))
            .limit(page_size + 1)
            .all()
        )
        has_more = len(rows) > page_size
        page = rows[:page_size]
        page.reverse()
        return page, has_more

    def list_conversations(self, user_id: int) -> list[ConversationSummary]:
        """Group messages touching ``user_id`` by counterpart.

        Each entry holds the counterpart's display fields, the latest message
        between the pair and the number of unread messages addressed to
        ``user_id``. Sorted by latest message, newest first.
        """
        counterpart = case(
            (Message.sender_id == user_id, Message.receiver_id),
            else_=Message.sender_id,
        )
        ranked = (
            select(
                Message.id.label("message_id"),
                counterpart.label("counterpart_id"),
                func.row_number()
                .over(
                    partition_by=counterpart,
                    order_by=(desc(Message.created_at), desc(Message.id)),
                )
                .label("row_rank"),
            )
            .where(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
            .subquery()
        )
        latest: list[Message] = (
            self.db.query(Message)
            .join(ranked, Message.id == ranked.c.message_id)
            .filter(ranked.c.row_rank == 1)
            .all()
        )
        if not latest:
            return []

        unread_rows = (
            self.db.query(Message.sender_id, func.count(Message.id))
            .filter(Message.receiver_id == user_id, Message.read.is_(False))
            .group_by(Message.sender_id)
            .all()
        )
        unread = {sender_id: int(count) for sender_id, count in unread_rows}

        summaries: list[ConversationSummary] = []
        for message in latest:
            other: User = message.receiver if message.sender_id == user_id else message.sender
            summaries.append(
                ConversationSummary(
                    user=UserBrief.model_validate(other),
                    last_message=MessagePreview(
                        id=message.id,
                        kind=message.kind,
                        preview=message.preview,
                        sender_id=message.sender_id,
                        is_encrypted=message.is_encrypted,
                        read=message.read,
                        created_at=message.created_at,
                    ),
                    unread_count=unread.get(other.id, 0),
                )
            )
        summaries.sort(key=lambda item: as_utc(item.last_message.created_at), reverse=True)
        return summaries

    def mark_read(self, sender_id: int, receiver_id: int) -> list[int]:
        """Flip unread messages from ``sender_id`` to ``receiver_id``.

        Returns:
            Identifiers of the messages that changed; empty on a repeat call.
        """
        ids = [
            message_id
            for (message_id,) in self.db.query(Message.id)
            .filter(
                Message.sender_id == sender_id,
                Message.receiver_id == receiver_id,
                Message.read.is_(False),
            )
            .order_by(Message.created_at, Message.id)
            .all()
        ]
        if not ids:
            return []
        (
            self.db.query(Message)
            .filter(Message.id.in_(ids), Message.read.is_(False))
            .update({Message.read: True}, synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()
        return ids

    def delete(self, message: Message) -> None:
        """Delete one message and schedule cleanup of its voice attachment."""
        storage_ref = message.voice_storage_ref
        self.db.delete(message)
        self.db.commit()
        if storage_ref:
            self._schedule_cleanup([storage_ref])

    def delete_conversation(self, user_a: int, user_b: int) -> int:
        """Delete every message between two users.

        Storage references are collected first so one bulk cleanup call covers
        them all; a cleanup failure never keeps the rows alive.
        """
        storage_refs = [
            ref
            for (ref,) in self.db.query(Message.voice_storage_ref)
            .filter(_pair_filter(user_a, user_b), Message.voice_storage_ref.isnot(None))
            .all()
        ]
        deleted = (
            self.db.query(Message)
            .filter(_pair_filter(user_a, user_b))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()
        if storage_refs:
            self._schedule_cleanup(storage_refs)
        return int(deleted or 0)

    def _schedule_cleanup(self, storage_refs: list[str]) -> None:
        if self._media is None or self._tasks is None:
            logger.debug("No media client; leaving %d attachments in storage", len(storage_refs))
            return
        self._tasks.spawn(
            _cleanup_attachments(self._media, storage_refs),
            name="media-cleanup",
        )


async def _cleanup_attachments(media: MediaStorageClient, storage_refs: list[str]) -> None:
    try:
        if len(storage_refs) == 1:
            await media.delete(storage_refs[0])
        else:
            await media.delete_many(storage_refs)
    except MediaStorageError as exc:
        logger.warning("Failed to clean up %d voice attachments: %s", len(storage_refs), exc)
