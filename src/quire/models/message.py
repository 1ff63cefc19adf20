"""Models describing direct messages between users."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quire.db.session import Base
from quire.db.time import utcnow
from quire.models.user import User
from quire.schemas.message import (
    ENCRYPTED_KINDS,
    MESSAGE_KINDS,
    EncryptedPayload,
    EncryptedVoicePayload,
    MessagePayload,
    TextPayload,
    VoicePayload,
)


class Message(Base):
    """A single message between two users.

    ``kind`` is the payload discriminant; only the columns belonging to that
    kind are populated. Apart from ``read`` a message is never mutated after
    creation.
    """

    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint(
            "kind IN ({})".format(", ".join(f"'{kind}'" for kind in MESSAGE_KINDS)),
            name="ck_messages_kind",
        ),
        Index("ix_messages_pair_created", "sender_id", "receiver_id", "created_at"),
        Index("ix_messages_reverse_pair_created", "receiver_id", "sender_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    receiver_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)

    voice_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    voice_duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    voice_storage_ref: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Opaque to the server; moved, never inspected.
    ciphertext: Mapped[str | None] = mapped_column(Text, nullable=True)
    nonce: Mapped[str | None] = mapped_column(Text, nullable=True)
    sender_public_key: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_encrypted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    sender: Mapped[User] = relationship(User, foreign_keys=[sender_id], lazy="joined")
    receiver: Mapped[User] = relationship(User, foreign_keys=[receiver_id], lazy="joined")

    @classmethod
    def from_payload(
        cls,
        sender_id: int,
        receiver_id: int,
        payload: MessagePayload,
        created_at: datetime | None = None,
    ) -> Message:
        """Build a message whose columns reflect exactly one payload variant."""
        message = cls(
            sender_id=sender_id,
            receiver_id=receiver_id,
            kind=payload.kind,
            is_encrypted=payload.kind in ENCRYPTED_KINDS,
            read=False,
            created_at=created_at or utcnow(),
        )
        if isinstance(payload, TextPayload):
            message.text = payload.text
        elif isinstance(payload, VoicePayload):
            message.voice_url = payload.url
            message.voice_duration = payload.duration
            message.voice_storage_ref = payload.storage_ref
        elif isinstance(payload, EncryptedPayload):
            message.ciphertext = payload.ciphertext
            message.nonce = payload.nonce
            message.sender_public_key = payload.sender_public_key
        elif isinstance(payload, EncryptedVoicePayload):
            message.ciphertext = payload.ciphertext
            message.nonce = payload.nonce
            message.sender_public_key = payload.sender_public_key
            message.voice_duration = payload.duration
        else:  # pragma: no cover - union is closed
            raise TypeError(f"Unsupported payload type: {type(payload).__name__}")
        return message

    def to_payload(self) -> MessagePayload:
        """Rebuild the payload variant stored in this row."""
        if self.kind == "text":
            return TextPayload(text=self.text or "")
        if self.kind == "voice":
            return VoicePayload(
                url=self.voice_url or "",
                duration=self.voice_duration or 0.0,
                storage_ref=self.voice_storage_ref,
            )
        if self.kind == "encrypted":
            return EncryptedPayload(
                ciphertext=self.ciphertext or "",
                nonce=self.nonce or "",
                sender_public_key=self.sender_public_key,
            )
        if self.kind == "encrypted_voice":
            return EncryptedVoicePayload(
                ciphertext=self.ciphertext or "",
                nonce=self.nonce or "",
                sender_public_key=self.sender_public_key,
                duration=self.voice_duration or 0.0,
            )
        raise ValueError(f"Unknown message kind: {self.kind}")

    @property
    def preview(self) -> str:
        """Label shown in conversation lists; never exposes ciphertext."""
        if self.kind == "text":
            return self.text or ""
        if self.kind == "voice":
            return "Voice message"
        if self.kind == "encrypted":
            return "Encrypted message"
        return "Encrypted voice message"
