"""SQLAlchemy models for the user directory consumed by the messaging core."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from quire.db.session import Base
from quire.db.time import utcnow


class User(Base):
    """Directory entry for a person who can send and receive messages."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    profile_img: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Single-valued; the most recent registration wins.
    push_token: Mapped[str] = mapped_column(Text, nullable=False, default="")

    public_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    e2ee_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class UserBlock(Base):
    """Directed block: ``blocker_id`` refuses messages from ``blocked_id``."""

    __tablename__ = "user_blocks"

    blocker_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    blocked_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
