"""User directory helpers consumed by the messaging core."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Sequence

from sqlalchemy import exists
from sqlalchemy.orm import Session

from quire.core.security import validate_public_key
from quire.db.time import utcnow
from quire.models.user import User, UserBlock
from quire.services.errors import NotFound, ValidationFailed

__all__ = ["UserDirectory"]


class UserDirectory:
    """Reads and updates block lists, keys, push tokens and last-seen stamps."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, user_id: int) -> User | None:
        """Return a single user by primary key."""
        return self.db.get(User, user_id)

    def require(self, user_id: int) -> User:
        user = self.get(user_id)
        if user is None:
            raise NotFound("User not found", code="user_not_found")
        return user

    def exists(self, user_id: int) -> bool:
        return bool(self.db.query(exists().where(User.id == user_id)).scalar())

    def public_key(self, user_id: int) -> str | None:
        """Return the user's box public key, raising if the user is unknown."""
        return self.require(user_id).public_key

    def has_blocked(self, blocker_id: int, blocked_id: int) -> bool:
        """Return True if ``blocker_id`` has blocked ``blocked_id``."""
        return bool(
            self.db.query(
                exists().where(
                    UserBlock.blocker_id == blocker_id,
                    UserBlock.blocked_id == blocked_id,
                )
            ).scalar()
        )

    def block(self, blocker_id: int, blocked_id: int) -> None:
        if blocker_id == blocked_id:
            raise ValidationFailed("You cannot block yourself", code="cannot_block_self")
        self.require(blocked_id)
        if self.has_blocked(blocker_id, blocked_id):
            raise ValidationFailed("User is already blocked", code="already_blocked")
        self.db.add(UserBlock(blocker_id=blocker_id, blocked_id=blocked_id))
        self.db.commit()

    def unblock(self, blocker_id: int, blocked_id: int) -> None:
        deleted = (
            self.db.query(UserBlock)
            .filter(UserBlock.blocker_id == blocker_id, UserBlock.blocked_id == blocked_id)
            .delete(synchronize_session=False)
        )
        if not deleted:
            raise ValidationFailed("User is not blocked", code="not_blocked")
        self.db.commit()

    def blocked_users(self, user_id: int) -> Sequence[User]:
        return (
            self.db.query(User)
            .join(UserBlock, UserBlock.blocked_id == User.id)
            .filter(UserBlock.blocker_id == user_id)
            .order_by(User.username)
            .all()
        )

    def set_push_token(self, user_id: int, token: str) -> None:
        """Store ``token`` as the user's only push target."""
        user = self.require(user_id)
        user.push_token = token.strip()
        self.db.commit()

    def set_public_key(self, user_id: int, public_key: str) -> User:
        """Validate and store a box public key, enabling E2EE for the user."""
        user = self.require(user_id)
        try:
            cleaned = validate_public_key(public_key)
        except ValueError as err:
            raise ValidationFailed(str(err), code="invalid_public_key") from err
        user.public_key = cleaned
        user.e2ee_enabled = True
        self.db.commit()
        self.db.refresh(user)
        return user

    def touch_last_seen(self, user_id: int, when: datetime | None = None) -> None:
        user = self.get(user_id)
        if user is None:
            return
        user.last_seen = when or utcnow()
        self.db.commit()

    def last_seen_map(self, ids: Iterable[object]) -> dict[str, datetime]:
        """Return last-seen stamps for known users, falling back to sign-up time."""
        numeric: list[int] = []
        for raw in ids:
            try:
                numeric.append(int(str(raw)))
            except ValueError:
                continue
        if not numeric:
            return {}
        rows = (
            self.db.query(User.id, User.last_seen, User.created_at)
            .filter(User.id.in_(numeric))
            .all()
        )
        return {
            str(user_id): (last_seen or created_at)
            for user_id, last_seen, created_at in rows
        }
