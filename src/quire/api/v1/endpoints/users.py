# src/quire/api/v1/endpoints/users.py
"""User directory endpoints consumed by messaging clients."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from quire.api.v1.dependencies import (
    CurrentUserDep,
    DirectoryDep,
    PresenceDep,
    as_http_error,
)
from quire.db.time import as_utc
from quire.schemas.user import (
    BlockedListResponse,
    BlockedUser,
    BlockRequest,
    PublicKeyResponse,
    PublicKeyUpload,
    PushTokenRequest,
    StatusResponse,
)
from quire.services.errors import MessagingError

router = APIRouter(prefix="/users", tags=["users"])


def _split_ids(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


@router.get("/online-status")
async def online_status(
    current_user: CurrentUserDep,
    presence: PresenceDep,
    ids: Annotated[str | None, Query(description="Comma-separated user ids")] = None,
) -> dict[str, bool]:
    """Report which of the requested users hold a live connection."""
    return presence.get_status(_split_ids(ids))


@router.get("/last-seen")
async def last_seen(
    current_user: CurrentUserDep,
    directory: DirectoryDep,
    ids: Annotated[str | None, Query(description="Comma-separated user ids")] = None,
) -> dict[str, str]:
    """Return ISO-8601 last-seen stamps for known users."""
    stamps = directory.last_seen_map(_split_ids(ids))
    return {user_id: as_utc(stamp).isoformat() for user_id, stamp in stamps.items()}


@router.post("/push-token", response_model=StatusResponse)
async def register_push_token(
    body: PushTokenRequest,
    current_user: CurrentUserDep,
    directory: DirectoryDep,
) -> StatusResponse:
    directory.set_push_token(current_user.id, body.token)
    return StatusResponse(status="registered")


@router.post("/public-key", response_model=StatusResponse)
async def upload_public_key(
    body: PublicKeyUpload,
    current_user: CurrentUserDep,
    directory: DirectoryDep,
) -> StatusResponse:
    """Store the caller's box public key and enable E2EE for them."""
    try:
        directory.set_public_key(current_user.id, body.public_key)
    except MessagingError as err:
        raise as_http_error(err) from err
    return StatusResponse(status="stored")


@router.get("/blocked", response_model=BlockedListResponse)
async def list_blocked(
    current_user: CurrentUserDep,
    directory: DirectoryDep,
) -> BlockedListResponse:
    users = directory.blocked_users(current_user.id)
    return BlockedListResponse(
        blocked_users=[
            BlockedUser(id=user.id, username=user.username, profile_img=user.profile_img or "")
            for user in users
        ]
    )


@router.post("/block", response_model=StatusResponse)
async def block_user(
    body: BlockRequest,
    current_user: CurrentUserDep,
    directory: DirectoryDep,
) -> StatusResponse:
    try:
        directory.block(current_user.id, body.user_id)
    except MessagingError as err:
        raise as_http_error(err) from err
    return StatusResponse(status="blocked")


@router.post("/unblock", response_model=StatusResponse)
async def unblock_user(
    body: BlockRequest,
    current_user: CurrentUserDep,
    directory: DirectoryDep,
) -> StatusResponse:
    try:
        directory.unblock(current_user.id, body.user_id)
    except MessagingError as err:
        raise as_http_error(err) from err
    return StatusResponse(status="unblocked")


@router.get("/{user_id}/public-key", response_model=PublicKeyResponse)
async def get_public_key(
    user_id: int,
    current_user: CurrentUserDep,
    directory: DirectoryDep,
) -> PublicKeyResponse:
    """Fetch another user's public key for encrypting messages to them."""
    try:
        public_key = directory.public_key(user_id)
    except MessagingError as err:
        raise as_http_error(err) from err
    if not public_key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User has not set up E2EE yet",
        )
    return PublicKeyResponse(user_id=user_id, public_key=public_key)
