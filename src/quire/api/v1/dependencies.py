"""Shared API dependencies for authentication and service wiring."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from quire.core.security import CredentialsError, decode_access_token
from quire.core.settings import settings
from quire.db.session import get_db
from quire.models import User
from quire.realtime.gateway import ConnectionGateway
from quire.services.background import BackgroundTaskSet
from quire.services.delivery import MessageDeliveryService
from quire.services.directory import UserDirectory
from quire.services.errors import MessagingError
from quire.services.media import MediaStorageClient
from quire.services.message_store import MessageStore
from quire.services.presence import PresenceStore

# Bearer is optional because the cookie is checked first
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def _credentials_exception(err: CredentialsError) -> HTTPException:
    if err.reason == "misconfigured":
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfigured",
        )
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=f"Unauthorized: {err.reason}",
    )


def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from the token cookie or bearer header.

    Raises:
        HTTPException: 401 if the token is missing, invalid, expired or names
            an unknown user; 500 if no signing secret is configured.
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if not token and credentials is not None:
        token = credentials.credentials
    try:
        user_id = decode_access_token(token)
    except CredentialsError as err:
        raise _credentials_exception(err) from err

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: invalid",
        )
    return user


# Type alias for current user dependency
CurrentUserDep = Annotated[User, Depends(get_current_user)]


def get_gateway(request: Request) -> ConnectionGateway:
    return request.app.state.gateway


def get_presence(request: Request) -> PresenceStore:
    return get_gateway(request).presence


def get_media(request: Request) -> MediaStorageClient:
    return request.app.state.media


def get_tasks(request: Request) -> BackgroundTaskSet:
    return request.app.state.tasks


def get_delivery_service(request: Request, db: SessionDep) -> MessageDeliveryService:
    """Build a per-request delivery service over the shared hub and dispatcher."""
    gateway = get_gateway(request)
    return MessageDeliveryService(
        db,
        gateway.hub,
        gateway.push,
        gateway.tasks,
        media=request.app.state.media,
    )


def get_message_store(request: Request, db: SessionDep) -> MessageStore:
    return MessageStore(db, media=request.app.state.media, tasks=request.app.state.tasks)


def get_directory(db: SessionDep) -> UserDirectory:
    return UserDirectory(db)


GatewayDep = Annotated[ConnectionGateway, Depends(get_gateway)]
PresenceDep = Annotated[PresenceStore, Depends(get_presence)]
MediaDep = Annotated[MediaStorageClient, Depends(get_media)]
TasksDep = Annotated[BackgroundTaskSet, Depends(get_tasks)]
DeliveryDep = Annotated[MessageDeliveryService, Depends(get_delivery_service)]
MessageStoreDep = Annotated[MessageStore, Depends(get_message_store)]
DirectoryDep = Annotated[UserDirectory, Depends(get_directory)]


def as_http_error(err: MessagingError) -> HTTPException:
    """Map a messaging error to the HTTP response it produces."""
    return HTTPException(status_code=err.status_code, detail=err.as_detail())
