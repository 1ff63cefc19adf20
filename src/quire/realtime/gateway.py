# src/quire/realtime/gateway.py
"""WebSocket connection gateway.

Authenticates a socket, joins it to its user's room, keeps presence and the
last-seen stamp current, and dispatches inbound event frames to the delivery
protocol. The gateway owns the presence store; it is built once at startup.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from quire.core.security import CredentialsError, decode_access_token
from quire.core.settings import settings
from quire.realtime.rooms import RoomHub, room_for
from quire.schemas.message import SendMessageRequest
from quire.schemas.realtime import (
    AckFrame,
    DeleteMessageRequest,
    InboundFrame,
    MarkReadRequest,
    TypingRequest,
)
from quire.services.background import BackgroundTaskSet
from quire.services.delivery import MessageDeliveryService, Transport
from quire.services.directory import UserDirectory
from quire.services.errors import MessagingError, ValidationFailed
from quire.services.media import MediaStorageClient
from quire.services.presence import PresenceStore
from quire.services.push import PushDispatcher

logger = logging.getLogger(__name__)

# Application-defined close code for rejected credentials.
WS_CLOSE_UNAUTHORIZED = 4401


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    JOINED = "joined"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class ClientConnection:
    """Server-side state of one authenticated socket."""

    websocket: WebSocket
    user_id: int | None = None
    state: ConnectionState = ConnectionState.CONNECTING
    heartbeat: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def room(self) -> str:
        return room_for(self.user_id)


Handler = Callable[[ClientConnection, MessageDeliveryService, dict[str, Any]], Awaitable[dict[str, Any]]]


def extract_token(websocket: WebSocket) -> str | None:
    """Return the credential from the query string, bearer header or cookie."""
    token = websocket.query_params.get("token")
    if token:
        return token
    authorization = websocket.headers.get("authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return websocket.cookies.get(settings.auth_cookie_name) or None


def _parse(model: type[BaseModel], data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as err:
        first = err.errors()[0]
        raise ValidationFailed(f"Invalid event data: {first.get('msg', 'validation error')}") from err


class ConnectionGateway:
    """Accepts realtime connections and routes their frames."""

    def __init__(
        self,
        presence: PresenceStore,
        hub: RoomHub,
        push: PushDispatcher,
        tasks: BackgroundTaskSet,
        media: MediaStorageClient | None = None,
        heartbeat_seconds: float | None = None,
    ) -> None:
        self.presence = presence
        self.hub = hub
        self.push = push
        self.tasks = tasks
        self.media = media
        self.heartbeat_seconds = (
            heartbeat_seconds
            if heartbeat_seconds is not None
            else float(settings.presence_heartbeat_seconds)
        )
        self._handlers: dict[str, Handler] = {
            "send_message": self._on_send_message,
            "typing_start": self._on_typing_start,
            "typing_stop": self._on_typing_stop,
            "mark_messages_read": self._on_mark_read,
            "delete_message": self._on_delete_message,
        }

    async def serve(self, websocket: WebSocket, db: Session) -> None:
        """Run one socket from handshake to disconnect."""
        conn = ClientConnection(websocket=websocket)
        directory = UserDirectory(db)

        conn.state = ConnectionState.AUTHENTICATING
        user_id = await self._authenticate(conn, directory)
        if user_id is None:
            return

        await websocket.accept()
        self._join(conn, user_id, directory)
        delivery = MessageDeliveryService(
            db, self.hub, self.push, self.tasks, media=self.media
        )
        conn.state = ConnectionState.ACTIVE
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    # binary frames carry no event envelope
                    self.tasks.spawn(
                        self._reply(
                            conn,
                            AckFrame.failure(None, "invalid_frame", "Frames must be JSON text"),
                        ),
                        name=f"ws-frame-{user_id}",
                    )
                    continue
                self.tasks.spawn(
                    self._handle_frame(conn, delivery, raw),
                    name=f"ws-frame-{user_id}",
                )
        except WebSocketDisconnect:
            pass
        finally:
            self.close(conn, directory)

    async def _authenticate(self, conn: ClientConnection, directory: UserDirectory) -> int | None:
        try:
            user_id = decode_access_token(extract_token(conn.websocket))
        except CredentialsError as err:
            code = (
                status.WS_1008_POLICY_VIOLATION
                if err.reason == "misconfigured"
                else WS_CLOSE_UNAUTHORIZED
            )
            logger.info("Rejecting socket: %s", err.reason)
            conn.state = ConnectionState.CLOSED
            await conn.websocket.close(code=code, reason=f"Unauthorized: {err.reason}")
            return None
        if not directory.exists(user_id):
            logger.info("Rejecting socket for unknown user %s", user_id)
            conn.state = ConnectionState.CLOSED
            await conn.websocket.close(code=WS_CLOSE_UNAUTHORIZED, reason="Unauthorized: invalid")
            return None
        return user_id

    def _join(self, conn: ClientConnection, user_id: int, directory: UserDirectory) -> None:
        conn.user_id = user_id
        self.hub.join(conn.room, conn.websocket)
        self.presence.add(user_id)
        directory.touch_last_seen(user_id)
        conn.heartbeat = asyncio.get_running_loop().create_task(
            self._heartbeat(user_id, directory), name=f"ws-heartbeat-{user_id}"
        )
        conn.state = ConnectionState.JOINED
        logger.info("User %s connected", user_id)

    async def _heartbeat(self, user_id: int, directory: UserDirectory) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_seconds)
            try:
                if not self.presence.has(user_id):
                    return
                directory.touch_last_seen(user_id)
            except Exception as exc:
                logger.warning(
                    "Heartbeat for user %s failed: %s", user_id, exc, exc_info=True
                )

    def close(self, conn: ClientConnection, directory: UserDirectory) -> None:
        """Release everything the connection holds. Safe to call twice."""
        if conn.state is ConnectionState.CLOSED:
            return
        conn.state = ConnectionState.CLOSED
        if conn.heartbeat is not None:
            conn.heartbeat.cancel()
            conn.heartbeat = None
        if conn.user_id is None:
            return
        remaining = self.hub.leave(conn.room, conn.websocket)
        if remaining == 0:
            self.presence.remove(conn.user_id)
        directory.touch_last_seen(conn.user_id)
        logger.info("User %s disconnected", conn.user_id)

    async def _handle_frame(
        self,
        conn: ClientConnection,
        delivery: MessageDeliveryService,
        raw: str,
    ) -> None:
        try:
            frame = InboundFrame.model_validate_json(raw)
        except ValidationError:
            await self._reply(conn, AckFrame.failure(None, "invalid_frame", "Malformed frame"))
            return

        handler = self._handlers.get(frame.event)
        if handler is None:
            await self._reply(
                conn,
                AckFrame.failure(frame.id, "unknown_event", f"Unknown event: {frame.event}"),
            )
            return

        try:
            result = await handler(conn, delivery, frame.data)
        except MessagingError as err:
            ack = AckFrame.failure(frame.id, err.code, err.message)
        except Exception:
            logger.error("Handler for %s failed", frame.event, exc_info=True)
            ack = AckFrame.failure(frame.id, "internal_error", "Internal server error")
        else:
            if frame.id is None:
                return
            ack = AckFrame.success(frame.id, result)
        await self._reply(conn, ack)

    async def _reply(self, conn: ClientConnection, ack: AckFrame) -> None:
        try:
            await conn.websocket.send_json(ack.model_dump(mode="json", exclude_none=True))
        except (RuntimeError, WebSocketDisconnect) as exc:
            logger.debug("Dropping ack for user %s: %s", conn.user_id, exc)

    async def _on_send_message(
        self, conn: ClientConnection, delivery: MessageDeliveryService, data: dict[str, Any]
    ) -> dict[str, Any]:
        request: SendMessageRequest = _parse(SendMessageRequest, data)
        message = await delivery.send(
            conn.user_id, request.receiver_id, request.payload, Transport.REALTIME
        )
        return {"message": message}

    async def _on_typing_start(
        self, conn: ClientConnection, delivery: MessageDeliveryService, data: dict[str, Any]
    ) -> dict[str, Any]:
        request: TypingRequest = _parse(TypingRequest, data)
        await delivery.relay_typing(conn.user_id, request.receiver_id, started=True)
        return {}

    async def _on_typing_stop(
        self, conn: ClientConnection, delivery: MessageDeliveryService, data: dict[str, Any]
    ) -> dict[str, Any]:
        request: TypingRequest = _parse(TypingRequest, data)
        await delivery.relay_typing(conn.user_id, request.receiver_id, started=False)
        return {}

    async def _on_mark_read(
        self, conn: ClientConnection, delivery: MessageDeliveryService, data: dict[str, Any]
    ) -> dict[str, Any]:
        request: MarkReadRequest = _parse(MarkReadRequest, data)
        message_ids = await delivery.mark_read(
            conn.user_id, request.other_user_id, Transport.REALTIME
        )
        return {"message_ids": message_ids}

    async def _on_delete_message(
        self, conn: ClientConnection, delivery: MessageDeliveryService, data: dict[str, Any]
    ) -> dict[str, Any]:
        request: DeleteMessageRequest = _parse(DeleteMessageRequest, data)
        return await delivery.delete_message(
            conn.user_id, request.message_id, Transport.REALTIME
        )
