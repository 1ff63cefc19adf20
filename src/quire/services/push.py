"""Best-effort mobile push delivery through the Expo push API.

Delivery never blocks or fails the action that triggered it: malformed tokens
are skipped, per-token failures are logged, and :meth:`PushDispatcher.dispatch`
returns before any request is made.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import httpx

from quire.core.settings import settings
from quire.services.background import BackgroundTaskSet

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[[^\[\]]+\]$")


@dataclass(frozen=True)
class PushNotification:
    """Notification content shared by every target token."""

    title: str | None
    body: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PushConfig:
    """Immutable configuration for push delivery."""

    api_url: str
    access_token: str | None
    timeout_seconds: float


def load_push_config() -> PushConfig:
    """Build configuration object from global settings."""
    return PushConfig(
        api_url=settings.push_api_url,
        access_token=settings.push_access_token,
        timeout_seconds=float(settings.push_timeout_seconds),
    )


def is_valid_push_token(token: object) -> bool:
    """Return True if ``token`` looks like an Expo push token."""
    return isinstance(token, str) and bool(_TOKEN_PATTERN.match(token.strip()))


class PushDispatcher:
    """Sends one push request per valid token, in parallel."""

    def __init__(
        self,
        tasks: BackgroundTaskSet,
        config: PushConfig | None = None,
    ) -> None:
        self.config = config or load_push_config()
        self._tasks = tasks
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                headers = {"Content-Type": "application/json", "Accept": "application/json"}
                if self.config.access_token:
                    headers["Authorization"] = f"Bearer {self.config.access_token}"
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    headers=headers,
                )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def dispatch(self, tokens: str | Iterable[str] | None, notification: PushNotification) -> None:
        """Schedule :meth:`send_push` in the background and return immediately."""
        targets = _normalize_tokens(tokens)
        if not targets:
            return
        self._tasks.spawn(self.send_push(targets, notification), name="push-dispatch")

    async def send_push(
        self,
        tokens: str | Iterable[str] | None,
        notification: PushNotification,
    ) -> None:
        """Deliver ``notification`` to every valid token. Never raises."""
        valid: list[str] = []
        for token in _normalize_tokens(tokens):
            if is_valid_push_token(token):
                valid.append(token.strip())
            else:
                logger.debug("Skipping malformed push token %r", token)
        if not valid:
            return

        try:
            client = await self._ensure_client()
        except Exception as exc:  # pragma: no cover - client construction failure
            logger.warning("Push client unavailable: %s", exc)
            return

        results = await asyncio.gather(
            *(self._send_one(client, token, notification) for token in valid),
            return_exceptions=True,
        )
        for token, result in zip(valid, results):
            if isinstance(result, BaseException):
                logger.warning("Push to %s raised: %s", _mask(token), result)

    async def _send_one(
        self,
        client: httpx.AsyncClient,
        token: str,
        notification: PushNotification,
    ) -> None:
        body = {
            "to": token,
            "title": notification.title or "Notification",
            "body": notification.body or "",
            "data": dict(notification.data),
            "sound": "default",
            "channelId": "default",
        }
        try:
            response = await client.post(self.config.api_url, json=body)
        except httpx.HTTPError as exc:
            logger.warning("Push request to %s failed: %s", _mask(token), exc)
            return
        if response.is_error:
            logger.warning(
                "Push to %s rejected with %s: %s",
                _mask(token),
                response.status_code,
                response.text[:200],
            )


def _normalize_tokens(tokens: str | Iterable[str] | None) -> list[str]:
    if not tokens:
        return []
    if isinstance(tokens, str):
        return [tokens]
    return [token for token in tokens if token]


def _mask(token: str) -> str:
    return f"{token[:22]}…" if len(token) > 22 else token
