"""External media storage for voice attachments.

Talks to an ImageKit-compatible HTTP API: multipart upload, single delete and
bulk delete by file id. Storage cleanup is always best effort for callers; the
client itself raises :class:`MediaStorageError` so they can decide.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from quire.core.settings import settings

logger = logging.getLogger(__name__)

# Content types accepted for voice uploads.
VOICE_CONTENT_TYPES = frozenset(
    {
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/aac",
        "audio/ogg",
        "audio/m4a",
        "audio/webm",
        "audio/x-m4a",
        "audio/mp4",
    }
)


class MediaStorageError(RuntimeError):
    """Raised when the storage backend rejects or fails a request."""


class MediaStorageDisabledError(MediaStorageError):
    """Raised when uploads are attempted without storage credentials."""


@dataclass(frozen=True)
class MediaConfig:
    """Immutable configuration for media storage."""

    upload_url: str
    api_url: str
    private_key: str | None
    folder: str
    timeout_seconds: float


@dataclass(frozen=True)
class StoredMedia:
    """Location of an uploaded file."""

    url: str
    file_id: str


def load_media_config() -> MediaConfig:
    """Build configuration object from global settings."""
    return MediaConfig(
        upload_url=settings.media_upload_url,
        api_url=settings.media_api_url.rstrip("/"),
        private_key=settings.media_private_key,
        folder=settings.media_folder,
        timeout_seconds=float(settings.media_timeout_seconds),
    )


class MediaStorageClient:
    """HTTP client wrapper for the media storage backend."""

    def __init__(self, config: MediaConfig | None = None) -> None:
        self.config = config or load_media_config()
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.config.private_key)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self.enabled:
            raise MediaStorageDisabledError("Media storage is not configured")

        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    auth=httpx.BasicAuth(self.config.private_key or "", ""),
                )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def upload(self, content: bytes, filename: str, content_type: str) -> StoredMedia:
        """Upload ``content`` and return its public URL and storage reference."""
        client = await self._ensure_client()
        try:
            response = await client.post(
                self.config.upload_url,
                data={"fileName": filename, "folder": self.config.folder},
                files={"file": (filename, content, content_type)},
            )
        except httpx.HTTPError as exc:
            raise MediaStorageError(f"Media upload failed: {exc}") from exc

        if response.is_error:
            raise MediaStorageError(f"Media upload rejected with {response.status_code}")

        body = response.json()
        url = body.get("url")
        file_id = body.get("fileId")
        if not url or not file_id:
            raise MediaStorageError("Media upload response missing url or fileId")
        return StoredMedia(url=url, file_id=file_id)

    async def delete(self, file_id: str) -> None:
        """Remove a single stored file."""
        if not self.enabled:
            logger.debug("Media storage disabled; skipping delete of %s", file_id)
            return
        client = await self._ensure_client()
        try:
            response = await client.delete(f"{self.config.api_url}/files/{file_id}")
        except httpx.HTTPError as exc:
            raise MediaStorageError(f"Media delete failed: {exc}") from exc
        if response.is_error and response.status_code != httpx.codes.NOT_FOUND:
            raise MediaStorageError(f"Media delete rejected with {response.status_code}")

    async def delete_many(self, file_ids: Sequence[str]) -> None:
        """Remove several stored files with one bulk request."""
        ids = [file_id for file_id in file_ids if file_id]
        if not ids:
            return
        if not self.enabled:
            logger.debug("Media storage disabled; skipping bulk delete of %d files", len(ids))
            return
        client = await self._ensure_client()
        try:
            response = await client.post(
                f"{self.config.api_url}/files/batch/deleteByFileIds",
                json={"fileIds": ids},
            )
        except httpx.HTTPError as exc:
            raise MediaStorageError(f"Media bulk delete failed: {exc}") from exc
        if response.is_error:
            raise MediaStorageError(f"Media bulk delete rejected with {response.status_code}")
