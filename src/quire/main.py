# src/quire/main.py
"""Main entry point for the Quire messaging service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from quire.api.v1 import messages_router, realtime_router, users_router
from quire.core.settings import settings
from quire.realtime.gateway import ConnectionGateway
from quire.realtime.rooms import RoomHub
from quire.services.background import BackgroundTaskSet
from quire.services.media import MediaStorageClient
from quire.services.presence import build_presence_store
from quire.services.push import PushDispatcher

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Quire API",
    description="Real-time direct messaging with presence and push",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(messages_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(realtime_router)


@app.on_event("startup")
async def on_startup() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    tasks = BackgroundTaskSet()
    media = MediaStorageClient()
    push = PushDispatcher(tasks)
    app.state.tasks = tasks
    app.state.media = media
    app.state.push = push
    app.state.gateway = ConnectionGateway(
        presence=build_presence_store(settings),
        hub=RoomHub(),
        push=push,
        tasks=tasks,
        media=media,
    )
    if not settings.secret_key:
        logger.warning("SECRET_KEY is not set; every authenticated request will fail")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    tasks: BackgroundTaskSet | None = getattr(app.state, "tasks", None)
    if tasks is not None:
        await tasks.drain(timeout=5.0)
    push: PushDispatcher | None = getattr(app.state, "push", None)
    if push is not None:
        await push.close()
    media: MediaStorageClient | None = getattr(app.state, "media", None)
    if media is not None:
        await media.close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Real-time direct messaging with presence and push",
        "docs": "/docs",
        "websocket": "/ws",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("quire.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
