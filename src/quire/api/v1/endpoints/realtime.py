"""WebSocket endpoint for the realtime transport."""

from fastapi import APIRouter, WebSocket

from quire.api.v1.dependencies import SessionDep

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, db: SessionDep) -> None:
    """Authenticate, join the user's room and pump frames until disconnect."""
    await websocket.app.state.gateway.serve(websocket, db)
