"""Websocket endpoint for the realtime hub."""

from fastapi import APIRouter, Query, WebSocket

from sgmi.core.config import settings
from sgmi.realtime.gateway import RealtimeGateway

router = APIRouter()


@router.websocket(settings.WS_PATH)
async def realtime_endpoint(websocket: WebSocket, token: str | None = Query(None)) -> None:
    """Authenticated realtime channel; the JWT travels in ``?token=``."""
    gateway: RealtimeGateway = websocket.app.state.realtime_gateway
    await gateway.serve(websocket, token)
