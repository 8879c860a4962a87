import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

from app.core.auth import Principal
from app.core.config import Settings, get_settings
from app.core.security import resolve_token_principal
from app.services.channels import ChannelRegistry, get_channel_registry

router = APIRouter()
logger = logging.getLogger(__name__)

JOIN_EVENT = "join"
ROOM_JOINED_EVENT = "roomJoined"
ERROR_EVENT = "error"


@router.websocket("/ws")
async def realtime_channel(
    websocket: WebSocket,
    registry: ChannelRegistry = Depends(get_channel_registry),
    settings: Settings = Depends(get_settings),
    token: str | None = Query(default=None),
) -> None:
    principal: Principal | None = None
    if settings.realtime_require_auth:
        if not token:
            await websocket.close(code=4401, reason="realtime channel requires token")
            return
        try:
            principal = await resolve_token_principal(token, settings)
        except HTTPException as exc:
            await websocket.close(code=4401 if exc.status_code == 401 else 1011, reason=str(exc.detail))
            return

    await websocket.accept()
    connection = registry.connect(websocket)
    try:
        while True:
            received = await websocket.receive()
            if received["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(received.get("code", 1000), received.get("reason"))
            raw = received.get("text")
            if raw is None:
                await websocket.send_json({"event": ERROR_EVENT, "data": {"message": "frames must be text"}})
                continue
            try:
                message = json.loads(raw)
            except ValueError:
                await websocket.send_json({"event": ERROR_EVENT, "data": {"message": "frames must be JSON"}})
                continue
            event, data = _parse_frame(message)
            if event != JOIN_EVENT:
                await websocket.send_json({"event": ERROR_EVENT, "data": {"message": f"unsupported event: {event}"}})
                continue

            identity = data if isinstance(data, str) else None
            if not identity or not identity.strip():
                await websocket.send_json({"event": ERROR_EVENT, "data": {"message": "join requires a user id"}})
                continue
            identity = identity.strip()
            if principal is not None and identity != principal.subject:
                await websocket.send_json(
                    {"event": ERROR_EVENT, "data": {"message": "cannot join another user's room"}}
                )
                continue

            registry.join(connection, identity)
            await websocket.send_json(
                {
                    "event": ROOM_JOINED_EVENT,
                    "data": {"userId": identity, "message": "Successfully joined personal room"},
                }
            )
    except WebSocketDisconnect as exc:
        logger.info("realtime client disconnected id=%s code=%s", connection.id, exc.code)
    finally:
        registry.disconnect(connection)


def _parse_frame(message: Any) -> tuple[str | None, Any]:
    if not isinstance(message, dict):
        return None, None
    event = message.get("event")
    return (event if isinstance(event, str) else None), message.get("data")
