"""Web API — WebSocket real-time montage updates."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import TypeAdapter

from app.domain.dispatcher import dispatch
from app.infra.auth import decode_access_token
from app.infra.db import async_session_factory
from app.infra.ws_manager import ws_manager
from app.models.event import CommandPayload, MontageCommand

logger = logging.getLogger("montage-core.web")

router = APIRouter(prefix="/api/web", tags=["web"])

_payload_adapter: TypeAdapter = TypeAdapter(CommandPayload)


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "message": "Web API active."}


@router.websocket("/ws/{world_id}")
async def websocket_world(websocket: WebSocket, world_id: str) -> None:
    """WebSocket endpoint for real-time montage updates.

    Connect with: ws://host/api/web/ws/{world_id}?token=<jwt_token>

    On connect: authenticates via query param token, joins the world room.
    Receives: ``{"payload": {...}}`` command messages (same format as
    POST /api/montage/worlds/{world_id}/commands).
    Sends: the EngineResult of each of this client's commands, plus every
    state snapshot broadcast to the world.
    """
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4001, reason="Missing token")
        return

    try:
        token_data = decode_access_token(token)
    except Exception:
        await websocket.close(code=4001, reason="Invalid token")
        return

    user_id = token_data.user_id
    await ws_manager.connect(world_id, user_id, websocket)

    try:
        while True:
            data = await websocket.receive_json()
            try:
                command = MontageCommand(
                    world_id=world_id,
                    user_id=user_id,
                    payload=_payload_adapter.validate_python(data.get("payload", {})),
                )
                async with async_session_factory() as db:
                    try:
                        result = await dispatch(db, command)
                        await db.commit()
                    except Exception:
                        await db.rollback()
                        raise
                await websocket.send_text(result.model_dump_json())
            except Exception as exc:
                logger.warning("world=%s bad message from %s: %s", world_id, user_id, exc)
                await websocket.send_json({"success": False, "error": str(exc)})
    except WebSocketDisconnect:
        ws_manager.disconnect(world_id, user_id)
