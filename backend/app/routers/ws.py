"""WebSocket endpoint for live rooms, presence, and message relay."""

import asyncio
import json
import logging
import uuid as uuid_mod

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from app.config import settings
from app.schemas.message import JoinRoomFrame, SendMessageFrame
from app.services.chat_errors import AuthFailure, ChatError
from app.services.chat_hub import chat_hub
from app.services.outbound import deliver

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])

WS_CLOSE_AUTH_FAILED = 4001
WS_CLOSE_TOO_MANY_CONNECTIONS = 4002


async def _resolve_ws_token(websocket: WebSocket, query_token: str | None) -> str | None:
    """Resolve token from query string or initial auth frame."""
    if query_token:
        return query_token

    try:
        raw = await asyncio.wait_for(
            websocket.receive_text(), timeout=settings.ws_auth_timeout_seconds
        )
    except (asyncio.TimeoutError, WebSocketDisconnect, RuntimeError):
        return None

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict) or payload.get("type") != "auth":
        return None
    token = payload.get("token")
    if not isinstance(token, str):
        return None
    stripped = token.strip()
    return stripped or None


def _frame_error(code: str, message: str) -> dict[str, str]:
    return {"type": "messageError", "code": code, "message": message}


async def _handle_frame(connection_id: str, data: dict) -> None:
    """Apply one client frame. Errors go back to this connection only."""
    hub = chat_hub
    frame_type = data.get("type")

    if frame_type == "auth":
        return

    if frame_type == "joinRoom":
        try:
            frame = JoinRoomFrame.model_validate(data)
        except ValidationError:
            deliver(hub.transport, [connection_id], _frame_error("invalid_room", "Invalid room name"))
            return
        hub.presence.on_join(connection_id, frame.room)
        return

    if frame_type == "sendMessage":
        try:
            frame = SendMessageFrame.model_validate(data)
        except ValidationError:
            deliver(
                hub.transport,
                [connection_id],
                _frame_error("invalid_message", "Invalid message format"),
            )
            return
        try:
            await hub.relay.send(connection_id, frame)
        except ChatError as exc:
            deliver(hub.transport, [connection_id], exc.to_event())
        return

    deliver(
        hub.transport,
        [connection_id],
        _frame_error("unknown_event", f"Unknown event type: {frame_type!r}"),
    )


@router.websocket("/ws/chat")
async def websocket_chat(
    websocket: WebSocket,
    token: str | None = Query(default=None),
):
    """Live connection: authenticate, then process room and message frames in order."""
    await websocket.accept()
    hub = chat_hub
    conn_id = uuid_mod.uuid4().hex

    resolved_token = await _resolve_ws_token(websocket, token)
    try:
        connection = await hub.gate.admit(resolved_token, conn_id)
    except AuthFailure as exc:
        logger.info("Rejected live connection %s: %s", conn_id, exc.code)
        await websocket.send_json(exc.to_event())
        await websocket.close(code=WS_CLOSE_AUTH_FAILED, reason="Authentication failed")
        return

    # Enforce concurrent connection limit.
    if not hub.registry.can_connect(connection.user_id):
        await websocket.send_json(
            {"type": "error", "code": "too_many_connections", "message": "Too many connections"}
        )
        await websocket.close(code=WS_CLOSE_TOO_MANY_CONNECTIONS, reason="Too many connections")
        return

    hub.transport.attach(conn_id, websocket.send_json)
    hub.presence.on_connect(connection)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                data = None
            if not isinstance(data, dict):
                deliver(hub.transport, [conn_id], _frame_error("invalid_format", "Invalid message format"))
                continue
            await _handle_frame(conn_id, data)
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected for user %s", connection.username)
    except Exception as exc:
        logger.error("WebSocket error for connection %s: %s", conn_id, exc)
        try:
            await websocket.close()
        except Exception:
            logger.debug("Socket %s already closed", conn_id)
    finally:
        hub.presence.on_leave(conn_id)
        hub.throttle.forget(conn_id)
        await hub.transport.detach(conn_id)
