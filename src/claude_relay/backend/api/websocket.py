"""WebSocket API for the Claude relay"""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..enum import ServerMessageType
from ..runtime.relay import RelayConnection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws")
async def websocket_relay_endpoint(websocket: WebSocket):
    """
    Relay endpoint: one connection drives at most one session at a time.

    Client → Server:
    {"type": "input", "data": "your question", "deepThink": false,
     "image": {"name": "shot.png", "type": "image/png", "data": "<base64>"}}
    {"type": "resume_session", "sessionId": "cli-session-id"}
    {"type": "stop_generation"}
    {"type": "get_status"}
    {"type": "list_sessions"}
    {"type": "claude_md_read", "filePath": "/path/CLAUDE.md"}
    {"type": "claude_md_write", "filePath": "/path/CLAUDE.md", "content": "..."}

    Server → Client:
    {"type": "session-created", "sessionId": "cli-id", "internalSessionId": "uuid"}
    {"type": "session-resumed", "sessionId": "..."}
    {"type": "claude-response", "data": {...one stream-json record...}}
    {"type": "usage-update", "sessionId": "...", "usage": {...}, "total": {...}}
    {"type": "claude-error", "error": "..."}
    {"type": "claude-complete", "exitCode": 0, "sessionId": "..."}
    {"type": "generation_stopped", "message": "..."}
    {"type": "status", "mode": "claude", "sessionActive": true, "sessionId": null, "state": "idle"}
    {"type": "sessions_list", "sessions": [...], "currentSession": "..."}
    {"type": "chat-history-changed", "filePath": "...", "timestamp": 1700000000000}
    {"type": "claude_md_response", "data": {"action": "read", "success": true, "content": "..."}}

    Args:
        websocket: WebSocket connection
    """
    # 1. Get dependencies from app state
    state = websocket.app.state
    broker = state.connection_broker
    settings = state.settings

    # 2. Accept WebSocket connection
    await websocket.accept()
    connection_id = await broker.connect(websocket)

    # 3. Create the protocol handler; all frames go out through the broker
    relay = RelayConnection(
        registry=state.session_registry,
        runner=state.process_runner,
        workspace=state.workspace,
        send=lambda message: broker.push(connection_id, message),
        max_buffer_bytes=settings.relay.max_buffer_bytes,
    )
    relay.on_connect()

    try:
        # 4. Receive frames and hand them to the relay
        while True:
            try:
                text = await websocket.receive_text()
            except WebSocketDisconnect:
                logger.info(f"Connection {connection_id} disconnected normally")
                break

            try:
                message = json.loads(text)
            except ValueError:
                logger.warning(f"Invalid JSON from connection {connection_id}: {text[:200]}")
                broker.push(connection_id, {
                    "type": ServerMessageType.CLAUDE_ERROR.value,
                    "error": "Invalid JSON message",
                })
                continue

            await relay.handle_message(message)

    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        # 5. Cleanup: the session survives, only this connection goes away
        relay.on_disconnect()
        await broker.disconnect(connection_id)
        logger.info(f"WebSocket cleanup completed for connection {connection_id}")
