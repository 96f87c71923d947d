import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .. import auth
from ..errors import AuthenticationError
from ..realtime import relay_payload

logger = logging.getLogger(__name__)

router = APIRouter()

WS_NO_TOKEN = 4401
WS_INVALID_TOKEN = 4403


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket, token: Optional[str] = None):
    if not token:
        await websocket.accept()
        await websocket.close(code=WS_NO_TOKEN, reason="Authentication required")
        return
    try:
        user_id = auth.decode_access_token(token)
    except AuthenticationError:
        await websocket.accept()
        await websocket.close(code=WS_INVALID_TOKEN, reason="Invalid token")
        return

    registry = websocket.app.state.connections
    await websocket.accept()
    await registry.register(user_id, websocket)
    logger.info("client connected: %s", user_id)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("client disconnected: %s", user_id)
                break
            # binary frames carry the same JSON as text ones
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await relay_payload(registry, user_id, raw)
    except WebSocketDisconnect:
        logger.info("client disconnected: %s", user_id)
    except Exception:
        logger.exception("websocket error for user %s", user_id)
    finally:
        await registry.unregister(user_id, websocket)
