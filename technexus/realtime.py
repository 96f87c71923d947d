"""Live connection registry and relay for the chat channel.

Typing signals travel only through here and are never stored. Message
notifications are pushed here after the message has been persisted.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional, Union

from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


def _key(user_id) -> str:
    return str(user_id)


class ConnectionRegistry:
    """At most one live handle per user id.

    Handles only need an async ``send_json`` and a ``client_state``
    attribute, which is what a Starlette WebSocket offers.
    """

    def __init__(self):
        self._connections: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def register(self, user_id, handle) -> Optional[Any]:
        """Store ``handle`` for ``user_id``, returning the evicted handle if any."""
        async with self._lock:
            previous = self._connections.get(_key(user_id))
            self._connections[_key(user_id)] = handle
        if previous is not None and previous is not handle:
            logger.info("connection for user %s replaced", user_id)
        return previous

    async def unregister(self, user_id, handle) -> bool:
        async with self._lock:
            if self._connections.get(_key(user_id)) is not handle:
                return False
            del self._connections[_key(user_id)]
        return True

    def get(self, user_id):
        return self._connections.get(_key(user_id))

    def is_connected(self, user_id) -> bool:
        handle = self.get(user_id)
        return handle is not None and handle.client_state == WebSocketState.CONNECTED

    async def send_if_present(self, user_id, payload: dict) -> bool:
        """Best effort push; False when the user has no open connection."""
        if not self.is_connected(user_id):
            return False
        handle = self.get(user_id)
        try:
            await handle.send_json(payload)
        except Exception as exc:
            logger.warning("push to user %s failed: %s", user_id, exc)
            return False
        return True

    def __len__(self):
        return len(self._connections)


async def relay_payload(registry: ConnectionRegistry, sender_id, raw: Union[str, bytes]) -> bool:
    """Handle one text or binary frame from ``sender_id``; True if something was forwarded."""
    try:
        data = json.loads(raw)
    except ValueError as exc:
        logger.warning("dropping malformed frame from user %s: %s", sender_id, exc)
        return False
    if not isinstance(data, dict):
        logger.warning("dropping non-object frame from user %s", sender_id)
        return False

    if data.get("type") == "typing":
        receiver_id = data.get("receiverId")
        if receiver_id is None:
            return False
        return await registry.send_if_present(
            receiver_id,
            {"type": "typing", "senderId": sender_id, "isTyping": bool(data.get("isTyping"))},
        )
    return False
