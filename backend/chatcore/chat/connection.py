"""Live connection handle.

A ``ClientConnection`` is what the registry and the room multiplexer store:
one authenticated WebSocket session belonging to exactly one user. Every
outbound frame has the shape ``{"type": <event>, "data": <payload>}``.
"""
import logging
import uuid
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# WebSocket close codes used by the push transport
CLOSE_POLICY_VIOLATION = 1008  # missing/invalid credential
CLOSE_SUPERSEDED = 4001        # a newer session for the same user was admitted


class ClientConnection:
    """Push-transport session of one authenticated user.

    Attributes:
        websocket: The underlying Starlette WebSocket.
        user_id: Identity resolved by the authenticator before admission.
        connection_id: Unique id of this session (for logs).
    """

    def __init__(self, websocket: WebSocket, user_id: str) -> None:
        self.websocket = websocket
        self.user_id = user_id
        self.connection_id = str(uuid.uuid4())
        self.closed = False

    async def send(self, event: str, payload: Any) -> bool:
        """Send one event with error handling.

        Returns:
            True if successful, False if the connection failed.
        """
        if self.closed:
            return False
        try:
            await self.websocket.send_json({"type": event, "data": payload})
            return True
        except Exception as e:
            logger.debug(f"Failed to send {event} to {self.user_id}: {e}")
            return False

    async def close(self, code: int, reason: str = "") -> None:
        """Close the session from the server side (idempotent)."""
        if self.closed:
            return
        self.closed = True
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Close of connection {self.connection_id} failed: {e}")

    def __repr__(self) -> str:
        return f"ClientConnection(user_id={self.user_id!r}, id={self.connection_id[:8]})"
