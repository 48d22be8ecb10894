"""Typing Coordinator.

Relays ``userTyping {userId, typing}`` edges and nothing else: no
persistence, no timers, no queuing. The client owns the debounce contract
(send ``typing: true`` on the first keystroke after idle, ``typing: false``
after one second without input). Signals for an offline receiver, an
unknown room or a room the sender does not belong to are dropped silently.
"""
import logging
from typing import Optional

from chatcore.errors import ChatError
from chatcore.store.service import MessageStore

from .connection import ClientConnection
from .permissions import Denied, RoomAction, authorize
from .registry import ConnectionRegistry
from .rooms import RoomMultiplexer
from .schemas import TypingSignal

logger = logging.getLogger(__name__)


class TypingCoordinator:

    def __init__(
        self, store: MessageStore, registry: ConnectionRegistry, rooms: RoomMultiplexer
    ) -> None:
        self.store = store
        self.registry = registry
        self.rooms = rooms

    async def set_typing(
        self,
        user_id: str,
        signal: TypingSignal,
        origin: Optional[ClientConnection] = None,
    ) -> bool:
        """Relay a typing edge. Returns True if anyone received it."""
        payload = {"userId": user_id, "typing": signal.typing}
        try:
            if signal.chatRoom:
                room = self.store.get_room(signal.chatRoom)
                if room is None or isinstance(authorize(room, user_id, RoomAction.POST), Denied):
                    return False
                return await self.rooms.broadcast(
                    room.id, "userTyping", payload, exclude=origin
                ) > 0
            if signal.receiver:
                conn = self.registry.lookup(signal.receiver)
                if conn is None:
                    return False
                return await conn.send("userTyping", payload)
        except ChatError as e:
            logger.debug(f"[Typing] Dropped signal from {user_id}: {e.message}")
        return False
