"""Presence Broadcaster.

"Online" means "has a registry entry". Transitions are announced to every
other live connection; the subject's own connection is never notified.
A network partition looks like a clean disconnect once the transport's own
timeout fires, and not before.
"""
import asyncio
import logging
from typing import Optional

from .connection import ClientConnection
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class PresenceBroadcaster:
    """Announces userOnline / userOffline transitions."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def announce_online(
        self, user_id: str, exclude: Optional[ClientConnection] = None
    ) -> int:
        return await self._announce("userOnline", user_id, exclude)

    async def announce_offline(self, user_id: str) -> int:
        return await self._announce("userOffline", user_id, None)

    async def _announce(
        self, event: str, user_id: str, exclude: Optional[ClientConnection]
    ) -> int:
        targets = [
            conn for conn in self.registry.connections()
            if conn is not exclude and conn.user_id != user_id
        ]
        if not targets:
            return 0
        results = await asyncio.gather(
            *[conn.send(event, user_id) for conn in targets],
            return_exceptions=True,
        )
        delivered = sum(1 for ok in results if ok is True)
        logger.info(f"[Presence] {event} {user_id} -> {delivered} connections")
        return delivered
