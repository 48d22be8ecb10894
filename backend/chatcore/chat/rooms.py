"""Room Multiplexer: dynamic push subscription groups keyed by room id.

A connection may be subscribed to many rooms; a broadcast to a room reaches
every connection currently subscribed to it.

Key features:
    - Idempotent join/leave per connection
    - Concurrent fanout with asyncio.gather()
    - Automatic removal of connections whose send failed
    - Reverse index (connection -> rooms) so a disconnect drops every
      subscription in one call

The multiplexer only tracks subscriptions. Whether a user may subscribe is
decided by the caller through ``chatcore.chat.permissions``.

Thread Safety:
    Designed for async/await usage with a single event loop. NOT thread-safe.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from .connection import ClientConnection

logger = logging.getLogger(__name__)


class RoomMultiplexer:
    """Manages room subscriptions of live connections."""

    def __init__(self) -> None:
        # room_id -> subscribed connections
        self._subscribers: Dict[str, Set[ClientConnection]] = {}

        # connection -> room ids it is subscribed to
        self._rooms_by_connection: Dict[ClientConnection, Set[str]] = {}

    def join(self, connection: ClientConnection, room_id: str) -> bool:
        """Subscribe a connection to a room.

        Returns:
            True if the subscription is new, False if it already existed.
        """
        subscribers = self._subscribers.setdefault(room_id, set())
        if connection in subscribers:
            return False
        subscribers.add(connection)
        self._rooms_by_connection.setdefault(connection, set()).add(room_id)
        logger.info(f"[Rooms] {connection.user_id} joined room {room_id}")
        return True

    def leave(self, connection: ClientConnection, room_id: str) -> bool:
        """Unsubscribe a connection from a room.

        Returns:
            True if a subscription was removed.
        """
        subscribers = self._subscribers.get(room_id)
        if not subscribers or connection not in subscribers:
            return False
        subscribers.discard(connection)
        if not subscribers:
            del self._subscribers[room_id]

        rooms = self._rooms_by_connection.get(connection)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                del self._rooms_by_connection[connection]
        logger.info(f"[Rooms] {connection.user_id} left room {room_id}")
        return True

    def drop(self, connection: ClientConnection) -> List[str]:
        """Remove a connection from every room (on disconnect).

        Returns:
            The room ids it was subscribed to.
        """
        rooms = list(self._rooms_by_connection.get(connection, ()))
        for room_id in rooms:
            self.leave(connection, room_id)
        return rooms

    def evict(self, user_id: str, room_id: str) -> int:
        """Unsubscribe every connection of ``user_id`` from ``room_id``.

        Used when room membership is revoked so the user stops receiving
        the room's fanout immediately.
        """
        targets = [c for c in self._subscribers.get(room_id, ()) if c.user_id == user_id]
        for connection in targets:
            self.leave(connection, room_id)
        return len(targets)

    def members(self, room_id: str) -> List[ClientConnection]:
        return list(self._subscribers.get(room_id, ()))

    def rooms_of(self, connection: ClientConnection) -> Set[str]:
        return set(self._rooms_by_connection.get(connection, ()))

    def is_subscribed(self, connection: ClientConnection, room_id: str) -> bool:
        return connection in self._subscribers.get(room_id, ())

    async def broadcast(
        self,
        room_id: str,
        event: str,
        payload: Any,
        exclude: Optional[ClientConnection] = None,
    ) -> int:
        """Send an event to every connection in a room concurrently.

        Connections whose send fails are unsubscribed from the room.

        Args:
            room_id: Room to broadcast to.
            event: Event name.
            payload: JSON-serializable payload.
            exclude: Optional connection to skip (e.g. the typing user).

        Returns:
            Number of connections that received the event.
        """
        connections = [c for c in self._subscribers.get(room_id, ()) if c is not exclude]
        if not connections:
            return 0

        results = await asyncio.gather(
            *[conn.send(event, payload) for conn in connections],
            return_exceptions=True,
        )

        failed = [conn for conn, ok in zip(connections, results) if ok is not True]
        for conn in failed:
            self.leave(conn, room_id)
            logger.debug(f"Removed dead connection from room {room_id}")
        return len(connections) - len(failed)

    def clear(self) -> None:
        self._subscribers.clear()
        self._rooms_by_connection.clear()
