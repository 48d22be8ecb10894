"""Connection Registry: user identity -> live connection.

The registry is the single place that resolves a user to a push channel.
It is owned by the chat hub rather than being a bare module global, so a
distributed registry could replace it without touching callers.

Semantics:
    - At most one entry per user. A second admission replaces the first
      (last-connection-wins); ``admit`` hands the superseded connection back
      so the caller can close it.
    - ``revoke`` is idempotent. Given a handle, it only removes the entry if
      that handle is still current, so a late disconnect from a superseded
      session cannot evict the newer one.

Thread Safety:
    Plain dict, designed for a single event loop. Not safe for concurrent
    access from multiple threads.
"""
import logging
from typing import Dict, List, Optional

from .connection import ClientConnection

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Process-wide map of online users to their connection."""

    def __init__(self) -> None:
        # user_id -> current connection
        self._connections: Dict[str, ClientConnection] = {}

    def admit(self, user_id: str, handle: ClientConnection) -> Optional[ClientConnection]:
        """Record ``handle`` as the live connection of ``user_id``.

        Returns:
            The connection this admission replaced, if any.
        """
        previous = self._connections.get(user_id)
        self._connections[user_id] = handle
        if previous is not None and previous is not handle:
            logger.info(f"[Registry] {user_id} reconnected; superseding {previous!r}")
            return previous
        logger.info(f"[Registry] Admitted {user_id} ({len(self._connections)} online)")
        return None

    def lookup(self, user_id: str) -> Optional[ClientConnection]:
        return self._connections.get(user_id)

    def revoke(self, user_id: str, handle: Optional[ClientConnection] = None) -> bool:
        """Remove the entry for ``user_id``.

        Args:
            user_id: The user going offline.
            handle: If given, only revoke when this is the current connection.

        Returns:
            True if an entry was removed.
        """
        current = self._connections.get(user_id)
        if current is None:
            return False
        if handle is not None and current is not handle:
            logger.debug(f"[Registry] Ignoring stale revoke for {user_id}")
            return False
        del self._connections[user_id]
        logger.info(f"[Registry] Revoked {user_id} ({len(self._connections)} online)")
        return True

    def is_online(self, user_id: str) -> bool:
        return user_id in self._connections

    def online_user_ids(self) -> List[str]:
        return list(self._connections.keys())

    def connections(self) -> List[ClientConnection]:
        return list(self._connections.values())

    def clear(self) -> None:
        self._connections.clear()

    def __len__(self) -> int:
        return len(self._connections)
