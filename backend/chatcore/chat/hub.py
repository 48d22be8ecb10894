"""Chat hub: the long-lived object behind both transports.

It composes the registry, multiplexer, presence, ingest pipeline, typing
coordinator, delivery tracker, room service, mention resolver and
conversation aggregator around one Message Store and one User Directory,
and owns the connect / disconnect lifecycle of push sessions.

Lifecycle of a push session:
    1. ``connect``: authenticate the bearer credential, accept, admit into
       the registry, send ``connected``. A first admission announces
       ``userOnline``; a reconnect closes the superseded session with 4001
       and announces nothing.
    2. Events are dispatched by the WebSocket router.
    3. ``disconnect``: drop every room subscription and revoke the registry
       entry. ``userOffline`` is announced only if the entry was still this
       session's.

Usage:
    hub = ChatHub.get_instance()
    conn = await hub.connect(websocket, token)
"""
import logging
from typing import Optional

from fastapi import WebSocket

from chatcore.auth.service import Authenticator, TokenService
from chatcore.config import get_config
from chatcore.errors import AuthError, NotFoundError
from chatcore.store.service import MessageStore
from chatcore.users.service import UserDirectory

from .connection import CLOSE_POLICY_VIOLATION, CLOSE_SUPERSEDED, ClientConnection
from .conversations import ConversationAggregator
from .direct import DirectConversationService
from .ingest import MessageIngestPipeline
from .mentions import MentionResolver
from .permissions import RoomAction, require
from .presence import PresenceBroadcaster
from .presenter import Presenter
from .receipts import DeliveryTracker
from .registry import ConnectionRegistry
from .room_service import RoomService
from .rooms import RoomMultiplexer
from .typing_relay import TypingCoordinator

logger = logging.getLogger(__name__)

SUPERSEDED_REASON = "Superseded by a newer session"


class ChatHub:
    """Composition root of the chat core (singleton)."""

    _instance: Optional["ChatHub"] = None

    def __init__(
        self,
        store: Optional[MessageStore] = None,
        directory: Optional[UserDirectory] = None,
        authenticator: Optional[Authenticator] = None,
    ) -> None:
        config = get_config()
        self.store = store or MessageStore.get_instance()
        self.directory = directory or UserDirectory.get_instance()
        self.authenticator = authenticator or Authenticator(
            TokenService.from_config(), self.directory
        )

        self.registry = ConnectionRegistry()
        self.rooms = RoomMultiplexer()
        self.presence = PresenceBroadcaster(self.registry)
        self.presenter = Presenter(self.directory, self.registry)
        self.mentions = MentionResolver(
            self.directory,
            self.store,
            suggestion_limit=config.mentions.suggestion_limit,
            search_limit=config.mentions.search_limit,
        )
        self.ingest = MessageIngestPipeline(
            self.store,
            self.directory,
            self.registry,
            self.rooms,
            self.mentions,
            self.presenter,
            max_content_length=config.chat.max_content_length,
        )
        self.typing = TypingCoordinator(self.store, self.registry, self.rooms)
        self.receipts = DeliveryTracker(self.store, self.registry, self.presenter)
        self.room_service = RoomService(
            self.store,
            self.directory,
            self.rooms,
            self.presenter,
            default_page_size=config.chat.default_page_size,
            max_page_size=config.chat.max_page_size,
            max_description_length=config.chat.max_description_length,
        )
        self.direct = DirectConversationService(self.store, self.directory, self.presenter)
        self.conversations = ConversationAggregator(self.store, self.directory, self.presenter)

    @classmethod
    def get_instance(cls) -> "ChatHub":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (for testing)."""
        if cls._instance is not None:
            cls._instance.registry.clear()
            cls._instance.rooms.clear()
        cls._instance = None

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    async def connect(
        self, websocket: WebSocket, token: Optional[str]
    ) -> Optional[ClientConnection]:
        """Authenticate and admit a push session.

        Returns:
            The admitted connection, or None if the credential was rejected
            (the socket is closed with 1008 in that case).
        """
        try:
            user = self.authenticator.authenticate(token)
        except AuthError as e:
            logger.warning(f"[Hub] Rejected connection: {e.message}")
            # Accept first so the client actually sees the close reason.
            await websocket.accept()
            await websocket.close(code=CLOSE_POLICY_VIOLATION, reason=e.message)
            return None

        await websocket.accept()
        conn = ClientConnection(websocket, user.id)
        previous = self.registry.admit(user.id, conn)

        await conn.send(
            "connected", {"userId": user.id, "onlineUsers": self.registry.online_user_ids()}
        )
        if previous is not None:
            self.rooms.drop(previous)
            await previous.close(CLOSE_SUPERSEDED, SUPERSEDED_REASON)
        else:
            await self.presence.announce_online(user.id, exclude=conn)
        logger.info(f"[Hub] {user.username} connected as {conn!r}")
        return conn

    async def disconnect(self, conn: ClientConnection) -> None:
        """Tear down a session; safe to call more than once."""
        conn.closed = True
        self.rooms.drop(conn)
        if self.registry.revoke(conn.user_id, conn):
            await self.presence.announce_offline(conn.user_id)
        logger.info(f"[Hub] {conn!r} disconnected")

    # =========================================================================
    # Push-only operations
    # =========================================================================

    async def join_room(self, conn: ClientConnection, room_id: str) -> bool:
        """Subscribe ``conn`` to a room it is a member of.

        Raises:
            NotFoundError: Unknown room.
            AuthorizationError: The user is not a member.
        """
        room = self.store.get_room(room_id)
        if room is None:
            raise NotFoundError("Chat room not found")
        require(room, conn.user_id, RoomAction.READ)
        return self.rooms.join(conn, room_id)

    def leave_room(self, conn: ClientConnection, room_id: str) -> bool:
        return self.rooms.leave(conn, room_id)


def get_hub() -> ChatHub:
    """FastAPI dependency returning the process-wide hub."""
    return ChatHub.get_instance()
