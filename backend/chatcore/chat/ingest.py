"""Message Ingest Pipeline.

The single entry point for creating a message, shared by the WebSocket
``sendMessage`` event and the HTTP POST endpoints. The transports differ
only in how the result reaches the caller: the push path gets a
``messageSent`` echo on its own connection, the HTTP path gets the message
in the response body.

Steps:
    1. Validate content (non-empty after trimming, bounded length).
    2. Validate the target: exactly one of receiver / chatRoom.
    3. Check the target exists and, for rooms, that the sender is a member.
    4. Resolve @mentions and persist message + mentions atomically.
    5. Room target: update the room's last-message pointer, fan out
       ``newMessage`` to the room's subscribers.
    6. Direct target: push ``newMessage`` to the receiver if online.
    7. Echo ``messageSent`` to the originating connection, if any.

Steps 1-4 are fatal to the request and raise ``ChatError``. Steps 5-7 are
best effort and never undo the stored message. An offline receiver is not
an error; there is no delivery-on-reconnect.

Ordering:
    Two concurrent sends to the same room are stored in whatever order their
    persistence calls complete; readers may see an order that differs from
    wall-clock send order.
"""
import logging
from typing import Optional

from chatcore.errors import NotFoundError, PersistenceError, ValidationError
from chatcore.store.service import MessageStore
from chatcore.users.service import UserDirectory

from .connection import ClientConnection
from .mentions import MentionResolver
from .permissions import RoomAction, require
from .presenter import Presenter
from .registry import ConnectionRegistry
from .rooms import RoomMultiplexer
from .schemas import MessageDraft, MessageView

logger = logging.getLogger(__name__)


class MessageIngestPipeline:
    """Validates, persists and fans out new messages."""

    def __init__(
        self,
        store: MessageStore,
        directory: UserDirectory,
        registry: ConnectionRegistry,
        rooms: RoomMultiplexer,
        mentions: MentionResolver,
        presenter: Presenter,
        max_content_length: int = 5000,
    ) -> None:
        self.store = store
        self.directory = directory
        self.registry = registry
        self.rooms = rooms
        self.mentions = mentions
        self.presenter = presenter
        self.max_content_length = max_content_length

    async def send(
        self,
        sender_id: str,
        draft: MessageDraft,
        origin: Optional[ClientConnection] = None,
    ) -> MessageView:
        """Create a message from ``sender_id``.

        Args:
            sender_id: Authenticated author.
            draft: Client-submitted content and target.
            origin: Push connection to echo ``messageSent`` to (None for HTTP).

        Returns:
            The stored message with identities resolved.

        Raises:
            ValidationError: Empty content, ambiguous target, self-message,
                content too long.
            NotFoundError: Unknown receiver or room.
            AuthorizationError: Sender is not a member of the room.
            PersistenceError: The message could not be stored.
        """
        content = (draft.content or "").strip()
        if not content:
            raise ValidationError("content required")
        if bool(draft.receiver) == bool(draft.chatRoom):
            raise ValidationError("ambiguous target")
        if len(content) > self.max_content_length:
            raise ValidationError(
                f"content exceeds {self.max_content_length} characters"
            )

        room = None
        if draft.chatRoom:
            room = self.store.get_room(draft.chatRoom)
            if room is None:
                raise NotFoundError("Chat room not found")
            require(room, sender_id, RoomAction.POST)
        else:
            if draft.receiver == sender_id:
                raise ValidationError("cannot message yourself")
            if not self.directory.exists(draft.receiver):
                raise NotFoundError("User not found")

        mention_ids = self.mentions.resolve(content, draft.mentions, room)
        record = self.store.insert_message(
            sender_id=sender_id,
            content=content,
            receiver_id=None if room else draft.receiver,
            room_id=room.id if room else None,
            message_type=draft.messageType,
            mention_ids=mention_ids,
        )
        message = self.presenter.message(record)
        payload = message.model_dump(mode="json")
        logger.info(f"[Ingest] {sender_id} -> {room.id if room else draft.receiver}: {content[:50]}")

        if room is not None:
            try:
                self.store.set_last_message(room.id, record.id, record.created_at)
            except PersistenceError as e:
                # The message exists; only the conversation-list pointer is stale.
                logger.error(f"[Ingest] lastMessage update failed for room {room.id}: {e}")
            delivered = await self.rooms.broadcast(room.id, "newMessage", payload)
            logger.debug(f"[Ingest] Room {room.id} fanout reached {delivered} connections")
        else:
            receiver_conn = self.registry.lookup(draft.receiver)
            if receiver_conn is not None:
                await receiver_conn.send("newMessage", payload)
            else:
                logger.debug(f"[Ingest] Receiver {draft.receiver} offline; stored only")

        if origin is not None:
            await origin.send("messageSent", payload)
        return message
