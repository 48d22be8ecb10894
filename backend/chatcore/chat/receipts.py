"""Delivery status tracking: sent -> delivered -> seen.

Status only moves forward. A request that would not advance it (repeating
``delivered``, or ``delivered`` after ``seen``) is a no-op that returns the
current message and notifies nobody.

Who may advance a message:
    - direct message: its receiver
    - room message: any current room member other than the sender

On a real transition the sender's live connection (if any) receives
``messageStatus {messageId, status}``.
"""
import logging

from chatcore.errors import AuthorizationError, NotFoundError, ValidationError
from chatcore.store.schemas import MessageStatus
from chatcore.store.service import MessageStore

from .permissions import NOT_A_MEMBER
from .presenter import Presenter
from .registry import ConnectionRegistry
from .schemas import MessageView

logger = logging.getLogger(__name__)


class DeliveryTracker:
    """Advances message status on behalf of recipients."""

    def __init__(
        self, store: MessageStore, registry: ConnectionRegistry, presenter: Presenter
    ) -> None:
        self.store = store
        self.registry = registry
        self.presenter = presenter

    async def mark_delivered(self, user_id: str, message_id: str) -> MessageView:
        return await self.mark(user_id, message_id, MessageStatus.DELIVERED)

    async def mark_seen(self, user_id: str, message_id: str) -> MessageView:
        return await self.mark(user_id, message_id, MessageStatus.SEEN)

    async def mark(self, user_id: str, message_id: str, status: MessageStatus) -> MessageView:
        if status == MessageStatus.SENT:
            raise ValidationError("status can only advance to delivered or seen")

        record = self.store.get_message(message_id)
        if record is None:
            raise NotFoundError("Message not found")

        if record.is_direct:
            if user_id != record.receiver_id:
                raise AuthorizationError("Only the recipient can update message status")
        else:
            room = self.store.get_room(record.room_id)
            if room is None or not room.is_member(user_id):
                raise AuthorizationError(NOT_A_MEMBER)
            if user_id == record.sender_id:
                raise AuthorizationError("Only the recipient can update message status")

        if not record.status.advances_to(status):
            return self.presenter.message(record)

        updated = self.store.update_message_status(message_id, status)
        logger.info(f"[Receipts] Message {message_id} {record.status.value} -> {status.value} by {user_id}")

        sender_conn = self.registry.lookup(record.sender_id)
        if sender_conn is not None:
            await sender_conn.send(
                "messageStatus", {"messageId": message_id, "status": status.value}
            )
        return self.presenter.message(updated)
