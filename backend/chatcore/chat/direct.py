"""Direct (one-to-one) conversation reads.

Sending is done by the ingest pipeline; this service only reads history and
opens a conversation with a peer so a client can render an empty thread.
"""
from chatcore.errors import NotFoundError, ValidationError
from chatcore.store.service import MessageStore
from chatcore.users.service import UserDirectory

from .presenter import Presenter
from .schemas import DirectConversation, DirectThread


class DirectConversationService:

    def __init__(
        self, store: MessageStore, directory: UserDirectory, presenter: Presenter
    ) -> None:
        self.store = store
        self.directory = directory
        self.presenter = presenter

    def history(self, user_id: str, peer_id: str):
        """Every message exchanged with ``peer_id``, oldest first."""
        if not self.directory.exists(peer_id):
            raise NotFoundError("User not found")
        return self.presenter.messages(self.store.direct_history(user_id, peer_id))

    def start(self, user_id: str, peer_id: str) -> DirectThread:
        """Existing-or-empty conversation with ``peer_id`` plus its history."""
        if not peer_id:
            raise ValidationError("User ID is required")
        if peer_id == user_id:
            raise ValidationError("cannot message yourself")
        peer = self.directory.get(peer_id)
        if peer is None:
            raise NotFoundError("User not found")

        messages = self.presenter.messages(self.store.direct_history(user_id, peer_id))
        return DirectThread(
            conversation=DirectConversation(
                id=peer.id,
                peer=self.presenter.presence(peer),
                lastMessage=messages[-1] if messages else None,
            ),
            messages=messages,
        )
