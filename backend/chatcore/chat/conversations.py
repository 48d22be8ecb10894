"""Conversation Aggregator: the "inbox" view for one user.

Direct conversations are not stored; they are derived from message history,
one entry per distinct peer carrying the most recent message exchanged with
them. Group conversations are the rooms the user belongs to. The two lists
are sorted independently, newest first, and are not paginated.
"""
import logging
from typing import List

from chatcore.store.service import MessageStore
from chatcore.users.service import UserDirectory

from .presenter import Presenter
from .schemas import ConversationList, DirectConversation, GroupConversation

logger = logging.getLogger(__name__)


class ConversationAggregator:

    def __init__(
        self, store: MessageStore, directory: UserDirectory, presenter: Presenter
    ) -> None:
        self.store = store
        self.directory = directory
        self.presenter = presenter

    def list_conversations(self, user_id: str) -> ConversationList:
        return ConversationList(
            direct=self.direct_conversations(user_id),
            group=self.group_conversations(user_id),
        )

    def direct_conversations(self, user_id: str) -> List[DirectConversation]:
        latest = self.store.latest_direct_per_peer(user_id)
        peers = self.directory.get_many(peer_id for peer_id, _ in latest)
        messages = self.presenter.messages(record for _, record in latest)

        conversations = []
        for (peer_id, record), message in zip(latest, messages):
            peer = peers.get(peer_id)
            if peer is None:
                logger.debug(f"[Conversations] Skipping unknown peer {peer_id}")
                continue
            conversations.append(
                DirectConversation(
                    id=peer_id,
                    peer=self.presenter.presence(peer),
                    lastMessage=message,
                )
            )
        conversations.sort(key=lambda c: c.lastMessage.createdAt, reverse=True)
        return conversations

    def group_conversations(self, user_id: str) -> List[GroupConversation]:
        rooms = self.store.rooms_for_member(user_id)
        last = self.store.get_messages(
            r.last_message_id for r in rooms if r.last_message_id
        )
        conversations = []
        for room in rooms:
            view = self.presenter.room(room, last.get(room.last_message_id))
            conversations.append(GroupConversation(**view.model_dump()))
        conversations.sort(key=lambda c: c.updatedAt, reverse=True)
        return conversations
