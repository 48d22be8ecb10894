"""Turns stored records into client payloads.

Resolution is batched: one directory lookup per call regardless of how many
messages or members are rendered.
"""
from typing import Dict, Iterable, List, Optional

from chatcore.store.schemas import MessageRecord, RoomRecord
from chatcore.users.schemas import UserPresence, UserRecord, UserSummary
from chatcore.users.service import UserDirectory

from .registry import ConnectionRegistry
from .schemas import MentionRef, MessageView, RoomMemberView, RoomView


def _summary(users: Dict[str, UserRecord], user_id: str) -> UserSummary:
    user = users.get(user_id)
    if user is None:
        # Account deleted upstream; keep the message renderable.
        return UserSummary(id=user_id, username="unknown")
    return user.summary()


class Presenter:
    """Builds MessageView / RoomView objects with identities resolved."""

    def __init__(self, directory: UserDirectory, registry: ConnectionRegistry) -> None:
        self.directory = directory
        self.registry = registry

    def message(self, record: MessageRecord) -> MessageView:
        return self.messages([record])[0]

    def messages(self, records: Iterable[MessageRecord]) -> List[MessageView]:
        records = list(records)
        user_ids = set()
        for record in records:
            user_ids.add(record.sender_id)
            if record.receiver_id:
                user_ids.add(record.receiver_id)
            user_ids.update(record.mention_ids)
        users = self.directory.get_many(user_ids)
        return [self._message(record, users) for record in records]

    def _message(self, record: MessageRecord, users: Dict[str, UserRecord]) -> MessageView:
        return MessageView(
            id=record.id,
            sender=_summary(users, record.sender_id),
            receiver=_summary(users, record.receiver_id) if record.receiver_id else None,
            chatRoom=record.room_id,
            content=record.content,
            messageType=record.message_type,
            status=record.status,
            mentions=[
                MentionRef(id=uid, username=users[uid].username)
                for uid in record.mention_ids if uid in users
            ],
            createdAt=record.created_at,
            updatedAt=record.updated_at,
        )

    def room(
        self, record: RoomRecord, last_message: Optional[MessageRecord] = None
    ) -> RoomView:
        users = self.directory.get_many(record.member_ids())
        return RoomView(
            id=record.id,
            name=record.name,
            description=record.description,
            creator=record.creator_id,
            isPrivate=record.is_private,
            members=[
                RoomMemberView(
                    user=_summary(users, m.user_id), role=m.role, joinedAt=m.joined_at
                )
                for m in record.members
            ],
            lastMessage=self.message(last_message) if last_message else None,
            createdAt=record.created_at,
            updatedAt=record.updated_at,
        )

    def presence(self, user: UserRecord) -> UserPresence:
        return UserPresence(
            **user.summary().model_dump(),
            isOnline=self.registry.is_online(user.id),
        )
