"""Pydantic schemas for persisted chat documents.

These are the Message Store's records: references are plain ids. The chat
layer turns them into client payloads (``chatcore.chat.schemas``) by
resolving the ids through the user directory.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from chatcore.clock import UtcDateTime


class MessageType(str, Enum):
    """Kind of content carried by a message."""
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"


class MessageStatus(str, Enum):
    """Delivery status. Only ever moves forward: sent -> delivered -> seen."""
    SENT = "sent"
    DELIVERED = "delivered"
    SEEN = "seen"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def advances_to(self, other: "MessageStatus") -> bool:
        """True if moving from this status to ``other`` is a forward step."""
        return other.rank > self.rank


_STATUS_ORDER = [MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.SEEN]


class MemberRole(str, Enum):
    """Role of a user inside a room."""
    ADMIN = "admin"
    MEMBER = "member"


class MessageRecord(BaseModel):
    """A stored message.

    Attributes:
        id: Message ID.
        sender_id: Author.
        receiver_id: Peer for direct messages (None for room messages).
        room_id: Room for group messages (None for direct messages).
        content: Trimmed, non-empty text.
        message_type: text, image, video or file.
        status: Delivery status.
        mention_ids: Users resolved from @mentions at send time.
        seq: Store-assigned sequence number, breaks created_at ties.
    """
    id: str
    sender_id: str
    receiver_id: Optional[str] = None
    room_id: Optional[str] = None
    content: str
    message_type: MessageType = MessageType.TEXT
    status: MessageStatus = MessageStatus.SENT
    mention_ids: List[str] = Field(default_factory=list)
    seq: int = 0
    created_at: UtcDateTime
    updated_at: UtcDateTime

    @property
    def is_direct(self) -> bool:
        return self.room_id is None

    def peer_of(self, user_id: str) -> Optional[str]:
        """The other participant of a direct message, seen from ``user_id``."""
        if not self.is_direct:
            return None
        return self.receiver_id if self.sender_id == user_id else self.sender_id


class RoomMember(BaseModel):
    user_id: str
    role: MemberRole = MemberRole.MEMBER
    joined_at: UtcDateTime


class RoomRecord(BaseModel):
    """A stored room with its membership list."""
    id: str
    name: str
    description: Optional[str] = None
    creator_id: str
    is_private: bool = False
    last_message_id: Optional[str] = None
    created_at: UtcDateTime
    updated_at: UtcDateTime
    members: List[RoomMember] = Field(default_factory=list)

    def member(self, user_id: str) -> Optional[RoomMember]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def is_member(self, user_id: str) -> bool:
        return self.member(user_id) is not None

    def is_admin(self, user_id: str) -> bool:
        member = self.member(user_id)
        return member is not None and member.role == MemberRole.ADMIN

    def admin_ids(self) -> List[str]:
        return [m.user_id for m in self.members if m.role == MemberRole.ADMIN]

    def member_ids(self) -> List[str]:
        return [m.user_id for m in self.members]
