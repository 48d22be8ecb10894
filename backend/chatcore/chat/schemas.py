"""Client-facing payloads and request bodies for the chat core.

Stored records (``chatcore.store.schemas``) carry plain ids; the models here
carry resolved identities and camelCase keys, and are what both transports
put on the wire via ``model_dump(mode="json")``.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from chatcore.store.schemas import MemberRole, MessageStatus, MessageType
from chatcore.users.schemas import UserPresence, UserSummary


# =============================================================================
# Views
# =============================================================================


class MentionRef(BaseModel):
    id: str
    username: str


class MessageView(BaseModel):
    """A message as delivered to clients (sender populated).

    Exactly one of ``receiver`` / ``chatRoom`` is set.
    """
    id: str
    sender: UserSummary
    receiver: Optional[UserSummary] = None
    chatRoom: Optional[str] = None
    content: str
    messageType: MessageType = MessageType.TEXT
    status: MessageStatus = MessageStatus.SENT
    mentions: List[MentionRef] = Field(default_factory=list)
    createdAt: datetime
    updatedAt: datetime


class RoomMemberView(BaseModel):
    user: UserSummary
    role: MemberRole
    joinedAt: datetime


class RoomView(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    creator: str
    isPrivate: bool = False
    members: List[RoomMemberView] = Field(default_factory=list)
    lastMessage: Optional[MessageView] = None
    createdAt: datetime
    updatedAt: datetime


class DirectConversation(BaseModel):
    """A direct conversation, keyed by the other participant."""
    type: Literal["direct"] = "direct"
    id: str = Field(..., description="The peer's user ID")
    peer: UserPresence
    lastMessage: Optional[MessageView] = None


class DirectHistory(BaseModel):
    """Every message exchanged with one peer, oldest first."""
    messages: List[MessageView] = Field(default_factory=list)


class DirectThread(BaseModel):
    """A direct conversation together with its full history (oldest first)."""
    conversation: DirectConversation
    messages: List[MessageView] = Field(default_factory=list)


class GroupConversation(RoomView):
    """A room conversation, keyed by room id."""
    type: Literal["group"] = "group"


class ConversationList(BaseModel):
    """Aggregator output; each list is sorted newest first on its own key."""
    direct: List[DirectConversation] = Field(default_factory=list)
    group: List[GroupConversation] = Field(default_factory=list)


class RoomMessagesPage(BaseModel):
    messages: List[MessageView]
    page: int
    limit: int
    hasMore: bool


# =============================================================================
# Push-path inputs
# =============================================================================


class MessageDraft(BaseModel):
    """A message as submitted by a client, before validation.

    Target and content checks are done by the ingest pipeline so both
    transports report identical errors.
    """
    content: str = ""
    receiver: Optional[str] = None
    chatRoom: Optional[str] = None
    messageType: MessageType = MessageType.TEXT
    mentions: Optional[List[str]] = None


class TypingSignal(BaseModel):
    typing: bool = True
    receiver: Optional[str] = None
    chatRoom: Optional[str] = None


# =============================================================================
# HTTP request bodies
# =============================================================================


class DirectMessageRequest(BaseModel):
    receiver: str = Field(..., min_length=1)
    content: str = ""
    messageType: MessageType = MessageType.TEXT


class StartDirectRequest(BaseModel):
    userId: str = Field(..., min_length=1)


class CreateRoomRequest(BaseModel):
    name: str = ""
    description: Optional[str] = None
    memberIds: List[str] = Field(default_factory=list)
    isPrivate: bool = False


class MemberRequest(BaseModel):
    userId: str = Field(..., min_length=1)


class RoleChangeRequest(BaseModel):
    userId: str = Field(..., min_length=1)
    newRole: MemberRole


class RoomMessageRequest(BaseModel):
    content: str = ""
    mentions: Optional[List[str]] = None
    messageType: MessageType = MessageType.TEXT
