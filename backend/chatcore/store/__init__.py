"""Message Store: DuckDB persistence for messages and rooms."""

from .schemas import (
    MemberRole,
    MessageRecord,
    MessageStatus,
    MessageType,
    RoomMember,
    RoomRecord,
)
from .service import MessageStore

__all__ = [
    "MemberRole",
    "MessageRecord",
    "MessageStatus",
    "MessageType",
    "MessageStore",
    "RoomMember",
    "RoomRecord",
]
