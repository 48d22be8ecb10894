"""Pydantic schemas for the user directory.

Users are owned by the account system; the chat core only reads them. The
``isOnline`` flag is never stored, it is derived from the connection
registry whenever a user is rendered for a client.
"""
from typing import Optional

from pydantic import BaseModel, Field

from chatcore.clock import UtcDateTime, utcnow


class UserSummary(BaseModel):
    """Public identity attached to messages, members and search results."""
    id: str = Field(..., description="User ID")
    username: str = Field(..., description="Unique handle used in @mentions")
    displayName: str = Field(default="", description="Human-readable name")
    avatar: Optional[str] = Field(default=None, description="Avatar reference")


class UserRecord(UserSummary):
    """Directory row."""
    createdAt: UtcDateTime = Field(default_factory=utcnow)

    def summary(self) -> UserSummary:
        return UserSummary(
            id=self.id,
            username=self.username,
            displayName=self.displayName,
            avatar=self.avatar,
        )


class UserPresence(UserSummary):
    """A user together with the live presence flag."""
    isOnline: bool = False
