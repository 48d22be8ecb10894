"""Room capability checks shared by the HTTP and push paths.

``authorize`` is the only place that decides whether a user may act on a
room. It returns a tagged result instead of raising so callers on the push
path can turn a denial into an event, while HTTP callers use ``require``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Union

from chatcore.errors import AuthorizationError, ValidationError
from chatcore.store.schemas import RoomRecord

NOT_A_MEMBER = "Not a group member"
ADMIN_ONLY = "Only admins can manage members"
ALREADY_MEMBER = "Already a member"
ROOM_PRIVATE = "Room is private"


class RoomAction(str, Enum):
    READ = "read"      # fetch history, subscribe to the push group
    POST = "post"      # send a message to the room
    JOIN = "join"      # self-join over HTTP
    LEAVE = "leave"
    MANAGE = "manage"  # add/remove members, change roles


@dataclass(frozen=True)
class Allowed:
    pass


@dataclass(frozen=True)
class Denied:
    reason: str


Decision = Union[Allowed, Denied]


def authorize(room: RoomRecord, user_id: str, action: RoomAction) -> Decision:
    """Decide whether ``user_id`` may perform ``action`` on ``room``."""
    if action == RoomAction.JOIN:
        if room.is_member(user_id):
            return Denied(ALREADY_MEMBER)
        if room.is_private:
            return Denied(ROOM_PRIVATE)
        return Allowed()

    if not room.is_member(user_id):
        return Denied(NOT_A_MEMBER)
    if action == RoomAction.MANAGE and not room.is_admin(user_id):
        return Denied(ADMIN_ONLY)
    return Allowed()


def require(room: RoomRecord, user_id: str, action: RoomAction) -> None:
    """Raise the matching ChatError when ``authorize`` denies the action.

    Raises:
        ValidationError: For "already a member" (a bad request, not a
            permission problem).
        AuthorizationError: For every other denial.
    """
    decision = authorize(room, user_id, action)
    if isinstance(decision, Denied):
        if decision.reason == ALREADY_MEMBER:
            raise ValidationError(decision.reason)
        raise AuthorizationError(decision.reason)
