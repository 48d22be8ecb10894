"""Room service: creation, membership and role changes, history paging.

Every mutation goes through ``permissions.require`` first and then checks
the invariants that depend on the target user:

    * a user is a member of a room at most once
    * a room always keeps at least one admin

Removing a membership (leave, remove) also evicts that user's live
connection from the room's push group so they stop receiving its fanout.
"""
import logging
from typing import List, Optional

from chatcore.errors import NotFoundError, ValidationError
from chatcore.store.schemas import MemberRole, RoomRecord
from chatcore.store.service import MessageStore
from chatcore.users.service import UserDirectory

from .permissions import RoomAction, require
from .presenter import Presenter
from .rooms import RoomMultiplexer
from .schemas import RoomMessagesPage, RoomView

logger = logging.getLogger(__name__)

LAST_ADMIN = "Room must keep at least one admin"


class RoomService:

    def __init__(
        self,
        store: MessageStore,
        directory: UserDirectory,
        rooms: RoomMultiplexer,
        presenter: Presenter,
        default_page_size: int = 50,
        max_page_size: int = 100,
        max_description_length: int = 500,
    ) -> None:
        self.store = store
        self.directory = directory
        self.rooms = rooms
        self.presenter = presenter
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.max_description_length = max_description_length

    # =========================================================================
    # Lookups
    # =========================================================================

    def load(self, room_id: str) -> RoomRecord:
        room = self.store.get_room(room_id)
        if room is None:
            raise NotFoundError("Chat room not found")
        return room

    def view(self, room: RoomRecord) -> RoomView:
        last = self.store.get_message(room.last_message_id) if room.last_message_id else None
        return self.presenter.room(room, last)

    def get_room(self, room_id: str, user_id: str) -> RoomView:
        room = self.load(room_id)
        require(room, user_id, RoomAction.READ)
        return self.view(room)

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_room(
        self,
        creator_id: str,
        name: str,
        description: Optional[str] = None,
        member_ids: Optional[List[str]] = None,
        is_private: bool = False,
    ) -> RoomView:
        """Create a room. The creator becomes its first admin.

        Raises:
            ValidationError: Blank name, description too long, or a member id
                the directory does not know.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Room name is required")
        description = description.strip() if description else None
        if description and len(description) > self.max_description_length:
            raise ValidationError(
                f"description exceeds {self.max_description_length} characters"
            )

        wanted = [uid for uid in dict.fromkeys(member_ids or []) if uid != creator_id]
        known = self.directory.get_many(wanted)
        unknown = [uid for uid in wanted if uid not in known]
        if unknown:
            raise ValidationError(f"Unknown users: {', '.join(unknown)}")

        room = self.store.create_room(
            name=name,
            creator_id=creator_id,
            description=description,
            is_private=is_private,
            member_ids=wanted,
        )
        logger.info(f"[Rooms] {creator_id} created room {room.id} ({name})")
        return self.view(room)

    def join(self, room_id: str, user_id: str) -> RoomView:
        room = self.load(room_id)
        require(room, user_id, RoomAction.JOIN)
        room = self.store.add_member(room.id, user_id)
        logger.info(f"[Rooms] {user_id} joined room {room_id}")
        return self.view(room)

    def leave(self, room_id: str, user_id: str) -> RoomView:
        room = self.load(room_id)
        require(room, user_id, RoomAction.LEAVE)
        self._keep_an_admin(room, user_id)
        room = self.store.remove_member(room.id, user_id)
        self.rooms.evict(user_id, room_id)
        logger.info(f"[Rooms] {user_id} left room {room_id}")
        return self.view(room)

    def add_member(self, room_id: str, admin_id: str, user_id: str) -> RoomView:
        room = self.load(room_id)
        require(room, admin_id, RoomAction.MANAGE)
        if room.is_member(user_id):
            raise ValidationError("Already a member")
        if not self.directory.exists(user_id):
            raise NotFoundError("User not found")
        room = self.store.add_member(room.id, user_id)
        logger.info(f"[Rooms] {admin_id} added {user_id} to room {room_id}")
        return self.view(room)

    def remove_member(self, room_id: str, admin_id: str, user_id: str) -> RoomView:
        room = self.load(room_id)
        require(room, admin_id, RoomAction.MANAGE)
        if not room.is_member(user_id):
            raise NotFoundError("User is not a member")
        self._keep_an_admin(room, user_id)
        room = self.store.remove_member(room.id, user_id)
        evicted = self.rooms.evict(user_id, room_id)
        logger.info(
            f"[Rooms] {admin_id} removed {user_id} from room {room_id} "
            f"({evicted} live connection(s) evicted)"
        )
        return self.view(room)

    def change_role(
        self, room_id: str, admin_id: str, user_id: str, new_role: MemberRole
    ) -> RoomView:
        room = self.load(room_id)
        require(room, admin_id, RoomAction.MANAGE)
        member = room.member(user_id)
        if member is None:
            raise NotFoundError("User is not a member")
        new_role = MemberRole(new_role)
        if member.role == new_role:
            return self.view(room)
        if new_role == MemberRole.MEMBER:
            self._keep_an_admin(room, user_id)
        room = self.store.set_member_role(room.id, user_id, new_role)
        logger.info(f"[Rooms] {admin_id} set {user_id} to {new_role.value} in room {room_id}")
        return self.view(room)

    @staticmethod
    def _keep_an_admin(room: RoomRecord, leaving_id: str) -> None:
        """Reject a change that would take away the room's last admin."""
        if room.admin_ids() == [leaving_id]:
            logger.warning(f"[Rooms] Refused to drop last admin {leaving_id} of room {room.id}")
            raise ValidationError(LAST_ADMIN)

    # =========================================================================
    # History
    # =========================================================================

    def messages(
        self, room_id: str, user_id: str, page: int = 1, limit: Optional[int] = None
    ) -> RoomMessagesPage:
        """One page of history in chronological order.

        Page 1 holds the newest ``limit`` messages; higher pages go back in
        time. ``limit`` is capped at the configured maximum.
        """
        room = self.load(room_id)
        require(room, user_id, RoomAction.READ)
        page = max(page, 1)
        limit = self.default_page_size if not limit or limit < 1 else limit
        limit = min(limit, self.max_page_size)

        # Fetch one extra row to learn whether an older page exists.
        records = self.store.room_messages(room.id, offset=(page - 1) * limit, limit=limit + 1)
        has_more = len(records) > limit
        records = list(reversed(records[:limit]))
        return RoomMessagesPage(
            messages=self.presenter.messages(records),
            page=page,
            limit=limit,
            hasMore=has_more,
        )
