"""HTTP endpoints of the chat core.

All endpoints require a bearer credential. Message-creating endpoints run
the same ingest pipeline as the push transport's ``sendMessage``, so
targets, membership checks and fanout behave identically on both paths.

    POST /direct                    send a direct message
    GET  /direct/{user_id}          full history with a peer (oldest first)
    POST /direct/start              open a conversation with a peer
    POST /rooms                     create a room
    GET  /rooms/{room_id}           room details (members only)
    POST /rooms/{room_id}/join      self-join a public room
    POST /rooms/{room_id}/leave
    POST /rooms/{room_id}/add       admin adds a member
    POST /rooms/{room_id}/remove    admin removes a member
    POST /rooms/{room_id}/role      admin changes a member's role
    POST /rooms/{room_id}/messages  post to a room
    GET  /rooms/{room_id}/messages  paginated history (?page=&limit=)
    GET  /conversations             direct + group inbox
    POST /messages/{id}/delivered   advance delivery status
    POST /messages/{id}/seen
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from chatcore.auth.dependencies import current_user
from chatcore.users.schemas import UserRecord

from .hub import ChatHub, get_hub
from .schemas import (
    CreateRoomRequest,
    DirectHistory,
    DirectMessageRequest,
    MemberRequest,
    MessageDraft,
    RoleChangeRequest,
    RoomMessageRequest,
    StartDirectRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def _json(model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(model.model_dump(mode="json"), status_code=status_code)


# =============================================================================
# Direct messages
# =============================================================================


@router.post("/direct", status_code=201)
async def send_direct_message(
    body: DirectMessageRequest,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    """Send a direct message; the receiver gets ``newMessage`` if online."""
    message = await hub.ingest.send(
        user.id,
        MessageDraft(content=body.content, receiver=body.receiver, messageType=body.messageType),
    )
    return _json(message, status_code=201)


@router.get("/direct/{user_id}")
async def direct_history(
    user_id: str,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    return _json(DirectHistory(messages=hub.direct.history(user.id, user_id)))


@router.post("/direct/start")
async def start_direct_conversation(
    body: StartDirectRequest,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    """Existing-or-empty conversation with ``userId`` plus its history."""
    return _json(hub.direct.start(user.id, body.userId))


# =============================================================================
# Rooms
# =============================================================================


@router.post("/rooms", status_code=201)
async def create_room(
    body: CreateRoomRequest,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    room = hub.room_service.create_room(
        creator_id=user.id,
        name=body.name,
        description=body.description,
        member_ids=body.memberIds,
        is_private=body.isPrivate,
    )
    return _json(room, status_code=201)


@router.get("/rooms/{room_id}")
async def get_room(
    room_id: str,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    return _json(hub.room_service.get_room(room_id, user.id))


@router.post("/rooms/{room_id}/join")
async def join_room(
    room_id: str,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    return _json(hub.room_service.join(room_id, user.id))


@router.post("/rooms/{room_id}/leave")
async def leave_room(
    room_id: str,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    hub.room_service.leave(room_id, user.id)
    return JSONResponse({"message": "Left room"})


@router.post("/rooms/{room_id}/add")
async def add_member(
    room_id: str,
    body: MemberRequest,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    return _json(hub.room_service.add_member(room_id, user.id, body.userId))


@router.post("/rooms/{room_id}/remove")
async def remove_member(
    room_id: str,
    body: MemberRequest,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    return _json(hub.room_service.remove_member(room_id, user.id, body.userId))


@router.post("/rooms/{room_id}/role")
async def change_role(
    room_id: str,
    body: RoleChangeRequest,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    return _json(hub.room_service.change_role(room_id, user.id, body.userId, body.newRole))


@router.post("/rooms/{room_id}/messages", status_code=201)
async def post_room_message(
    room_id: str,
    body: RoomMessageRequest,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    """Post to a room; subscribers of the room's push group get ``newMessage``."""
    message = await hub.ingest.send(
        user.id,
        MessageDraft(
            content=body.content,
            chatRoom=room_id,
            messageType=body.messageType,
            mentions=body.mentions,
        ),
    )
    return _json(message, status_code=201)


@router.get("/rooms/{room_id}/messages")
async def room_messages(
    room_id: str,
    page: int = Query(1, ge=1, description="1 = newest page"),
    limit: Optional[int] = Query(None, ge=1, description="Page size (capped by config)"),
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    return _json(hub.room_service.messages(room_id, user.id, page=page, limit=limit))


# =============================================================================
# Inbox and delivery status
# =============================================================================


@router.get("/conversations")
async def list_conversations(
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    return _json(hub.conversations.list_conversations(user.id))


@router.post("/messages/{message_id}/delivered")
async def mark_delivered(
    message_id: str,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    return _json(await hub.receipts.mark_delivered(user.id, message_id))


@router.post("/messages/{message_id}/seen")
async def mark_seen(
    message_id: str,
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    return _json(await hub.receipts.mark_seen(user.id, message_id))
