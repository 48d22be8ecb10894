"""User lookup endpoints used by the mention picker and "start a chat" UI."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from chatcore.auth.dependencies import current_user
from chatcore.chat.hub import ChatHub, get_hub
from chatcore.chat.permissions import RoomAction, require

from .schemas import UserRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/search")
async def search_users(
    query: str = Query("", description="Username or display-name fragment"),
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    """Prefix-then-substring search over the directory.

    Returns:
        JSON ``{"users": [...]}`` with live ``isOnline`` flags.
    """
    users = hub.mentions.search(query)
    return JSONResponse({
        "users": [hub.presenter.presence(u).model_dump(mode="json") for u in users]
    })


@router.get("/mentions")
async def mention_suggestions(
    prefix: Optional[str] = Query(None, description="Text typed after '@'"),
    roomId: Optional[str] = Query(None, description="Restrict to this room's members"),
    text: Optional[str] = Query(None, description="Whole input; used with cursor instead of prefix"),
    cursor: Optional[int] = Query(None, ge=0, description="Caret position in text"),
    user: UserRecord = Depends(current_user),
    hub: ChatHub = Depends(get_hub),
) -> JSONResponse:
    """Ranked @mention suggestions.

    Either pass ``prefix`` directly or pass the raw ``text`` and ``cursor``
    and let the server find the active ``@token``. With ``roomId`` the
    caller must be a member and only members are suggested.

    Example:
        GET /users/mentions?prefix=bo&roomId=abc123
        GET /users/mentions?text=hey%20%40bo&cursor=7
    """
    if roomId is not None:
        require(hub.room_service.load(roomId), user.id, RoomAction.READ)

    if text is not None:
        users = hub.mentions.suggest_at_cursor(text, cursor, room_id=roomId)
    else:
        users = hub.mentions.suggest(prefix or "", room_id=roomId)
    return JSONResponse({"users": [u.summary().model_dump(mode="json") for u in users]})
