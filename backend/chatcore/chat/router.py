"""WebSocket push transport.

    WebSocket /ws?token=<jwt>   (or ``Authorization: Bearer <jwt>``)

Every frame in both directions is ``{"type": <event>, "data": <payload>}``.

Protocol Flow:
    1. Client connects with a bearer credential.
       -> missing/invalid: close 1008 with the reason, nothing else is read
       -> otherwise: {type: "connected", data: {userId, onlineUsers}}
          and every other client receives userOnline (first session only)
    2. Client sends events:
       joinRoom / leaveRoom      data: roomId
       sendMessage               data: {content, receiver? | chatRoom?, messageType?, mentions?}
       typing                    data: {typing, receiver? | chatRoom?}
       markDelivered / markSeen  data: messageId
    3. On disconnect the session leaves every room; userOffline is
       broadcast unless a newer session already replaced this one. A
       superseded session stops reading and discards any frames it still
       had queued.

Errors never close the connection:
    sendMessage failures  -> messageError {error}
    joinRoom failures     -> roomError {roomId, error}
    typing failures       -> dropped
    malformed frames      -> error {error}
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from chatcore.errors import ChatError

from .hub import ChatHub
from .schemas import MessageDraft, TypingSignal

logger = logging.getLogger(__name__)

router = APIRouter()


def _bearer_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value.strip()
    return None


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Push session of one authenticated user."""
    hub = ChatHub.get_instance()
    conn = await hub.connect(websocket, _bearer_token(websocket))
    if conn is None:
        return

    try:
        # ``closed`` is set when a newer session supersedes this one. Frames
        # still queued from the old client are discarded, and the socket is
        # never read again after the server-side close.
        while not conn.closed:
            raw = await websocket.receive_text()
            if conn.closed:
                logger.info(f"[WS] Dropping frame from superseded {conn!r}")
                break
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await conn.send("error", {"error": "Invalid JSON"})
                continue
            if not isinstance(frame, dict) or not isinstance(frame.get("type"), str):
                await conn.send("error", {"error": "Invalid frame: type is required"})
                continue

            event = frame["type"]
            data = frame.get("data")
            logger.debug("[WS] %s received: type=%s", conn.user_id, event)

            # --- joinRoom / leaveRoom ---
            if event == "joinRoom":
                room_id = data if isinstance(data, str) else None
                if not room_id:
                    await conn.send("roomError", {"roomId": None, "error": "roomId required"})
                    continue
                try:
                    await hub.join_room(conn, room_id)
                except ChatError as e:
                    logger.warning(f"[WS] {conn.user_id} denied joinRoom {room_id}: {e.message}")
                    await conn.send("roomError", {"roomId": room_id, "error": e.message})
                continue

            if event == "leaveRoom":
                if isinstance(data, str) and data:
                    hub.leave_room(conn, data)
                continue

            # --- sendMessage ---
            if event == "sendMessage":
                try:
                    draft = MessageDraft.model_validate(data or {})
                    await hub.ingest.send(conn.user_id, draft, origin=conn)
                except PydanticValidationError:
                    await conn.send("messageError", {"error": "Invalid message format"})
                except ChatError as e:
                    logger.info(f"[WS] sendMessage from {conn.user_id} rejected: {e.message}")
                    await conn.send("messageError", {"error": e.message})
                continue

            # --- typing ---
            if event == "typing":
                try:
                    signal = TypingSignal.model_validate(data or {})
                except PydanticValidationError:
                    continue
                await hub.typing.set_typing(conn.user_id, signal, origin=conn)
                continue

            # --- markDelivered / markSeen ---
            if event in ("markDelivered", "markSeen"):
                if not isinstance(data, str) or not data:
                    await conn.send("error", {"error": "messageId required"})
                    continue
                try:
                    if event == "markDelivered":
                        await hub.receipts.mark_delivered(conn.user_id, data)
                    else:
                        await hub.receipts.mark_seen(conn.user_id, data)
                except ChatError as e:
                    await conn.send("error", {"error": e.message})
                continue

            await conn.send("error", {"error": f"Unknown event: {event}"})

    except WebSocketDisconnect:
        logger.info(f"[WS] {conn!r} disconnected")
    finally:
        # Also reached by sessions the hub closed as superseded.
        await hub.disconnect(conn)
