import logging
import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, WebSocket
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketDisconnect

from .. import repo
from ..auth.deps import require_active_user, resolve_active_user_from_token
from ..config import CHAT_PAGE_SIZE, MESSAGE_MAX_LENGTH, RL_MESSAGE_LIMIT, RL_WINDOW_SECONDS
from ..database import SessionLocal
from ..deps import parse_uuid
from ..http_helpers import store_uploaded_photo
from ..schemas import SendMessageRequest
from ..services import chat, moderation, notifications
from ..services.events import log_user_activity
from ..services.rate_limit import user_rate_limit_dependency
from ..services.realtime import hub, room_channel

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()

RL_MESSAGE = user_rate_limit_dependency("chat_message", RL_MESSAGE_LIMIT, RL_WINDOW_SECONDS)

WS_POLICY_VIOLATION = 4403
WS_UNAUTHORIZED = 4401


def _participant_room(db, room_id: str, user_id: str) -> tuple[dict[str, Any], str]:
    room = chat.get_room(db, room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Chat room not found")
    partner_id = chat.room_partner_id(room, user_id)
    if partner_id is None:
        raise HTTPException(status_code=403, detail="Forbidden")
    return room, partner_id


def _deliver_message(
    *,
    room_id: str,
    sender: dict[str, Any],
    content: str,
    message_type: str,
) -> dict[str, Any]:
    sender_id = str(sender["id"])
    with SessionLocal() as db:
        room, partner_id = _participant_room(db, room_id, sender_id)
        if not room["is_active"] or not room["match_active"]:
            raise HTTPException(status_code=400, detail="Chat room is no longer active")
        if moderation.is_blocked(db, sender_id, partner_id):
            raise HTTPException(status_code=403, detail="Cannot message this user")
        try:
            message = chat.send_message(db, room_id=room_id, sender_id=sender_id, content=content, message_type=message_type)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        log_user_activity(db, user_id=sender_id, activity_type="message", metadata={"room_id": room_id})
        repo.touch_last_active(db, sender_id)
        notifications.notify_new_message(db, partner_id, sender.get("full_name"), content, message_type, room_id=room_id)
        db.commit()

    hub.publish(room_channel(room_id), {"type": "message", "message": message})
    return message


@scaffold_router.get("/health")
def chat_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "chat"}


@router.get("/chat/rooms")
def list_chat_rooms(current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        rooms = chat.list_rooms(db, str(current_user["id"]))
    return {"rooms": rooms}


@router.get("/chat/rooms/{room_id}/messages")
def get_chat_messages(
    room_id: str,
    limit: int = Query(CHAT_PAGE_SIZE, ge=1, le=200),
    before: datetime | None = Query(None),
    current_user: dict[str, Any] = Depends(require_active_user),
) -> dict[str, Any]:
    rid = parse_uuid(room_id, "room_id")
    with SessionLocal() as db:
        _participant_room(db, rid, str(current_user["id"]))
        messages = chat.get_room_messages(db, rid, limit=limit, before=before)
    return {"messages": messages}


@router.post("/chat/rooms/{room_id}/messages", status_code=201)
def send_chat_message(
    room_id: str,
    payload: SendMessageRequest,
    current_user: dict[str, Any] = Depends(require_active_user),
    _: None = RL_MESSAGE,
) -> dict[str, Any]:
    rid = parse_uuid(room_id, "room_id")
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    if len(content) > MESSAGE_MAX_LENGTH:
        raise HTTPException(status_code=400, detail=f"Message must be {MESSAGE_MAX_LENGTH} characters or fewer")
    message = _deliver_message(room_id=rid, sender=current_user, content=content, message_type=payload.message_type)
    return {"message": message}


@router.post("/chat/rooms/{room_id}/read")
def mark_chat_read(room_id: str, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    rid = parse_uuid(room_id, "room_id")
    user_id = str(current_user["id"])
    with SessionLocal() as db:
        _participant_room(db, rid, user_id)
        updated = chat.mark_room_read(db, rid, user_id)
        db.commit()
    if updated:
        hub.publish(room_channel(rid), {"type": "read", "user_id": user_id}, exclude_user_id=user_id)
    return {"ok": True, "updated": updated}


@router.get("/chat/unread-count")
def chat_unread_count(current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, int]:
    with SessionLocal() as db:
        return {"count": chat.unread_count(db, str(current_user["id"]))}


@router.post("/chat/rooms/{room_id}/images", status_code=201)
async def send_chat_image(
    room_id: str,
    request: Request,
    image: UploadFile = File(...),
    current_user: dict[str, Any] = Depends(require_active_user),
) -> dict[str, Any]:
    rid = parse_uuid(room_id, "room_id")
    stored = await store_uploaded_photo(image, str(current_user["id"]), request)
    message = await run_in_threadpool(
        _deliver_message,
        room_id=rid,
        sender=current_user,
        content=stored.url,
        message_type="image",
    )
    return {"message": message}


def _authorize_socket(token: str, room_id: str) -> str:
    user = resolve_active_user_from_token(token, str(uuid.uuid4()), "websocket")
    with SessionLocal() as db:
        room, partner_id = _participant_room(db, room_id, str(user["id"]))
        if not room["is_active"] or moderation.is_blocked(db, str(user["id"]), partner_id):
            raise HTTPException(status_code=403, detail="Forbidden")
    return str(user["id"])


@router.websocket("/chat/ws/{room_id}")
async def chat_socket(websocket: WebSocket, room_id: str, token: str = Query("")) -> None:
    try:
        rid = parse_uuid(room_id, "room_id")
        user_id = await run_in_threadpool(_authorize_socket, token, rid)
    except HTTPException as exc:
        code = WS_UNAUTHORIZED if exc.status_code == 401 else WS_POLICY_VIOLATION
        await websocket.close(code=code)
        return

    channel = room_channel(rid)
    socket_id = await hub.connect(websocket, channel, user_id)
    try:
        while True:
            try:
                incoming = await websocket.receive_json()
            except ValueError:
                continue
            if isinstance(incoming, dict) and incoming.get("type") == "typing":
                await hub.broadcast(channel, {"type": "typing", "user_id": user_id}, exclude_user_id=user_id)
    except WebSocketDisconnect:
        logger.info(f"[chat_ws] disconnect room_id={rid} user_id={user_id}")
    finally:
        await hub.disconnect(channel, socket_id)
