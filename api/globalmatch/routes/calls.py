import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketDisconnect

from ..auth.deps import require_active_user, resolve_active_user_from_token
from ..auth.security import create_call_token
from ..database import SessionLocal
from ..deps import parse_uuid
from ..schemas import CreateCallRequest, RespondCallRequest
from ..services import calls, matching, moderation, notifications
from ..services.realtime import hub, user_channel

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()


def _load_call(db, call_id: str) -> dict[str, Any]:
    call = calls.get_invitation(db, parse_uuid(call_id, "call_id"))
    if not call:
        raise HTTPException(status_code=404, detail="Call not found")
    return call


def _other_party(call: dict[str, Any], user_id: str) -> str:
    return call["receiver_id"] if call["caller_id"] == user_id else call["caller_id"]


@scaffold_router.get("/health")
def calls_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "calls"}


@router.post("/calls", status_code=201)
def create_call(payload: CreateCallRequest, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    receiver_id = parse_uuid(payload.receiver_id, "receiver_id")
    caller_id = str(current_user["id"])
    with SessionLocal() as db:
        if moderation.is_blocked(db, caller_id, receiver_id):
            raise HTTPException(status_code=403, detail="Cannot call this user")
        if not matching.is_active_mutual_pair(db, caller_id, receiver_id):
            raise HTTPException(status_code=403, detail="You can only call your matches")
        try:
            call = calls.create_invitation(
                db,
                caller_id=caller_id,
                caller_name=current_user.get("full_name"),
                receiver_id=receiver_id,
                call_type=payload.call_type,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        notifications.create_notification(
            db,
            user_id=receiver_id,
            notification_type="system",
            title="Incoming call",
            body=f"{current_user.get('full_name') or 'Someone'} is calling you",
            data={"kind": "call_invitation", "call_id": call["id"], "room_id": call["room_id"], "call_type": call["call_type"]},
        )
        db.commit()

    hub.publish(user_channel(receiver_id), {"type": "call_invitation", "call": call})
    return {"call": call}


@router.post("/calls/{call_id}/respond")
def respond_call(call_id: str, payload: RespondCallRequest, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    with SessionLocal() as db:
        call = _load_call(db, call_id)
        try:
            updated = calls.respond(db, call, user_id, payload.accept)
        except PermissionError as exc:
            raise HTTPException(status_code=403, detail=str(exc))
        except calls.CallStateError as exc:
            db.commit()
            raise HTTPException(status_code=409, detail=str(exc))
        db.commit()

    hub.publish(user_channel(updated["caller_id"]), {"type": "call_response", "call": updated})
    return {"call": updated}


@router.post("/calls/{call_id}/token")
def call_token(call_id: str, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    with SessionLocal() as db:
        call = _load_call(db, call_id)
    if user_id not in (call["caller_id"], call["receiver_id"]):
        raise HTTPException(status_code=403, detail="Not a participant of this call")
    if call["status"] != "accepted":
        raise HTTPException(status_code=409, detail=f"Call is {call['status']}")
    token, expires_at = create_call_token(room_id=call["room_id"], user_id=user_id, call_type=call["call_type"])
    return {"token": token, "room_id": call["room_id"], "call_type": call["call_type"], "expires_at": expires_at}


@router.post("/calls/{call_id}/end")
def end_call(call_id: str, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    with SessionLocal() as db:
        call = _load_call(db, call_id)
        try:
            updated = calls.end_call(db, call, user_id)
        except PermissionError as exc:
            raise HTTPException(status_code=403, detail=str(exc))
        except calls.CallStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        db.commit()

    hub.publish(user_channel(_other_party(updated, user_id)), {"type": "call_ended", "call": updated})
    return {"call": updated}


@router.get("/calls/history")
def call_history(
    limit: int = Query(50, ge=1, le=200),
    current_user: dict[str, Any] = Depends(require_active_user),
) -> dict[str, Any]:
    with SessionLocal() as db:
        return {"calls": calls.list_history(db, str(current_user["id"]), limit=limit)}


@router.websocket("/calls/ws")
async def call_socket(websocket: WebSocket, token: str = Query("")) -> None:
    try:
        user = await run_in_threadpool(resolve_active_user_from_token, token, str(uuid.uuid4()), "websocket")
    except HTTPException as exc:
        await websocket.close(code=4401 if exc.status_code == 401 else 4403)
        return

    user_id = str(user["id"])
    channel = user_channel(user_id)
    socket_id = await hub.connect(websocket, channel, user_id)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"[calls_ws] disconnect user_id={user_id}")
    finally:
        await hub.disconnect(channel, socket_id)
