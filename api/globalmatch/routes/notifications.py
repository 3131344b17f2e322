from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth.admin_deps import get_current_admin
from ..auth.deps import get_current_user
from ..database import SessionLocal
from ..deps import page_params, parse_uuid
from ..schemas import AdminPushRequest, DeviceTokenRequest, NotificationSettingsUpdate
from ..services import notifications

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def notifications_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "notifications"}


@router.get("/notifications")
def get_notifications(
    page: int = Query(1),
    limit: int = Query(20),
    unread_only: bool = Query(False),
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    size, offset = page_params(page, limit)
    user_id = str(current_user["id"])
    with SessionLocal() as db:
        items = notifications.list_notifications(db, user_id, limit=size, offset=offset, unread_only=unread_only)
        unread = notifications.unread_count(db, user_id)
    return {"notifications": items, "unread_count": unread, "page": page, "limit": size}


@router.get("/notifications/unread-count")
def get_unread_count(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, int]:
    with SessionLocal() as db:
        return {"count": notifications.unread_count(db, str(current_user["id"]))}


@router.post("/notifications/read-all")
def read_all(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        updated = notifications.mark_all_read(db, str(current_user["id"]))
        db.commit()
    return {"ok": True, "updated": updated}


@router.post("/notifications/{notification_id}/read")
def read_one(notification_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, bool]:
    nid = parse_uuid(notification_id, "notification_id")
    with SessionLocal() as db:
        if not notifications.mark_read(db, str(current_user["id"]), nid):
            raise HTTPException(status_code=404, detail="Notification not found")
        db.commit()
    return {"ok": True}


@router.delete("/notifications/{notification_id}")
def delete_one(notification_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, bool]:
    nid = parse_uuid(notification_id, "notification_id")
    with SessionLocal() as db:
        if not notifications.delete_notification(db, str(current_user["id"]), nid):
            raise HTTPException(status_code=404, detail="Notification not found")
        db.commit()
    return {"ok": True}


@router.post("/notifications/devices", status_code=201)
def register_device(payload: DeviceTokenRequest, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, bool]:
    with SessionLocal() as db:
        try:
            notifications.register_device_token(db, str(current_user["id"]), payload.token.strip(), payload.device_type)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        db.commit()
    return {"ok": True}


@router.delete("/notifications/devices/{token}")
def unregister_device(token: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, bool]:
    with SessionLocal() as db:
        if not notifications.remove_device_token(db, str(current_user["id"]), token):
            raise HTTPException(status_code=404, detail="Device token not found")
        db.commit()
    return {"ok": True}


@router.get("/notifications/settings")
def get_settings(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        return {"settings": notifications.get_settings(db, str(current_user["id"]))}


@router.put("/notifications/settings")
def put_settings(payload: NotificationSettingsUpdate, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        settings = notifications.update_settings(db, str(current_user["id"]), payload.model_dump(exclude_none=True))
        db.commit()
    return {"settings": settings}


@router.post("/notifications/send")
def admin_send_push(payload: AdminPushRequest, admin: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    user_id = parse_uuid(payload.user_id, "user_id")
    with SessionLocal() as db:
        result = notifications.send_push(db, user_id, title=payload.title, body=payload.body, data=payload.data)
        db.commit()
    return {
        "success_count": result.success_count,
        "error_count": result.error_count,
        "skipped": result.skipped,
    }
