import logging
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile

from .. import repo as auth_repo
from ..auth.deps import get_current_user, require_active_user
from ..config import MAX_PROFILE_PHOTOS
from ..database import SessionLocal
from ..deps import parse_uuid
from ..http_helpers import sanitize_profile_payload, store_uploaded_photo
from ..services import moderation, notifications, photo_verification
from ..services.events import log_product_event, log_user_activity
from ..services.matching import calculate_age

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()


def _with_age(profile: dict[str, Any]) -> dict[str, Any]:
    return {**profile, "age": calculate_age(profile.get("birth_date"))}


@scaffold_router.get("/health")
def profile_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "profile"}


@router.get("/profiles/me")
def get_my_profile(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    user_id = str(current_user["id"])
    with SessionLocal() as db:
        profile = auth_repo.get_profile(db, user_id)
        if not profile:
            raise HTTPException(status_code=404, detail="Profile not found")
        photos = auth_repo.list_user_photos(db, user_id)
    return {"profile": _with_age(profile), "photos": photos}


@router.put("/profiles/me")
def update_my_profile(payload: dict[str, Any], current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    changes = sanitize_profile_payload(payload)
    if not changes:
        raise HTTPException(status_code=400, detail="No editable fields provided")
    updated = auth_repo.update_profile(str(current_user["id"]), changes)
    if not updated:
        raise HTTPException(status_code=404, detail="Profile not found")
    with SessionLocal() as db:
        log_product_event(
            db,
            event_name="profile_updated",
            user_id=str(current_user["id"]),
            properties={"fields": sorted(changes.keys())},
        )
        db.commit()
    return {"profile": _with_age(updated)}


@router.get("/profiles/{user_id}")
def get_public_profile(user_id: str, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    target_id = parse_uuid(user_id, "user_id")
    viewer_id = str(current_user["id"])
    with SessionLocal() as db:
        if target_id != viewer_id and moderation.is_blocked(db, viewer_id, target_id):
            raise HTTPException(status_code=404, detail="Profile not found")
        profile = auth_repo.get_profile(db, target_id)
        if not profile or profile.get("account_status") == "banned":
            raise HTTPException(status_code=404, detail="Profile not found")
        photos = auth_repo.list_user_photos(db, target_id)

        if target_id != viewer_id:
            log_user_activity(db, user_id=viewer_id, activity_type="profile_view", metadata={"viewed_user_id": target_id})
            notifications.notify_profile_view(db, target_id, current_user.get("full_name"), viewer_id=viewer_id)
            db.commit()

    return {"profile": _with_age(auth_repo.public_profile(profile)), "photos": photos}


@router.post("/profiles/me/photos", status_code=201)
async def upload_profile_photo(
    request: Request,
    photo: UploadFile = File(...),
    current_user: dict[str, Any] = Depends(require_active_user),
) -> dict[str, Any]:
    user_id = str(current_user["id"])
    with SessionLocal() as db:
        if auth_repo.count_user_photos(db, user_id) >= MAX_PROFILE_PHOTOS:
            raise HTTPException(
                status_code=400,
                detail=f"You already have {MAX_PROFILE_PHOTOS} photos. Remove one before uploading a new photo",
            )

    stored = await store_uploaded_photo(photo, user_id, request)

    with SessionLocal() as db:
        is_duplicate = auth_repo.photo_hash_used_by_others(db, user_id, stored.content_hash)
        result = photo_verification.verify_photo(stored.data, is_duplicate=is_duplicate)
        created = auth_repo.add_user_photo(db, user_id, stored.url, stored.content_hash)
        auth_repo.save_photo_verification(
            db,
            user_id=user_id,
            photo_id=str(created["id"]),
            photo_url=stored.url,
            result=result.as_dict(),
        )
        log_product_event(
            db,
            event_name="photo_uploaded",
            user_id=user_id,
            properties={"approved": result.approved, "score": result.score, "is_duplicate": is_duplicate},
        )
        db.commit()

    logger.info(f"[photos] uploaded user_id={user_id} approved={result.approved} score={result.score}")
    return {
        "photo": created,
        "verification": {"approved": result.approved, "score": result.score, "reasons": result.reasons},
    }


@router.delete("/profiles/me/photos/{photo_id}")
def delete_profile_photo(photo_id: str, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, bool]:
    pid = parse_uuid(photo_id, "photo_id")
    with SessionLocal() as db:
        if not auth_repo.delete_user_photo(db, str(current_user["id"]), pid):
            raise HTTPException(status_code=404, detail="Photo not found")
        db.commit()
    return {"ok": True}


@router.post("/profiles/me/photos/{photo_id}/primary")
def set_primary_profile_photo(photo_id: str, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    pid = parse_uuid(photo_id, "photo_id")
    user_id = str(current_user["id"])
    with SessionLocal() as db:
        photo = auth_repo.set_primary_photo(db, user_id, pid)
        if not photo:
            raise HTTPException(status_code=404, detail="Photo not found")
        db.commit()
        photos = auth_repo.list_user_photos(db, user_id)
    return {"avatar_url": photo["photo_url"], "photos": photos}
