import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from .. import repo as auth_repo
from ..auth.deps import require_active_user
from ..config import DISCOVER_DEFAULT_LIMIT, DISCOVER_MAX_LIMIT, RL_LIKE_LIMIT, RL_WINDOW_SECONDS
from ..database import SessionLocal
from ..deps import parse_uuid
from ..services import mailer, matching, moderation, notifications
from ..services.events import log_product_event, log_user_activity
from ..services.rate_limit import user_rate_limit_dependency

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()

RL_LIKE = user_rate_limit_dependency("match_like", RL_LIKE_LIMIT, RL_WINDOW_SECONDS)


@scaffold_router.get("/health")
def match_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "match"}


@router.get("/discover")
def discover(
    limit: int = Query(DISCOVER_DEFAULT_LIMIT, ge=1, le=DISCOVER_MAX_LIMIT),
    current_user: dict[str, Any] = Depends(require_active_user),
) -> dict[str, Any]:
    user_id = str(current_user["id"])
    with SessionLocal() as db:
        profiles = matching.get_recommendations(db, user_id, limit=limit)
        log_user_activity(db, user_id=user_id, activity_type="search", metadata={"results": len(profiles)})
        db.commit()
    return {"profiles": profiles, "count": len(profiles)}


@router.get("/matching/preferences")
def get_matching_preferences(current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        return {"preferences": matching.get_preferences(db, str(current_user["id"]))}


@router.put("/matching/preferences")
def put_matching_preferences(payload: dict[str, Any], current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    try:
        prefs = matching.validate_preferences(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    with SessionLocal() as db:
        saved = matching.upsert_preferences(db, str(current_user["id"]), prefs)
        db.commit()
    return {"preferences": saved}


@router.post("/matches/like/{target_id}")
def like(target_id: str, current_user: dict[str, Any] = Depends(require_active_user), _: None = RL_LIKE) -> dict[str, Any]:
    target = parse_uuid(target_id, "target_id")
    user_id = str(current_user["id"])
    if target == user_id:
        raise HTTPException(status_code=400, detail="Cannot like yourself")

    with SessionLocal() as db:
        if moderation.is_blocked(db, user_id, target):
            raise HTTPException(status_code=403, detail="Cannot interact with this user")
        partner = auth_repo.get_profile(db, target)
        if not partner or partner.get("account_status") == "banned":
            raise HTTPException(status_code=404, detail="User not found")

        result = matching.like_user(db, user_id, target)
        log_user_activity(db, user_id=user_id, activity_type="like", metadata={"target_user_id": target})

        if result.newly_mutual:
            me = auth_repo.get_profile(db, user_id) or {}
            notifications.notify_new_match(db, user_id, partner.get("full_name"), match_id=result.match_id, room_id=result.room_id)
            notifications.notify_new_match(db, target, me.get("full_name"), match_id=result.match_id, room_id=result.room_id)
            log_user_activity(db, user_id=user_id, activity_type="match", metadata={"match_id": result.match_id})
            log_user_activity(db, user_id=target, activity_type="match", metadata={"match_id": result.match_id})
            log_product_event(
                db,
                event_name="match_created",
                user_id=user_id,
                properties={"match_id": result.match_id, "partner_id": target},
            )
            mailer.send_match_email(db, str(partner.get("email") or ""), partner.get("full_name"), me.get("full_name"))
            logger.info(f"[matches] mutual match_id={result.match_id} users={user_id},{target}")
        elif not result.is_match:
            notifications.notify_new_like(db, target, liker_id=user_id)
        db.commit()

    return {"is_match": result.is_match, "match_id": result.match_id, "room_id": result.room_id}


@router.post("/matches/pass/{target_id}")
def pass_profile(target_id: str, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    target = parse_uuid(target_id, "target_id")
    user_id = str(current_user["id"])
    with SessionLocal() as db:
        try:
            match_id = matching.pass_user(db, user_id, target)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        log_user_activity(db, user_id=user_id, activity_type="pass", metadata={"target_user_id": target})
        db.commit()
    return {"ok": True, "match_id": match_id}


@router.get("/matches")
def get_matches(current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        items = matching.list_matches(db, str(current_user["id"]))
    return {"matches": items, "count": len(items)}


@router.delete("/matches/{match_id}")
def unmatch(match_id: str, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, bool]:
    mid = parse_uuid(match_id, "match_id")
    with SessionLocal() as db:
        try:
            matching.unmatch(db, str(current_user["id"]), mid)
        except LookupError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except PermissionError as exc:
            raise HTTPException(status_code=403, detail=str(exc))
        log_product_event(db, event_name="match_unmatched", user_id=str(current_user["id"]), properties={"match_id": mid})
        db.commit()
    return {"ok": True}
