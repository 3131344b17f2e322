from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth.deps import get_current_user
from ..database import SessionLocal
from ..schemas import TrackActivityRequest
from ..services import analytics
from ..services.events import log_user_activity

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def analytics_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "analytics"}


@router.post("/analytics/track")
def track_activity(payload: TrackActivityRequest, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    activity_type = payload.activity_type.strip()
    with SessionLocal() as db:
        try:
            log_user_activity(db, user_id=str(current_user["id"]), activity_type=activity_type, metadata=payload.metadata)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        db.commit()
    return {"status": "ok", "activity_type": activity_type}


@router.get("/analytics/me")
def my_analytics(
    days: int = Query(30, ge=1, le=365),
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    with SessionLocal() as db:
        return analytics.user_analytics(db, str(current_user["id"]), days)
