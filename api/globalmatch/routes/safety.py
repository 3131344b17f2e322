from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth.deps import get_current_user, require_active_user
from ..config import RL_REPORT_LIMIT, RL_WINDOW_SECONDS
from ..database import SessionLocal
from ..deps import page_params, parse_uuid
from ..schemas import BlockRequest
from ..services import moderation
from ..services.events import log_product_event
from ..services.rate_limit import user_rate_limit_dependency

router = APIRouter()
scaffold_router = APIRouter()

RL_REPORT = user_rate_limit_dependency("safety_report", RL_REPORT_LIMIT, RL_WINDOW_SECONDS)


@scaffold_router.get("/health")
def safety_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "safety"}


@router.post("/reports", status_code=201)
def submit_report(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user), _: None = RL_REPORT) -> dict[str, Any]:
    reporter_id = str(current_user["id"])
    with SessionLocal() as db:
        try:
            created = moderation.create_report(db, reporter_id, payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except LookupError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except FileExistsError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        log_product_event(
            db,
            event_name="report_submitted",
            user_id=reporter_id,
            properties={"report_id": created["report"]["id"], "report_type": created["report"]["report_type"]},
        )
        db.commit()
    return {"report": created["report"]}


@router.get("/reports/mine")
def my_reports(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        return {"reports": moderation.list_reports_by_reporter(db, str(current_user["id"]))}


@router.post("/blocks", status_code=201)
def create_block(payload: BlockRequest, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    blocked_id = parse_uuid(payload.blocked_user_id, "blocked_user_id")
    blocker_id = str(current_user["id"])
    with SessionLocal() as db:
        try:
            block = moderation.block_user(db, blocker_id, blocked_id, payload.reason)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except LookupError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except FileExistsError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        log_product_event(db, event_name="user_blocked", user_id=blocker_id, properties={"blocked_user_id": blocked_id})
        db.commit()
    return {"block": block}


@router.delete("/blocks/{blocked_user_id}")
def remove_block(blocked_user_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, bool]:
    blocked_id = parse_uuid(blocked_user_id, "blocked_user_id")
    with SessionLocal() as db:
        if not moderation.unblock_user(db, str(current_user["id"]), blocked_id):
            raise HTTPException(status_code=404, detail="Block not found")
        db.commit()
    return {"ok": True}


@router.get("/blocks")
def get_blocks(
    page: int = Query(1),
    limit: int = Query(20),
    current_user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    size, offset = page_params(page, limit)
    with SessionLocal() as db:
        result = moderation.list_blocks(db, str(current_user["id"]), limit=size, offset=offset)
    return {**result, "page": page, "limit": size}


@router.get("/blocks/{user_id}/status")
def block_status(user_id: str, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, bool]:
    other_id = parse_uuid(user_id, "user_id")
    with SessionLocal() as db:
        return {"is_blocked": moderation.is_blocked(db, str(current_user["id"]), other_id)}
