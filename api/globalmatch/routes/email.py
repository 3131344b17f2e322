import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from ..auth.deps import get_current_user
from ..config import APP_URL
from ..database import SessionLocal
from ..schemas import EmailPreferencesUpdate, UnsubscribeRequest
from ..services import mailer

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def email_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "email"}


@router.get("/email/preferences")
def get_email_preferences(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        return {"preferences": mailer.get_preferences(db, str(current_user["id"]))}


@router.put("/email/preferences")
def put_email_preferences(payload: EmailPreferencesUpdate, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        prefs = mailer.update_preferences(db, str(current_user["id"]), payload.model_dump(exclude_none=True))
        db.commit()
    return {"preferences": prefs}


@router.post("/email/unsubscribe")
def unsubscribe(payload: UnsubscribeRequest) -> dict[str, bool]:
    email = str(payload.email or "").strip()
    if not email:
        raise HTTPException(status_code=400, detail="email is required")
    with SessionLocal() as db:
        if not mailer.unsubscribe(db, email, payload.type):
            raise HTTPException(status_code=400, detail="No account for this email")
        db.commit()
    return {"success": True}


@router.get("/email/unsubscribe")
def unsubscribe_link(email: str = Query(""), type: str = Query("all")) -> RedirectResponse:
    success = False
    if email.strip():
        try:
            with SessionLocal() as db:
                success = mailer.unsubscribe(db, email, type)
                db.commit()
        except ValueError as exc:
            logger.info(f"[email] unsubscribe link rejected error={exc}")
    flag = "true" if success else "false"
    return RedirectResponse(url=f"{APP_URL}/unsubscribed?success={flag}", status_code=302)
