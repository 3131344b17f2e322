from __future__ import annotations

import logging
from typing import Any

from fastapi import Cookie, Header, HTTPException

from globalmatch import config
from globalmatch.auth.deps import SESSION_COOKIE_NAME, get_current_user

logger = logging.getLogger(__name__)


def is_admin_email(email: str | None) -> bool:
    if not email:
        return False
    return email.strip().lower() in config.ADMIN_EMAILS


def get_current_admin(
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_admin_token: str | None = Header(default=None, alias="X-Admin-Token"),
) -> dict[str, Any]:
    """Admins are regular accounts listed in ADMIN_EMAILS; X-Admin-Token is a dev fallback."""
    if session_token or authorization:
        user = get_current_user(session_token=session_token, authorization=authorization)
        if not is_admin_email(user.get("email")):
            logger.warning(f"[admin] forbidden user_id={user.get('id')}")
            raise HTTPException(status_code=403, detail="Admin access required")
        return {"id": user["id"], "email": user["email"], "auth_mode": "session"}

    runtime_admin_token = str(config.ADMIN_TOKEN or "")
    if runtime_admin_token and x_admin_token and x_admin_token == runtime_admin_token:
        return {"id": None, "email": "admin-token", "auth_mode": "token"}

    raise HTTPException(status_code=401, detail="Admin authentication required")


def admin_actor(admin: dict[str, Any]) -> str:
    return str(admin.get("id") or admin.get("email") or "admin")
