"""
Authentication dependencies for FastAPI.

Supports two auth modes:
1. Cookie-based session (primary for web): httpOnly cookie contains access token
2. Bearer token (mobile and API clients): Authorization header with Bearer token

Account status (suspension, ban) is read from the profile on every request so
moderation actions take effect without waiting for token expiry.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import Cookie, Depends, Header, HTTPException
from pydantic import BaseModel

from globalmatch import repo
from globalmatch.auth.security import decode_access_token
from globalmatch.config import DEV_MODE

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "gm_session"


class AuthErrorDetail(BaseModel):
    message: str = "unauthorized"
    reason: str
    trace_id: str


class AuthError(Exception):
    """Raised when authentication fails with detailed reason."""

    def __init__(self, reason: str, detail: str = "unauthorized"):
        self.reason = reason
        self.detail = detail
        self.trace_id = str(uuid.uuid4())
        super().__init__(detail)


def _error_detail(message: str, reason: str, trace_id: str) -> dict[str, Any]:
    if DEV_MODE:
        return AuthErrorDetail(message=message, reason=reason, trace_id=trace_id).model_dump()
    return {"message": message, "trace_id": trace_id}


def _log_auth_failure(
    reason: str,
    trace_id: str,
    token_prefix: str | None = None,
    auth_source: str | None = None,
    payload: dict[str, Any] | None = None,
    user_id: str | None = None,
) -> None:
    log_data = {
        "trace_id": trace_id,
        "reason": reason,
        "auth_source": auth_source,
        "token_prefix": token_prefix,
        "token_user_id": payload.get("sub") if payload else None,
        "token_email": payload.get("email") if payload else None,
        "resolved_user_id": user_id,
    }
    logger.warning(f"[AUTH_FAILURE] {log_data}")


def _extract_bearer(authorization: str | None) -> str:
    if not authorization:
        raise AuthError(reason="missing_token", detail="Missing Authorization header")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthError(reason="malformed_token", detail="Invalid Authorization header")
    return parts[1].strip()


def resolve_user_from_token(token: str, trace_id: str, auth_source: str) -> dict[str, Any]:
    """Validate an access token and return the current user dict."""
    token_prefix = token[:8] + "..." if len(token) > 8 else token

    try:
        payload = decode_access_token(token)
    except HTTPException as e:
        reason = "token_expired" if "expired" in str(e.detail).lower() else "signature_invalid"
        _log_auth_failure(reason, trace_id, token_prefix, auth_source)
        raise HTTPException(status_code=401, detail=_error_detail("unauthorized", reason, trace_id))

    user_id = str(payload.get("sub", ""))
    if not user_id or payload.get("scope") not in (None, "user"):
        _log_auth_failure("token_missing_subject", trace_id, token_prefix, auth_source, payload)
        raise HTTPException(status_code=401, detail=_error_detail("unauthorized", "token_missing_subject", trace_id))

    user = repo.get_user_by_id(user_id)
    if not user:
        _log_auth_failure("token_user_not_found", trace_id, token_prefix, auth_source, payload, user_id)
        raise HTTPException(status_code=401, detail=_error_detail("unauthorized", "token_user_not_found", trace_id))

    if user.get("disabled_at"):
        _log_auth_failure("account_disabled", trace_id, token_prefix, auth_source, payload, user_id)
        raise HTTPException(status_code=403, detail=_error_detail("Account disabled", "account_disabled", trace_id))

    logger.debug(f"[auth] user_id={user_id} via {auth_source}")

    return {
        "id": str(user["id"]),
        "email": user["email"],
        "full_name": user.get("full_name"),
        "account_status": user.get("account_status") or "active",
        "suspension_until": user.get("suspension_until"),
        "is_premium": bool(user.get("is_premium")),
    }


def get_current_user(
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    Get current user from cookie session or bearer token.

    Priority:
    1. Cookie session token (httpOnly cookie set by login/register)
    2. Bearer token in Authorization header
    """
    trace_id = str(uuid.uuid4())

    if session_token:
        return resolve_user_from_token(session_token, trace_id, "cookie")

    if authorization:
        try:
            token = _extract_bearer(authorization)
        except AuthError as e:
            _log_auth_failure(e.reason, e.trace_id, auth_source="bearer")
            raise HTTPException(status_code=401, detail=_error_detail(e.detail, e.reason, e.trace_id))
        return resolve_user_from_token(token, trace_id, "bearer")

    _log_auth_failure("missing_token", trace_id, auth_source="none")
    raise HTTPException(status_code=401, detail=_error_detail("Authentication required", "missing_token", trace_id))


def account_block_reason(user: dict[str, Any], now: datetime | None = None) -> str | None:
    """Return why the account may not act right now, or None when it may."""
    status = str(user.get("account_status") or "active")
    if status == "banned":
        return "banned"
    if status == "suspended":
        until = user.get("suspension_until")
        now = now or datetime.now(timezone.utc)
        if until is None or until > now:
            return "suspended"
    return None


def require_active_user(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    """Reject suspended and banned accounts. Suspensions lapse at suspension_until."""
    reason = account_block_reason(current_user)
    if reason == "banned":
        raise HTTPException(status_code=403, detail="Account banned")
    if reason == "suspended":
        until = current_user.get("suspension_until")
        suffix = f" until {until.isoformat()}" if isinstance(until, datetime) else ""
        raise HTTPException(status_code=403, detail=f"Account suspended{suffix}")
    return current_user


def resolve_active_user_from_token(token: str, trace_id: str, auth_source: str) -> dict[str, Any]:
    """Token auth for websockets; suspended and banned accounts get 403 like REST routes."""
    user = resolve_user_from_token(token, trace_id, auth_source)
    reason = account_block_reason(user)
    if reason:
        _log_auth_failure(f"account_{reason}", trace_id, auth_source=auth_source, user_id=user["id"])
        raise HTTPException(status_code=403, detail=f"Account {reason}")
    return user
