import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from .. import repo as auth_repo
from ..auth.deps import SESSION_COOKIE_NAME, get_current_user
from ..auth.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    hash_refresh_token,
    verify_password,
)
from ..config import (
    ACCESS_TOKEN_TTL_MINUTES,
    REFRESH_TOKEN_TTL_DAYS,
    RL_AUTH_LOGIN_LIMIT,
    RL_AUTH_REFRESH_LIMIT,
    RL_AUTH_REGISTER_LIMIT,
    RL_WINDOW_SECONDS,
)
from ..database import SessionLocal
from ..http_helpers import normalize_email, validate_registration_input
from ..services import mailer
from ..services.events import log_product_event, log_user_activity
from ..services.rate_limit import rate_limit_dependency

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()

RL_AUTH_REGISTER = rate_limit_dependency("auth_register", RL_AUTH_REGISTER_LIMIT, RL_WINDOW_SECONDS)
RL_AUTH_LOGIN = rate_limit_dependency("auth_login", RL_AUTH_LOGIN_LIMIT, RL_WINDOW_SECONDS)
RL_AUTH_REFRESH = rate_limit_dependency("auth_refresh", RL_AUTH_REFRESH_LIMIT, RL_WINDOW_SECONDS)


def _issue_tokens(user: dict[str, Any]) -> dict[str, Any]:
    """Issue access and refresh tokens for a user."""
    user_id = str(user["id"])
    access_token = create_access_token(user_id=user_id, email=str(user["email"]), ttl_minutes=ACCESS_TOKEN_TTL_MINUTES)
    refresh_token = create_refresh_token()
    expires_at = datetime.now(timezone.utc) + timedelta(days=REFRESH_TOKEN_TTL_DAYS)
    auth_repo.create_refresh_token_row(user_id, hash_refresh_token(refresh_token), expires_at)
    logger.info(f"[_issue_tokens] tokens issued user_id={user_id}")
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": ACCESS_TOKEN_TTL_MINUTES * 60,
    }


def _is_bearer_mode(request: Request) -> bool:
    """Check if client requested bearer token mode (for mobile clients)."""
    auth_mode = str(request.headers.get("X-Auth-Mode") or "").strip().lower()
    return auth_mode == "bearer"


def _set_session_cookie(response: Response, access_token: str) -> None:
    """Set the httpOnly session cookie with the access token."""
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=access_token,
        httponly=True,
        secure=False,  # Set to True in production with HTTPS
        samesite="lax",
        path="/",
        max_age=ACCESS_TOKEN_TTL_MINUTES * 60,
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")


def _session_response(user: dict[str, Any], request: Request, response: Response) -> dict[str, Any]:
    tokens = _issue_tokens(user)
    _set_session_cookie(response, tokens["access_token"])
    if _is_bearer_mode(request):
        return {**tokens, "user": {"id": str(user["id"]), "email": str(user["email"])}}
    return {
        "id": str(user["id"]),
        "email": str(user["email"]),
        "full_name": user.get("full_name"),
        "refresh_token": tokens["refresh_token"],
    }


@scaffold_router.get("/health")
def auth_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "auth"}


@router.post("/register", status_code=201)
def auth_register(payload: dict[str, Any], request: Request, response: Response, _: None = RL_AUTH_REGISTER) -> dict[str, Any]:
    data = validate_registration_input(payload)
    if auth_repo.get_user_by_email(data["email"]):
        raise HTTPException(status_code=409, detail="Email already registered")

    created = auth_repo.create_account(
        email=data["email"],
        password_hash=hash_password(data["password"]),
        full_name=data["full_name"],
        gender=data["gender"],
        country=data["country"],
        birth_date=data["birth_date"],
    )
    if not created:
        raise HTTPException(status_code=409, detail="Email already registered")

    with SessionLocal() as db:
        log_product_event(
            db,
            event_name="auth_registered",
            user_id=str(created["id"]),
            properties={"country": data["country"], "gender": data["gender"]},
        )
        mailer.send_welcome_email(db, data["email"], data["full_name"])
        db.commit()

    return _session_response(created, request, response)


@router.post("/login")
def auth_login(payload: dict[str, Any], request: Request, response: Response, _: None = RL_AUTH_LOGIN) -> dict[str, Any]:
    """Login endpoint that sets httpOnly session cookie."""
    email = normalize_email(str(payload.get("email") or ""))
    password = str(payload.get("password") or "")
    if not email or not password:
        raise HTTPException(status_code=400, detail="email and password required")

    user = auth_repo.get_user_by_email(email)
    if not user or not verify_password(password, str(user["password_hash"])):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if user.get("disabled_at"):
        raise HTTPException(status_code=403, detail="Account disabled")

    auth_repo.update_last_login(str(user["id"]))
    with SessionLocal() as db:
        log_product_event(db, event_name="auth_logged_in", user_id=str(user["id"]))
        log_user_activity(db, user_id=str(user["id"]), activity_type="login")
        db.commit()

    return _session_response(user, request, response)


@router.post("/refresh")
def auth_refresh(payload: dict[str, Any], response: Response, _: None = RL_AUTH_REFRESH) -> dict[str, Any]:
    token = str(payload.get("refresh_token", "")).strip()
    if not token:
        raise HTTPException(status_code=400, detail="refresh_token required")

    token_hash = hash_refresh_token(token)
    row = auth_repo.get_refresh_token_row(token_hash)
    if not row or row.get("revoked_at") is not None:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    if row.get("expires_at") is None or row["expires_at"] < datetime.now(timezone.utc):
        raise HTTPException(status_code=401, detail="Refresh token expired")

    user = auth_repo.get_user_by_id(str(row["user_id"]))
    if not user or user.get("disabled_at"):
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    new_refresh = create_refresh_token()
    new_exp = datetime.now(timezone.utc) + timedelta(days=REFRESH_TOKEN_TTL_DAYS)
    auth_repo.rotate_refresh_token(token_hash, str(user["id"]), hash_refresh_token(new_refresh), new_exp)

    access_token = create_access_token(user_id=str(user["id"]), email=str(user["email"]), ttl_minutes=ACCESS_TOKEN_TTL_MINUTES)
    _set_session_cookie(response, access_token)
    return {
        "access_token": access_token,
        "refresh_token": new_refresh,
        "token_type": "bearer",
        "expires_in": ACCESS_TOKEN_TTL_MINUTES * 60,
    }


@router.post("/logout")
def auth_logout(response: Response, payload: dict[str, Any] | None = None) -> dict[str, bool]:
    token = str((payload or {}).get("refresh_token") or "").strip()
    if token:
        auth_repo.revoke_refresh_token_row(hash_refresh_token(token))
    _clear_session_cookie(response)
    return {"ok": True}


@router.get("/me")
def auth_me(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        profile = auth_repo.get_profile(db, current_user["id"])
    return {**current_user, "profile": profile}


@router.post("/password")
def auth_change_password(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, bool]:
    old_password = str(payload.get("old_password") or "")
    new_password = str(payload.get("new_password") or "")
    if len(new_password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    current_hash = auth_repo.get_password_hash(current_user["id"])
    if not current_hash or not verify_password(old_password, current_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    auth_repo.update_user_password(current_user["id"], hash_password(new_password))
    return {"ok": True}
