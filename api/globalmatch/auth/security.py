import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import HTTPException
from passlib.context import CryptContext

from globalmatch.config import ACCESS_TOKEN_TTL_MINUTES, CALL_TOKEN_SECRET, CALL_TOKEN_TTL_SECONDS, JWT_SECRET

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")
ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(user_id: str, email: str, ttl_minutes: int | None = None) -> str:
    if not JWT_SECRET:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=ttl_minutes or ACCESS_TOKEN_TTL_MINUTES)
    payload: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "scope": "user",
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    if not JWT_SECRET:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
        if not isinstance(payload, dict):
            raise HTTPException(status_code=401, detail="Invalid token")
        return payload
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=401, detail="Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc


def create_refresh_token() -> str:
    return secrets.token_urlsafe(48)


def hash_refresh_token(refresh_token: str) -> str:
    if not JWT_SECRET:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    return hashlib.sha256(f"{JWT_SECRET}:{refresh_token}".encode("utf-8")).hexdigest()


def _call_secret() -> str:
    secret = CALL_TOKEN_SECRET or JWT_SECRET
    if not secret:
        raise HTTPException(status_code=500, detail="Call token secret not configured")
    return secret


def create_call_token(*, room_id: str, user_id: str, call_type: str, ttl_seconds: int | None = None) -> tuple[str, datetime]:
    """Sign a short-lived room token handed to the media provider client."""
    now = datetime.now(timezone.utc)
    exp = now + timedelta(seconds=ttl_seconds or CALL_TOKEN_TTL_SECONDS)
    payload: dict[str, Any] = {
        "room_id": room_id,
        "uid": user_id,
        "call_type": call_type,
        "scope": "call",
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, _call_secret(), algorithm=ALGORITHM), exp


def decode_call_token(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, _call_secret(), algorithms=[ALGORITHM])
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid call token") from exc
    if payload.get("scope") != "call":
        raise HTTPException(status_code=401, detail="Invalid call token")
    return payload
