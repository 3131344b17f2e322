import re
import uuid
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

from fastapi import HTTPException, Request, UploadFile

from .config import MAX_UPLOAD_BYTES, MIN_SIGNUP_AGE
from .services.matching import calculate_age
from .services.photo_verification import content_hash

UPLOADS_DIR = Path(__file__).resolve().parents[1] / "uploads"
UPLOADS_DIR.mkdir(parents=True, exist_ok=True)

ALLOWED_GENDERS = {"male", "female"}
IMAGE_TYPES = {"image/jpeg": ".jpg", "image/jpg": ".jpg", "image/png": ".png", "image/webp": ".webp"}
EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

BIO_MAX_LENGTH = 500
MAX_LIST_ITEMS = 20
MIN_HEIGHT = 100
MAX_HEIGHT = 250


@dataclass
class StoredPhoto:
    url: str
    content_hash: str
    data: bytes


def normalize_email(email: str) -> str:
    return email.strip().lower()


def parse_birth_date(raw: Any, today: date | None = None) -> date:
    try:
        born = date.fromisoformat(str(raw or "").strip())
    except ValueError:
        raise HTTPException(status_code=400, detail="birth_date must be an ISO date (YYYY-MM-DD)")
    age = calculate_age(born, today)
    if age is None or age < MIN_SIGNUP_AGE:
        raise HTTPException(status_code=400, detail=f"You must be at least {MIN_SIGNUP_AGE} years old")
    return born


def validate_registration_input(payload: dict[str, Any]) -> dict[str, Any]:
    email = normalize_email(str(payload.get("email") or ""))
    password = str(payload.get("password") or "")
    if not EMAIL_RE.match(email) or len(email) > 254:
        raise HTTPException(status_code=400, detail="Invalid email format")
    if len(password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    full_name = str(payload.get("full_name") or "").strip()
    if not full_name:
        raise HTTPException(status_code=400, detail="full_name required")
    if len(full_name) > 80:
        raise HTTPException(status_code=400, detail="full_name must be 80 characters or fewer")
    gender = str(payload.get("gender") or "").strip().lower()
    if gender not in ALLOWED_GENDERS:
        raise HTTPException(status_code=400, detail="gender must be one of: female, male")
    country = str(payload.get("country") or "").strip()
    if not country:
        raise HTTPException(status_code=400, detail="country required")
    return {
        "email": email,
        "password": password,
        "full_name": full_name,
        "gender": gender,
        "country": country,
        "birth_date": parse_birth_date(payload.get("birth_date")),
    }


def _clean_str(payload: dict[str, Any], key: str, max_len: int) -> str | None:
    value = str(payload.get(key) or "").strip() or None
    if value and len(value) > max_len:
        raise HTTPException(status_code=400, detail=f"{key} must be {max_len} characters or fewer")
    return value


def _clean_list(payload: dict[str, Any], key: str) -> list[str]:
    raw = payload.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise HTTPException(status_code=400, detail=f"{key} must be an array")
    out: list[str] = []
    for value in raw:
        item = str(value or "").strip()
        if item and item not in out:
            out.append(item)
    if len(out) > MAX_LIST_ITEMS:
        raise HTTPException(status_code=400, detail=f"{key} may contain at most {MAX_LIST_ITEMS} items")
    return out


def sanitize_profile_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Validate a partial profile update; only keys present in the payload are returned."""
    changes: dict[str, Any] = {}
    for key, max_len in (("full_name", 80), ("country", 80), ("city", 80), ("occupation", 120), ("relationship_goal", 80), ("education_level", 80)):
        if key in payload:
            changes[key] = _clean_str(payload, key, max_len)
    if "full_name" in changes and not changes["full_name"]:
        raise HTTPException(status_code=400, detail="full_name cannot be empty")
    if "bio" in payload:
        changes["bio"] = _clean_str(payload, "bio", BIO_MAX_LENGTH)
    for key in ("interests", "languages"):
        if key in payload:
            changes[key] = _clean_list(payload, key)
    if "gender" in payload:
        gender = str(payload.get("gender") or "").strip().lower()
        if gender not in ALLOWED_GENDERS:
            raise HTTPException(status_code=400, detail="gender must be one of: female, male")
        changes["gender"] = gender
    if "birth_date" in payload:
        changes["birth_date"] = parse_birth_date(payload.get("birth_date"))
    if "height" in payload:
        raw = payload.get("height")
        if raw is None or raw == "":
            changes["height"] = None
        else:
            try:
                height = int(raw)
            except (TypeError, ValueError):
                raise HTTPException(status_code=400, detail="height must be an integer")
            if not (MIN_HEIGHT <= height <= MAX_HEIGHT):
                raise HTTPException(status_code=400, detail=f"height must be between {MIN_HEIGHT} and {MAX_HEIGHT}")
            changes["height"] = height
    return changes


def public_upload_url(request: Request, filename: str) -> str:
    return f"{str(request.base_url).rstrip('/')}/uploads/{filename}"


async def store_uploaded_photo(file: UploadFile, owner_user_id: str, request: Request) -> StoredPhoto:
    content_type = (file.content_type or "").lower()
    ext = IMAGE_TYPES.get(content_type)
    if ext is None:
        raise HTTPException(status_code=400, detail="Only JPG, PNG, and WEBP images are allowed")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded image is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail=f"Each image must be <= {MAX_UPLOAD_BYTES // (1024 * 1024)}MB")

    fname = f"{owner_user_id}_{uuid.uuid4().hex}{ext}"
    path = UPLOADS_DIR / fname
    path.write_bytes(data)
    return StoredPhoto(url=public_upload_url(request, fname), content_hash=content_hash(data), data=data)
