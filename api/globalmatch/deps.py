import uuid

from fastapi import HTTPException


def parse_uuid(value: str | None, field: str) -> str:
    raw = str(value or "").strip()
    if not raw:
        raise HTTPException(status_code=400, detail=f"{field} required")
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be a valid UUID")


def page_params(page: int, limit: int, max_limit: int = 100) -> tuple[int, int]:
    """Translate 1-based page/limit into (limit, offset)."""
    if page < 1:
        raise HTTPException(status_code=400, detail="page must be >= 1")
    if limit < 1 or limit > max_limit:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {max_limit}")
    return limit, (page - 1) * limit
