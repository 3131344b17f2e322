from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth.deps import get_current_user
from ..config import RL_TRANSLATE_LIMIT, RL_WINDOW_SECONDS
from ..schemas import BatchTranslateRequest, DetectRequest, TranslateRequest
from ..services import translation
from ..services.rate_limit import user_rate_limit_dependency

router = APIRouter()
scaffold_router = APIRouter()

RL_TRANSLATE = user_rate_limit_dependency("translate", RL_TRANSLATE_LIMIT, RL_WINDOW_SECONDS)


@scaffold_router.get("/health")
def translate_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "translate"}


@router.get("/translate/languages")
def get_languages() -> dict[str, Any]:
    return {
        "languages": [{"code": code, "name": name} for code, name in translation.SUPPORTED_LANGUAGES.items()],
    }


@router.get("/translate/country-language")
def get_country_language(country: str = Query("")) -> dict[str, str]:
    return {"country": country, "language": translation.language_for_country(country)}


@router.post("/translate")
def translate_text(
    payload: TranslateRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
    _: None = RL_TRANSLATE,
) -> dict[str, Any]:
    try:
        result = translation.translate(payload.text, payload.target_language, payload.source_language)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return asdict(result)


@router.post("/translate/batch")
def translate_many(
    payload: BatchTranslateRequest,
    current_user: dict[str, Any] = Depends(get_current_user),
    _: None = RL_TRANSLATE,
) -> dict[str, Any]:
    try:
        results = translation.translate_batch(payload.texts, payload.target_language, payload.source_language)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"translations": [asdict(r) for r in results]}


@router.post("/translate/detect")
def detect(payload: DetectRequest, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    try:
        return translation.detect_language(payload.text)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
