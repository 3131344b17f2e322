from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass

import httpx

from globalmatch import config

logger = logging.getLogger(__name__)

TRANSLATE_URL = "https://translation.googleapis.com/language/translate/v2"
DETECT_URL = "https://translation.googleapis.com/language/translate/v2/detect"
MAX_TEXT_LENGTH = 5000
MAX_BATCH_SIZE = 50
# Mock output stands in for an unavailable provider and is never cached.
CACHED_PROVIDERS = {"google", "identity"}

SUPPORTED_LANGUAGES = {
    "ko": "한국어",
    "en": "English",
    "es": "Español",
    "fr": "Français",
    "de": "Deutsch",
    "it": "Italiano",
    "pt": "Português",
    "ru": "Русский",
    "ja": "日本語",
    "zh": "中文",
    "ar": "العربية",
    "hi": "हिन्दी",
    "tr": "Türkçe",
    "pl": "Polski",
    "uk": "Українська",
    "cs": "Čeština",
    "nl": "Nederlands",
    "sv": "Svenska",
    "da": "Dansk",
    "no": "Norsk",
}

COUNTRY_LANGUAGE = {
    "한국": "ko",
    "미국": "en",
    "캐나다": "en",
    "영국": "en",
    "호주": "en",
    "독일": "de",
    "프랑스": "fr",
    "이탈리아": "it",
    "스페인": "es",
    "러시아": "ru",
    "중국": "zh",
    "일본": "ja",
    "브라질": "pt",
    "멕시코": "es",
    "아르헨티나": "es",
    "콜롬비아": "es",
    "페루": "es",
    "베네수엘라": "es",
    "칠레": "es",
    "우크라이나": "uk",
    "폴란드": "pl",
    "체코": "cs",
    "네덜란드": "nl",
    "스웨덴": "sv",
    "덴마크": "da",
    "노르웨이": "no",
}
DEFAULT_LANGUAGE = "en"

_MOCK_PHRASES = {
    "ko": {
        "Hello": "안녕하세요",
        "How are you?": "어떻게 지내세요?",
        "Good morning": "좋은 아침입니다",
        "Thank you": "감사합니다",
        "I love you": "사랑해요",
        "Nice to meet you": "만나서 반가워요",
    },
    "es": {
        "Hello": "Hola",
        "How are you?": "¿Cómo estás?",
        "Good morning": "Buenos días",
        "Thank you": "Gracias",
        "I love you": "Te amo",
    },
}
_MOCK_PHRASES["en"] = {v: k for k, v in _MOCK_PHRASES["ko"].items()}


@dataclass
class Translation:
    translated_text: str
    source_language: str
    target_language: str
    provider: str


class TranslationCache:
    """Insertion-ordered cache; the oldest entry is evicted when full."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self._items: OrderedDict[tuple[str, str, str], Translation] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: tuple[str, str, str]) -> Translation | None:
        with self._lock:
            return self._items.get(key)

    def put(self, key: tuple[str, str, str], value: Translation) -> None:
        with self._lock:
            if key not in self._items and len(self._items) >= self.max_size:
                self._items.popitem(last=False)
            self._items[key] = value

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


cache = TranslationCache(config.TRANSLATION_CACHE_SIZE)


def is_supported(language: str | None) -> bool:
    return bool(language) and language in SUPPORTED_LANGUAGES


def language_for_country(country: str | None) -> str:
    return COUNTRY_LANGUAGE.get((country or "").strip(), DEFAULT_LANGUAGE)


def mock_translate(text: str, target_language: str, source_language: str | None = None) -> Translation:
    translated = _MOCK_PHRASES.get(target_language, {}).get(text, f"[번역됨: {text}]")
    return Translation(
        translated_text=translated,
        source_language=source_language or "auto",
        target_language=target_language,
        provider="mock",
    )


def _google_translate(text: str, target_language: str, source_language: str | None) -> Translation:
    params = {"q": text, "target": target_language, "format": "text", "key": config.GOOGLE_TRANSLATE_API_KEY}
    if source_language:
        params["source"] = source_language
    resp = httpx.post(TRANSLATE_URL, data=params, timeout=config.TRANSLATE_TIMEOUT_SECONDS)
    resp.raise_for_status()
    item = resp.json()["data"]["translations"][0]
    return Translation(
        translated_text=item["translatedText"],
        source_language=source_language or item.get("detectedSourceLanguage") or "auto",
        target_language=target_language,
        provider="google",
    )


def translate(text: str, target_language: str, source_language: str | None = None) -> Translation:
    if not text or not text.strip():
        raise ValueError("text is required")
    if len(text) > MAX_TEXT_LENGTH:
        raise ValueError(f"text must be at most {MAX_TEXT_LENGTH} characters")
    if not is_supported(target_language):
        raise ValueError(f"Unsupported target language: {target_language}")
    if source_language and not is_supported(source_language):
        raise ValueError(f"Unsupported source language: {source_language}")

    key = (text, target_language, source_language or "auto")
    cached = cache.get(key)
    if cached is not None:
        return cached

    if source_language and source_language == target_language:
        result = Translation(text, source_language, target_language, provider="identity")
    elif not config.GOOGLE_TRANSLATE_API_KEY:
        result = mock_translate(text, target_language, source_language)
    else:
        try:
            result = _google_translate(text, target_language, source_language)
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as exc:
            logger.warning(f"[translate] provider failed target={target_language} error={exc}; using mock")
            result = mock_translate(text, target_language, source_language)
    if result.provider in CACHED_PROVIDERS:
        cache.put(key, result)
    return result


def translate_batch(texts: list[str], target_language: str, source_language: str | None = None) -> list[Translation]:
    if not texts:
        raise ValueError("texts is required")
    if len(texts) > MAX_BATCH_SIZE:
        raise ValueError(f"At most {MAX_BATCH_SIZE} texts per batch")
    return [translate(t, target_language, source_language) for t in texts]


def detect_language(text: str) -> dict[str, object]:
    if not text or not text.strip():
        raise ValueError("text is required")
    fallback = {"language": DEFAULT_LANGUAGE, "confidence": 0.5}
    if not config.GOOGLE_TRANSLATE_API_KEY:
        return fallback
    try:
        resp = httpx.post(
            DETECT_URL,
            data={"q": text, "key": config.GOOGLE_TRANSLATE_API_KEY},
            timeout=config.TRANSLATE_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
        item = resp.json()["data"]["detections"][0][0]
    except (httpx.HTTPError, KeyError, IndexError, ValueError) as exc:
        logger.warning(f"[translate] detect failed error={exc}")
        return fallback
    return {"language": item["language"], "confidence": float(item.get("confidence") or 0)}
