import httpx
import pytest

from globalmatch import config
from globalmatch.services import translation


@pytest.fixture(autouse=True)
def _fresh_cache(monkeypatch):
    translation.cache.clear()
    monkeypatch.setattr(config, "GOOGLE_TRANSLATE_API_KEY", "")
    yield
    translation.cache.clear()


def test_supported_languages_cover_twenty_codes():
    assert len(translation.SUPPORTED_LANGUAGES) == 20
    assert translation.SUPPORTED_LANGUAGES["ko"] == "한국어"
    assert translation.is_supported("no")
    assert not translation.is_supported("xx")
    assert not translation.is_supported(None)


def test_country_language_lookup_defaults_to_english():
    assert translation.language_for_country("독일") == "de"
    assert translation.language_for_country(" 한국 ") == "ko"
    assert translation.language_for_country("Atlantis") == "en"
    assert translation.language_for_country(None) == "en"


def test_mock_translation_uses_phrasebook_then_marker():
    assert translation.translate("Hello", "ko").translated_text == "안녕하세요"
    unknown = translation.translate("See you at the park", "ko")
    assert unknown.translated_text == "[번역됨: See you at the park]"
    assert unknown.provider == "mock"


def test_translate_validates_input():
    with pytest.raises(ValueError):
        translation.translate("   ", "ko")
    with pytest.raises(ValueError):
        translation.translate("x" * (translation.MAX_TEXT_LENGTH + 1), "ko")
    with pytest.raises(ValueError):
        translation.translate("Hello", "xx")


def test_same_source_and_target_is_identity():
    result = translation.translate("Hallo", "de", "de")
    assert result.translated_text == "Hallo"
    assert result.provider == "identity"


def test_provider_failure_falls_back_to_mock(monkeypatch):
    monkeypatch.setattr(config, "GOOGLE_TRANSLATE_API_KEY", "key")

    def _boom(*args, **kwargs):
        raise httpx.ConnectError("offline")

    monkeypatch.setattr(translation.httpx, "post", _boom)
    result = translation.translate("Thank you", "es")
    assert result.translated_text == "Gracias"
    assert result.provider == "mock"


def test_google_response_is_parsed_and_cached(monkeypatch):
    monkeypatch.setattr(config, "GOOGLE_TRANSLATE_API_KEY", "key")
    calls = []

    def _post(url, data=None, timeout=None):
        calls.append(data)
        return httpx.Response(
            200,
            json={"data": {"translations": [{"translatedText": "Bonjour", "detectedSourceLanguage": "en"}]}},
            request=httpx.Request("POST", url),
        )

    monkeypatch.setattr(translation.httpx, "post", _post)
    first = translation.translate("Hello", "fr")
    second = translation.translate("Hello", "fr")
    assert first.translated_text == "Bonjour"
    assert first.source_language == "en"
    assert first.provider == "google"
    assert second is first
    assert len(calls) == 1


def test_cache_evicts_oldest_entry():
    cache = translation.TranslationCache(max_size=2)
    for i in range(3):
        cache.put((str(i), "ko", "auto"), translation.mock_translate(str(i), "ko"))
    assert len(cache) == 2
    assert cache.get(("0", "ko", "auto")) is None
    assert cache.get(("2", "ko", "auto")) is not None


def test_batch_limits():
    results = translation.translate_batch(["Hello", "Thank you"], "ko")
    assert [r.translated_text for r in results] == ["안녕하세요", "감사합니다"]
    with pytest.raises(ValueError):
        translation.translate_batch([], "ko")
    with pytest.raises(ValueError):
        translation.translate_batch(["a"] * (translation.MAX_BATCH_SIZE + 1), "ko")


def test_detect_without_key_returns_fallback():
    assert translation.detect_language("bonjour") == {"language": "en", "confidence": 0.5}


def test_provider_outage_result_is_not_cached(monkeypatch):
    monkeypatch.setattr(config, "GOOGLE_TRANSLATE_API_KEY", "key")
    calls = []

    def _flaky(url, data=None, timeout=None):
        calls.append(data)
        if len(calls) == 1:
            raise httpx.ConnectError("offline")
        return httpx.Response(
            200,
            json={"data": {"translations": [{"translatedText": "Hola", "detectedSourceLanguage": "en"}]}},
            request=httpx.Request("POST", url),
        )

    monkeypatch.setattr(translation.httpx, "post", _flaky)
    assert translation.translate("Hello", "es").provider == "mock"
    recovered = translation.translate("Hello", "es")
    assert recovered.provider == "google"
    assert recovered.translated_text == "Hola"
    assert len(calls) == 2
