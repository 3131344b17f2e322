from globalmatch.services.photo_verification import (
    ContentAnalysis,
    FaceAnalysis,
    content_hash,
    verification_score,
    verify_photo,
)

PHOTO = b"\xff\xd8\xff\xe0fake-jpeg"


def _one_face(confidence=0.95):
    return lambda _: FaceAnalysis(detected_faces=1, confidence=confidence, is_valid=True)


def _clean(confidence=0.9):
    return lambda _: ContentAnalysis(is_appropriate=True, confidence=confidence)


def test_content_hash_is_stable_sha256():
    assert content_hash(PHOTO) == content_hash(bytes(PHOTO))
    assert len(content_hash(PHOTO)) == 64


def test_score_weights():
    face = FaceAnalysis(detected_faces=1, confidence=1.0, is_valid=True)
    content = ContentAnalysis(is_appropriate=True, confidence=1.0)
    assert verification_score(face, content, is_duplicate=False) == 100
    assert verification_score(face, content, is_duplicate=True) == 80
    assert verification_score(FaceAnalysis(), ContentAnalysis(is_appropriate=False), is_duplicate=True) == 10


def test_clear_single_face_is_approved():
    result = verify_photo(PHOTO, is_duplicate=False, faces=_one_face(), content=_clean())
    assert result.approved is True
    assert result.score == 95
    assert result.reasons == []
    assert result.analysis["is_duplicate"] is False


def test_duplicate_photo_is_rejected():
    result = verify_photo(PHOTO, is_duplicate=True, faces=_one_face(0.8), content=_clean(0.5))
    assert result.approved is False
    assert "This photo is already in use" in result.reasons


def test_multiple_faces_are_rejected():
    faces = lambda _: FaceAnalysis(detected_faces=2, confidence=0.95, is_valid=True)
    result = verify_photo(PHOTO, is_duplicate=False, faces=faces, content=_clean())
    assert result.approved is False
    assert "Upload a photo with only one face" in result.reasons


def test_inappropriate_content_reasons_are_reported():
    content = lambda _: ContentAnalysis(is_appropriate=False, confidence=0.9, reasons=["Adult content"])
    result = verify_photo(PHOTO, is_duplicate=False, faces=_one_face(), content=content)
    assert result.approved is False
    assert "Adult content" in result.reasons


def test_without_vision_provider_photo_waits_for_review():
    result = verify_photo(PHOTO, is_duplicate=False)
    assert result.approved is False
    assert result.score == 30
    assert "No face found in the photo" in result.reasons
    assert result.as_dict()["approved"] is False
