from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass, field
from typing import Callable

APPROVAL_SCORE = 70
MIN_FACE_CONFIDENCE = 0.7


@dataclass
class FaceAnalysis:
    detected_faces: int = 0
    confidence: float = 0.0
    is_valid: bool = False
    reasons: list[str] = field(default_factory=list)
    estimated_age: int | None = None


@dataclass
class ContentAnalysis:
    is_appropriate: bool = True
    confidence: float = 0.0
    labels: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)


@dataclass
class VerificationResult:
    approved: bool
    score: int
    reasons: list[str]
    analysis: dict

    def as_dict(self) -> dict:
        return {"approved": self.approved, "score": self.score, "reasons": list(self.reasons), "analysis": self.analysis}


FaceAnalyzer = Callable[[bytes], FaceAnalysis]
ContentAnalyzer = Callable[[bytes], ContentAnalysis]


def no_face_provider(_: bytes) -> FaceAnalysis:
    return FaceAnalysis(reasons=["Automatic face detection is unavailable; pending manual review"])


def no_content_provider(_: bytes) -> ContentAnalysis:
    return ContentAnalysis()


face_analyzer: FaceAnalyzer = no_face_provider
content_analyzer: ContentAnalyzer = no_content_provider


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def verification_score(face: FaceAnalysis, content: ContentAnalysis, is_duplicate: bool) -> int:
    score = 0.0
    if face.is_valid:
        score += face.confidence * 40
    if content.is_appropriate:
        score += content.confidence * 30
    if not is_duplicate:
        score += 20
    score += 10
    return int(round(min(100.0, max(0.0, score))))


def should_approve(score: int, face: FaceAnalysis, content: ContentAnalysis) -> bool:
    return (
        score >= APPROVAL_SCORE
        and face.detected_faces == 1
        and content.is_appropriate
        and face.confidence >= MIN_FACE_CONFIDENCE
    )


def rejection_reasons(face: FaceAnalysis, content: ContentAnalysis, is_duplicate: bool, score: int) -> list[str]:
    reasons = list(face.reasons)
    if face.detected_faces == 0:
        reasons.append("No face found in the photo")
    elif face.detected_faces > 1:
        reasons.append("Upload a photo with only one face")
    if not content.is_appropriate:
        reasons.extend(content.reasons or ["Inappropriate content detected"])
    if is_duplicate:
        reasons.append("This photo is already in use")
    if score < APPROVAL_SCORE:
        reasons.append("Photo quality is below the required standard")
    if face.confidence < MIN_FACE_CONFIDENCE:
        reasons.append("Face is not clearly visible")
    return reasons or ["Photo does not meet verification criteria"]


def verify_photo(
    data: bytes,
    *,
    is_duplicate: bool,
    faces: FaceAnalyzer | None = None,
    content: ContentAnalyzer | None = None,
) -> VerificationResult:
    face = (faces or face_analyzer)(data)
    moderation = (content or content_analyzer)(data)
    score = verification_score(face, moderation, is_duplicate)
    approved = should_approve(score, face, moderation)
    return VerificationResult(
        approved=approved,
        score=score,
        reasons=[] if approved else rejection_reasons(face, moderation, is_duplicate, score),
        analysis={"face": asdict(face), "content": asdict(moderation), "is_duplicate": is_duplicate},
    )
