from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import text

from globalmatch.repo import PROFILE_COLUMNS, get_profile, public_profile
from globalmatch.services import chat

AGE_WEIGHT = 25
COUNTRY_WEIGHT = 20
COUNTRY_DEFAULT = 10
EDUCATION_WEIGHT = 15
EDUCATION_DEFAULT = 7
INTEREST_CAP = 20
INTEREST_STEP = 4
LANGUAGE_CAP = 10
LANGUAGE_STEP = 5
MAX_SCORE = AGE_WEIGHT + COUNTRY_WEIGHT + EDUCATION_WEIGHT + INTEREST_CAP + LANGUAGE_CAP + 10

MIN_PREF_AGE = 18
MAX_PREF_AGE = 100


@dataclass
class ScoredCandidate:
    profile: dict[str, Any]
    score: int


@dataclass
class LikeResult:
    match_id: str
    is_match: bool
    newly_mutual: bool
    room_id: str | None = None


def _as_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _as_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def calculate_age(birth_date: Any, today: date | None = None) -> int | None:
    born = _as_date(birth_date)
    if born is None:
        return None
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 on a non-leap target year
        return day.replace(year=day.year - years, day=28)


def birth_date_bounds(min_age: int | None, max_age: int | None, today: date | None = None) -> tuple[date | None, date | None]:
    """Return (earliest, latest) birth dates for people aged within [min_age, max_age]."""
    today = today or date.today()
    latest = _years_before(today, min_age) if min_age is not None else None
    earliest = None
    if max_age is not None:
        earliest = date.fromordinal(_years_before(today, max_age + 1).toordinal() + 1)
    return earliest, latest


def _recency_points(last_active: Any, now: datetime) -> int:
    ts = _as_datetime(last_active)
    if ts is None:
        return 2
    days = (now - ts).total_seconds() / 86400
    if days <= 1:
        return 10
    if days <= 7:
        return 7
    if days <= 30:
        return 5
    return 2


def _shared(a: Any, b: Any) -> int:
    left = [str(x) for x in (a or [])]
    right = {str(x) for x in (b or [])}
    return len([x for x in left if x in right])


def compatibility_score(
    user: dict[str, Any],
    candidate: dict[str, Any],
    preferences: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> int:
    """Weighted 0-100 fit of `candidate` for `user` given the user's matching preferences."""
    now = now or datetime.now(timezone.utc)
    score = 0

    if preferences:
        age = calculate_age(candidate.get("birth_date"), now.date())
        min_age = preferences.get("min_age")
        max_age = preferences.get("max_age")
        if age is not None and (min_age is None or age >= int(min_age)) and (max_age is None or age <= int(max_age)):
            score += AGE_WEIGHT

    countries = list((preferences or {}).get("preferred_countries") or [])
    if preferences and countries:
        if candidate.get("country") in countries:
            score += COUNTRY_WEIGHT
    else:
        score += COUNTRY_DEFAULT

    education = list((preferences or {}).get("preferred_education") or [])
    level = candidate.get("education_level")
    if preferences and education and level:
        if level in education:
            score += EDUCATION_WEIGHT
    elif level:
        score += EDUCATION_DEFAULT

    score += min(INTEREST_CAP, _shared(user.get("interests"), candidate.get("interests")) * INTEREST_STEP)
    score += min(LANGUAGE_CAP, _shared(user.get("languages"), candidate.get("languages")) * LANGUAGE_STEP)
    score += _recency_points(candidate.get("last_active"), now)

    return int(round(score / MAX_SCORE * 100))


def rank_candidates(
    user: dict[str, Any],
    candidates: list[dict[str, Any]],
    preferences: dict[str, Any] | None,
    limit: int,
    now: datetime | None = None,
) -> list[ScoredCandidate]:
    """Score and order candidates, keeping the incoming (recency) order among equal scores."""
    now = now or datetime.now(timezone.utc)
    scored = [ScoredCandidate(profile=c, score=compatibility_score(user, c, preferences, now)) for c in candidates]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[:limit]


def validate_preferences(payload: dict[str, Any]) -> dict[str, Any]:
    def _opt_int(key: str) -> int | None:
        raw = payload.get(key)
        if raw is None or raw == "":
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be an integer")

    def _str_list(key: str) -> list[str]:
        raw = payload.get(key)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ValueError(f"{key} must be a list")
        out: list[str] = []
        for item in raw:
            v = str(item or "").strip()
            if v and v not in out:
                out.append(v)
        return out

    min_age = _opt_int("min_age")
    max_age = _opt_int("max_age")
    for key, value in (("min_age", min_age), ("max_age", max_age)):
        if value is not None and not (MIN_PREF_AGE <= value <= MAX_PREF_AGE):
            raise ValueError(f"{key} must be between {MIN_PREF_AGE} and {MAX_PREF_AGE}")
    if min_age is not None and max_age is not None and min_age > max_age:
        raise ValueError("min_age must be <= max_age")
    max_distance = _opt_int("max_distance")
    if max_distance is not None and max_distance <= 0:
        raise ValueError("max_distance must be positive")
    return {
        "min_age": min_age,
        "max_age": max_age,
        "preferred_countries": _str_list("preferred_countries"),
        "preferred_education": _str_list("preferred_education"),
        "preferred_occupation": _str_list("preferred_occupation"),
        "max_distance": max_distance,
    }


def _preferences_out(row: Any) -> dict[str, Any]:
    return {
        "min_age": row["min_age"],
        "max_age": row["max_age"],
        "preferred_countries": list(row["preferred_countries"] or []),
        "preferred_education": list(row["preferred_education"] or []),
        "preferred_occupation": list(row["preferred_occupation"] or []),
        "max_distance": row["max_distance"],
        "updated_at": row.get("updated_at"),
    }


def get_preferences(db, user_id: str) -> dict[str, Any] | None:
    row = db.execute(
        text(
            """
            SELECT min_age, max_age, preferred_countries, preferred_education,
                   preferred_occupation, max_distance, updated_at
            FROM matching_preferences
            WHERE user_id = CAST(:user_id AS uuid)
            """
        ),
        {"user_id": user_id},
    ).mappings().first()
    return _preferences_out(row) if row else None


def upsert_preferences(db, user_id: str, prefs: dict[str, Any]) -> dict[str, Any]:
    row = db.execute(
        text(
            """
            INSERT INTO matching_preferences
              (user_id, min_age, max_age, preferred_countries, preferred_education, preferred_occupation, max_distance)
            VALUES
              (CAST(:user_id AS uuid), :min_age, :max_age, :preferred_countries, :preferred_education, :preferred_occupation, :max_distance)
            ON CONFLICT (user_id) DO UPDATE SET
              min_age = EXCLUDED.min_age,
              max_age = EXCLUDED.max_age,
              preferred_countries = EXCLUDED.preferred_countries,
              preferred_education = EXCLUDED.preferred_education,
              preferred_occupation = EXCLUDED.preferred_occupation,
              max_distance = EXCLUDED.max_distance,
              updated_at = NOW()
            RETURNING min_age, max_age, preferred_countries, preferred_education,
                      preferred_occupation, max_distance, updated_at
            """
        ),
        {"user_id": user_id, **prefs},
    ).mappings().first()
    return _preferences_out(row)


def excluded_user_ids(db, user_id: str) -> set[str]:
    """Users never shown in discovery: self, anyone already swiped either way, blocks both ways."""
    rows = db.execute(
        text(
            """
            SELECT CASE WHEN user1_id = CAST(:user_id AS uuid) THEN user2_id ELSE user1_id END AS other_id
            FROM matches
            WHERE user1_id = CAST(:user_id AS uuid) OR user2_id = CAST(:user_id AS uuid)
            UNION
            SELECT blocked_id FROM blocks WHERE blocker_id = CAST(:user_id AS uuid)
            UNION
            SELECT blocker_id FROM blocks WHERE blocked_id = CAST(:user_id AS uuid)
            """
        ),
        {"user_id": user_id},
    ).mappings().all()
    out = {str(r["other_id"]) for r in rows}
    out.add(user_id)
    return out


def fetch_candidates(
    db,
    *,
    user: dict[str, Any],
    preferences: dict[str, Any] | None,
    exclude_ids: set[str],
    fetch_limit: int,
    today: date | None = None,
) -> list[dict[str, Any]]:
    clauses = [
        "p.verification_status = 'verified'",
        "p.account_status = 'active'",
        "NOT (CAST(p.id AS text) = ANY(:exclude_ids))",
    ]
    params: dict[str, Any] = {"exclude_ids": sorted(exclude_ids), "limit": fetch_limit}

    if user.get("gender"):
        clauses.append("p.gender IS DISTINCT FROM :gender")
        params["gender"] = user["gender"]

    if preferences:
        earliest, latest = birth_date_bounds(preferences.get("min_age"), preferences.get("max_age"), today)
        if latest is not None:
            clauses.append("p.birth_date <= :latest_birth_date")
            params["latest_birth_date"] = latest
        if earliest is not None:
            clauses.append("p.birth_date >= :earliest_birth_date")
            params["earliest_birth_date"] = earliest
        if preferences.get("preferred_countries"):
            clauses.append("p.country = ANY(:countries)")
            params["countries"] = list(preferences["preferred_countries"])

    where = " AND ".join(clauses)
    rows = db.execute(
        text(
            f"""
            SELECT {PROFILE_COLUMNS}
            FROM profiles p
            WHERE {where}
            ORDER BY p.last_active DESC
            LIMIT :limit
            """
        ),
        params,
    ).mappings().all()
    return [dict(r) for r in rows]


def get_recommendations(db, user_id: str, limit: int = 10, now: datetime | None = None) -> list[dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    user = get_profile(db, user_id)
    if not user:
        return []
    preferences = get_preferences(db, user_id)
    candidates = fetch_candidates(
        db,
        user=user,
        preferences=preferences,
        exclude_ids=excluded_user_ids(db, user_id),
        fetch_limit=limit * 2,
        today=now.date(),
    )
    ranked = rank_candidates(user, candidates, preferences, limit, now)
    out = []
    for item in ranked:
        profile = public_profile(item.profile) or {}
        profile["age"] = calculate_age(item.profile.get("birth_date"), now.date())
        profile["compatibility_score"] = item.score
        out.append(profile)
    return out


def get_match_between(db, user_a: str, user_b: str) -> dict[str, Any] | None:
    row = db.execute(
        text(
            """
            SELECT id, user1_id, user2_id, user1_liked, user2_liked, is_mutual, is_active, matched_at
            FROM matches
            WHERE (user1_id = CAST(:a AS uuid) AND user2_id = CAST(:b AS uuid))
               OR (user1_id = CAST(:b AS uuid) AND user2_id = CAST(:a AS uuid))
            """
        ),
        {"a": user_a, "b": user_b},
    ).mappings().first()
    return dict(row) if row else None


def is_active_mutual_pair(db, user_a: str, user_b: str) -> bool:
    row = get_match_between(db, user_a, user_b)
    return bool(row and row["is_mutual"] and row["is_active"])


def like_user(db, user_id: str, target_id: str) -> LikeResult:
    if user_id == target_id:
        raise ValueError("Cannot like yourself")

    existing = get_match_between(db, user_id, target_id)
    if existing:
        i_am_user1 = str(existing["user1_id"]) == user_id
        other_liked = bool(existing["user2_liked"] if i_am_user1 else existing["user1_liked"])
        was_mutual = bool(existing["is_mutual"])
        my_flag = "user1_liked" if i_am_user1 else "user2_liked"
        db.execute(
            text(
                f"""
                UPDATE matches
                SET {my_flag} = true,
                    is_mutual = :is_mutual,
                    matched_at = CASE WHEN :is_mutual AND matched_at IS NULL THEN NOW() ELSE matched_at END
                WHERE id = CAST(:id AS uuid)
                """
            ),
            {"id": str(existing["id"]), "is_mutual": other_liked},
        )
        match_id = str(existing["id"])
        room_id = None
        if other_liked:
            room_id = str(chat.ensure_room(db, match_id)["id"])
        return LikeResult(
            match_id=match_id,
            is_match=other_liked,
            newly_mutual=other_liked and not was_mutual,
            room_id=room_id,
        )

    row = db.execute(
        text(
            """
            INSERT INTO matches (user1_id, user2_id, user1_liked, user2_liked, is_mutual)
            VALUES (CAST(:user_id AS uuid), CAST(:target_id AS uuid), true, false, false)
            RETURNING id
            """
        ),
        {"user_id": user_id, "target_id": target_id},
    ).mappings().first()
    return LikeResult(match_id=str(row["id"]), is_match=False, newly_mutual=False)


def pass_user(db, user_id: str, target_id: str) -> str:
    if user_id == target_id:
        raise ValueError("Cannot pass on yourself")
    existing = get_match_between(db, user_id, target_id)
    if existing:
        return str(existing["id"])
    row = db.execute(
        text(
            """
            INSERT INTO matches (user1_id, user2_id, user1_liked, user2_liked, is_mutual)
            VALUES (CAST(:user_id AS uuid), CAST(:target_id AS uuid), false, false, false)
            ON CONFLICT (user1_id, user2_id) DO UPDATE SET user1_id = EXCLUDED.user1_id
            RETURNING id
            """
        ),
        {"user_id": user_id, "target_id": target_id},
    ).mappings().first()
    return str(row["id"])


def list_matches(db, user_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            f"""
            SELECT m.id AS match_id, m.matched_at, r.id AS room_id, {PROFILE_COLUMNS}
            FROM matches m
            JOIN profiles p ON p.id = CASE WHEN m.user1_id = CAST(:user_id AS uuid) THEN m.user2_id ELSE m.user1_id END
            LEFT JOIN chat_rooms r ON r.match_id = m.id
            WHERE (m.user1_id = CAST(:user_id AS uuid) OR m.user2_id = CAST(:user_id AS uuid))
              AND m.is_mutual = true
              AND m.is_active = true
            ORDER BY m.matched_at DESC NULLS LAST
            """
        ),
        {"user_id": user_id},
    ).mappings().all()
    return [
        {
            "id": str(r["match_id"]),
            "matched_at": r["matched_at"],
            "room_id": str(r["room_id"]) if r.get("room_id") else None,
            "partner": public_profile(dict(r)),
        }
        for r in rows
    ]


def deactivate_match(db, match_id: str) -> None:
    db.execute(text("UPDATE matches SET is_active = false WHERE id = CAST(:id AS uuid)"), {"id": match_id})
    chat.deactivate_room_for_match(db, match_id)


def unmatch(db, user_id: str, match_id: str) -> bool:
    row = db.execute(
        text("SELECT id, user1_id, user2_id FROM matches WHERE id = CAST(:id AS uuid)"),
        {"id": match_id},
    ).mappings().first()
    if not row:
        raise LookupError("Match not found")
    if user_id not in {str(row["user1_id"]), str(row["user2_id"])}:
        raise PermissionError("Not a participant of this match")
    deactivate_match(db, match_id)
    return True
