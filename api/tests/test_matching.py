from datetime import date, datetime, timedelta, timezone

import pytest

from globalmatch.services.matching import (
    birth_date_bounds,
    calculate_age,
    compatibility_score,
    pass_user,
    rank_candidates,
    validate_preferences,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _candidate(**overrides):
    base = {
        "id": "22222222-2222-2222-2222-222222222222",
        "birth_date": date(1996, 5, 1),
        "country": "Korea",
        "education_level": "bachelor",
        "interests": ["hiking", "coffee", "film"],
        "languages": ["ko", "en"],
        "last_active": NOW - timedelta(hours=2),
    }
    base.update(overrides)
    return base


USER = {"interests": ["hiking", "coffee", "music"], "languages": ["en", "fr"]}

PREFS = {
    "min_age": 25,
    "max_age": 35,
    "preferred_countries": ["Korea", "Japan"],
    "preferred_education": ["bachelor", "master"],
}


def test_calculate_age_is_birthday_aware():
    assert calculate_age(date(2000, 6, 2), date(2026, 6, 1)) == 25
    assert calculate_age(date(2000, 6, 1), date(2026, 6, 1)) == 26
    assert calculate_age("2000-01-15", date(2026, 6, 1)) == 26
    assert calculate_age(None, date(2026, 6, 1)) is None


def test_birth_date_bounds_cover_inclusive_age_range():
    earliest, latest = birth_date_bounds(25, 35, date(2026, 6, 1))
    assert latest == date(2001, 6, 1)
    assert earliest == date(1990, 6, 2)
    assert calculate_age(latest, date(2026, 6, 1)) == 25
    assert calculate_age(earliest, date(2026, 6, 1)) == 35


def test_birth_date_bounds_open_when_unset():
    assert birth_date_bounds(None, None, date(2026, 6, 1)) == (None, None)


def test_full_score_components_with_preferences():
    # age 25 + country 20 + education 15 + 2 shared interests 8 + 1 shared language 5 + recency 10
    assert compatibility_score(USER, _candidate(), PREFS, NOW) == 83


def test_country_outside_preferred_list_scores_zero():
    with_country = compatibility_score(USER, _candidate(), PREFS, NOW)
    without = compatibility_score(USER, _candidate(country="Brazil"), PREFS, NOW)
    assert with_country - without == 20


def test_no_preferences_uses_defaults():
    candidate = _candidate(education_level=None, interests=[], languages=[], last_active=None)
    # country default 10 + stale recency 2
    assert compatibility_score({}, candidate, None, NOW) == 12


def test_education_default_when_no_preferred_list():
    candidate = _candidate(interests=[], languages=[], last_active=None)
    assert compatibility_score({}, candidate, None, NOW) == 19


def test_education_not_listed_scores_zero():
    prefs = {**PREFS, "preferred_education": ["phd"]}
    assert compatibility_score(USER, _candidate(), prefs, NOW) == 68


def test_interest_and_language_caps():
    many = ["a", "b", "c", "d", "e", "f"]
    user = {"interests": many, "languages": ["ko", "en", "fr"]}
    candidate = _candidate(interests=many, languages=["ko", "en", "fr"], education_level=None, last_active=None)
    # country default 10 + interests capped 20 + languages capped 10 + recency 2
    assert compatibility_score(user, candidate, None, NOW) == 42


@pytest.mark.parametrize(
    "delta,expected",
    [
        (timedelta(hours=12), 10),
        (timedelta(days=3), 7),
        (timedelta(days=20), 5),
        (timedelta(days=90), 2),
    ],
)
def test_recency_buckets(delta, expected):
    candidate = _candidate(education_level=None, interests=[], languages=[], last_active=NOW - delta)
    assert compatibility_score({}, candidate, None, NOW) == 10 + expected


def test_age_outside_range_gets_no_age_points():
    older = _candidate(birth_date=date(1980, 1, 1))
    assert compatibility_score(USER, _candidate(), PREFS, NOW) - compatibility_score(USER, older, PREFS, NOW) == 25


def test_rank_candidates_sorts_by_score_and_keeps_recency_order_on_ties():
    a = _candidate(id="a", interests=[], languages=[])
    b = _candidate(id="b")
    c = _candidate(id="c", interests=[], languages=[])
    ranked = rank_candidates(USER, [a, b, c], PREFS, limit=3, now=NOW)
    assert [r.profile["id"] for r in ranked] == ["b", "a", "c"]
    assert ranked[0].score > ranked[1].score == ranked[2].score


def test_rank_candidates_truncates_to_limit():
    candidates = [_candidate(id=str(i)) for i in range(5)]
    assert len(rank_candidates(USER, candidates, PREFS, limit=2, now=NOW)) == 2


def test_validate_preferences_normalises_lists():
    prefs = validate_preferences({"min_age": "20", "max_age": 30, "preferred_countries": ["Korea", " Korea ", "", "Japan"]})
    assert prefs["min_age"] == 20
    assert prefs["max_age"] == 30
    assert prefs["preferred_countries"] == ["Korea", "Japan"]
    assert prefs["preferred_education"] == []
    assert prefs["max_distance"] is None


@pytest.mark.parametrize(
    "payload",
    [
        {"min_age": 40, "max_age": 30},
        {"min_age": 17},
        {"max_age": 101},
        {"min_age": "abc"},
        {"preferred_countries": "Korea"},
        {"max_distance": 0},
    ],
)
def test_validate_preferences_rejects_invalid(payload):
    with pytest.raises(ValueError):
        validate_preferences(payload)


class _MatchDB:
    def __init__(self, existing=None):
        self.existing = existing
        self.calls = []

    def execute(self, stmt, params=None):
        sql = " ".join(str(stmt).split())
        self.calls.append(sql)
        rows = []
        if sql.startswith("SELECT") and self.existing:
            rows = [self.existing]
        elif sql.startswith("INSERT INTO matches"):
            rows = [{"id": "m-new"}]

        class _Result:
            def mappings(self):
                return self

            def first(self):
                return rows[0] if rows else None

        return _Result()


def test_pass_keeps_existing_like():
    liked = {"id": "m-1", "user1_id": "b", "user2_id": "a", "user1_liked": True, "user2_liked": False,
             "is_mutual": False, "is_active": True, "matched_at": None}
    db = _MatchDB(existing=liked)
    assert pass_user(db, "a", "b") == "m-1"
    assert not any(s.startswith("INSERT") or s.startswith("UPDATE") for s in db.calls)


def test_pass_records_unliked_row():
    db = _MatchDB()
    assert pass_user(db, "a", "b") == "m-new"
    insert = next(s for s in db.calls if s.startswith("INSERT INTO matches"))
    assert "false, false, false" in insert
    assert "liked" not in insert.split("DO UPDATE")[1]


def test_pass_on_self_is_rejected():
    with pytest.raises(ValueError):
        pass_user(_MatchDB(), "a", "a")
