from datetime import datetime, timedelta, timezone

import pytest

from globalmatch import repo
from globalmatch.services import moderation

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
ALICE = "11111111-1111-1111-1111-111111111111"
BOB = "22222222-2222-2222-2222-222222222222"
MATCH = "44444444-4444-4444-4444-444444444444"
REPORT = "55555555-5555-5555-5555-555555555555"


class _Result:
    def __init__(self, rows=None, rowcount=0):
        self._rows = rows or []
        self.rowcount = rowcount

    def mappings(self):
        return self

    def first(self):
        return self._rows[0] if self._rows else None

    def all(self):
        return list(self._rows)

    def scalar(self):
        return self._rows[0] if self._rows else None


class BlockDB:
    """Keeps blocks, matches and chat rooms in memory for the block/unblock statements."""

    def __init__(self):
        self.blocks = {}
        self.matches = {MATCH: {"pair": {ALICE, BOB}, "is_active": True}}
        self.rooms = {MATCH: True}

    def execute(self, stmt, params=None):
        sql = " ".join(str(stmt).split())
        params = params or {}
        if sql.startswith("SELECT 1 FROM blocks"):
            key = (params["blocker_id"], params["blocked_id"])
            return _Result([1] if key in self.blocks else [])
        if sql.startswith("INSERT INTO blocks"):
            key = (params["blocker_id"], params["blocked_id"])
            self.blocks[key] = {"reason": params["reason"], "is_mutual": params["is_mutual"]}
            row = {"id": "b-" + str(len(self.blocks)), "blocker_id": key[0], "blocked_id": key[1],
                   "reason": params["reason"], "is_mutual": params["is_mutual"], "created_at": NOW}
            return _Result([row])
        if sql.startswith("UPDATE blocks SET is_mutual"):
            reverse = (params["blocked_id"], params["blocker_id"])
            if reverse in self.blocks:
                self.blocks[reverse]["is_mutual"] = "is_mutual = true" in sql
            return _Result(rowcount=int(reverse in self.blocks))
        if sql.startswith("DELETE FROM blocks"):
            removed = self.blocks.pop((params["blocker_id"], params["blocked_id"]), None)
            return _Result(rowcount=int(removed is not None))
        if sql.startswith("UPDATE matches SET is_active = false"):
            hit = [mid for mid, m in self.matches.items() if m["pair"] == {params["a"], params["b"]}]
            for mid in hit:
                self.matches[mid]["is_active"] = False
            return _Result([{"id": mid} for mid in hit])
        if sql.startswith("UPDATE chat_rooms SET is_active = false"):
            self.rooms[params["match_id"]] = False
            return _Result(rowcount=1)
        raise AssertionError(f"unexpected statement: {sql}")


class RecordingDB:
    def __init__(self):
        self.calls = []

    def execute(self, stmt, params=None):
        sql = " ".join(str(stmt).split())
        params = params or {}
        self.calls.append((sql, params))
        if sql.startswith("INSERT INTO safety_actions"):
            return _Result([{**params, "id": "a-1", "created_at": NOW}])
        return _Result(rowcount=1)

    def sql_for(self, prefix):
        return [s for s, _ in self.calls if s.startswith(prefix)]


@pytest.fixture
def profiles(monkeypatch):
    monkeypatch.setattr(repo, "get_profile", lambda db, user_id: {"id": user_id, "account_status": "active"})


def test_block_closes_match_and_chat_room(profiles):
    db = BlockDB()
    block = moderation.block_user(db, ALICE, BOB, "spam")
    assert block["is_mutual"] is False
    assert db.matches[MATCH]["is_active"] is False
    assert db.rooms[MATCH] is False


def test_block_back_marks_both_rows_mutual(profiles):
    db = BlockDB()
    moderation.block_user(db, ALICE, BOB)
    second = moderation.block_user(db, BOB, ALICE)
    assert second["is_mutual"] is True
    assert db.blocks[(ALICE, BOB)]["is_mutual"] is True
    assert db.blocks[(BOB, ALICE)]["is_mutual"] is True


def test_repeat_block_conflicts(profiles):
    db = BlockDB()
    moderation.block_user(db, ALICE, BOB)
    with pytest.raises(FileExistsError):
        moderation.block_user(db, ALICE, BOB)


def test_block_rejects_self_and_unknown_user(monkeypatch):
    monkeypatch.setattr(repo, "get_profile", lambda db, user_id: None)
    with pytest.raises(ValueError):
        moderation.block_user(BlockDB(), ALICE, ALICE)
    with pytest.raises(LookupError):
        moderation.block_user(BlockDB(), ALICE, BOB)


def test_unblock_clears_mutual_flag_on_remaining_row(profiles):
    db = BlockDB()
    moderation.block_user(db, ALICE, BOB)
    moderation.block_user(db, BOB, ALICE)

    assert moderation.unblock_user(db, ALICE, BOB) is True
    assert (ALICE, BOB) not in db.blocks
    assert db.blocks[(BOB, ALICE)]["is_mutual"] is False
    assert moderation.unblock_user(db, ALICE, BOB) is False


def test_temporary_ban_suspends_without_lifting_a_ban(monkeypatch):
    sent = []
    monkeypatch.setattr(moderation.notifications, "create_notification", lambda db, **kwargs: sent.append(kwargs))
    db = RecordingDB()

    action = moderation.apply_safety_action(
        db, user_id=BOB, action_type="temporary_ban", reason="harassment", duration_hours=72, now=NOW
    )

    assert action["expires_at"] == NOW + timedelta(hours=72)
    (update,) = db.sql_for("UPDATE profiles")
    assert "account_status = 'suspended'" in update
    assert "account_status <> 'banned'" in update
    params = next(p for s, p in db.calls if s.startswith("UPDATE profiles"))
    assert params["until"] == NOW + timedelta(hours=72)
    assert sent[0]["user_id"] == BOB
    assert sent[0]["data"] == {"kind": "safety_action", "action_type": "temporary_ban"}


def test_temporary_ban_defaults_duration(monkeypatch):
    monkeypatch.setattr(moderation.notifications, "create_notification", lambda db, **kwargs: None)
    action = moderation.apply_safety_action(RecordingDB(), user_id=BOB, action_type="temporary_ban", reason="x", now=NOW)
    assert action["duration_hours"] == moderation.config.DEFAULT_SUSPENSION_HOURS


@pytest.mark.parametrize(
    "action_type,fragment",
    [
        ("permanent_ban", "account_status = 'banned'"),
        ("profile_review", "account_status = 'under_review'"),
    ],
)
def test_account_actions_update_profile(monkeypatch, action_type, fragment):
    monkeypatch.setattr(moderation.notifications, "create_notification", lambda db, **kwargs: None)
    db = RecordingDB()
    moderation.apply_safety_action(db, user_id=BOB, action_type=action_type, reason="r", now=NOW)
    (update,) = db.sql_for("UPDATE profiles")
    assert fragment in update


def test_warning_only_notifies(monkeypatch):
    sent = []
    monkeypatch.setattr(moderation.notifications, "create_notification", lambda db, **kwargs: sent.append(kwargs))
    db = RecordingDB()
    moderation.apply_safety_action(db, user_id=BOB, action_type="warning", reason="r", report_id=REPORT, now=NOW)
    assert db.sql_for("UPDATE profiles") == []
    assert sent[0]["body"] == moderation.ACTION_MESSAGES["warning"]


def test_unknown_action_is_rejected():
    with pytest.raises(ValueError):
        moderation.apply_safety_action(RecordingDB(), user_id=BOB, action_type="shadow_ban", reason="r")


def _report_payload(**overrides):
    payload = {"reported_user_id": BOB, "report_type": "harassment", "description": "rude"}
    payload.update(overrides)
    return payload


def test_report_against_unknown_user_is_not_found(monkeypatch):
    monkeypatch.setattr(repo, "get_profile", lambda db, user_id: None)
    with pytest.raises(LookupError):
        moderation.create_report(None, ALICE, _report_payload())


def test_duplicate_report_conflicts(monkeypatch, profiles):
    monkeypatch.setattr(moderation, "find_duplicate_report", lambda db, reporter, reported, content_id: True)
    with pytest.raises(FileExistsError):
        moderation.create_report(None, ALICE, _report_payload())


def test_report_escalates_after_threshold(monkeypatch, profiles):
    applied = []
    monkeypatch.setattr(moderation, "find_duplicate_report", lambda db, reporter, reported, content_id: False)
    monkeypatch.setattr(
        moderation,
        "insert_report",
        lambda db, reporter_id, report: {**report, "id": REPORT, "reporter_id": reporter_id},
    )
    monkeypatch.setattr(moderation, "notify_admins", lambda db, report: 1)
    monkeypatch.setattr(moderation, "count_recent_reports", lambda db, user_id, report_type: 5)
    monkeypatch.setattr(moderation, "apply_safety_action", lambda db, **kwargs: applied.append(kwargs) or kwargs)

    created = moderation.create_report(None, ALICE, _report_payload())

    assert created["report"]["priority"] == "critical"
    assert applied == [
        {
            "user_id": BOB,
            "action_type": "temporary_ban",
            "reason": "Automatic: 5 harassment reports",
            "duration_hours": 72,
            "report_id": REPORT,
        }
    ]
    assert created["action"]["action_type"] == "temporary_ban"


def test_first_report_takes_no_action(monkeypatch, profiles):
    monkeypatch.setattr(moderation, "find_duplicate_report", lambda db, reporter, reported, content_id: False)
    monkeypatch.setattr(moderation, "insert_report", lambda db, reporter_id, report: {**report, "id": REPORT})
    monkeypatch.setattr(moderation, "notify_admins", lambda db, report: 0)
    monkeypatch.setattr(moderation, "count_recent_reports", lambda db, user_id, report_type: 1)
    assert moderation.create_report(None, ALICE, _report_payload(report_type="spam"))["action"] is None
