import pytest

from globalmatch.services import events
from globalmatch.services.analytics import BehaviorStats, engagement_score
from globalmatch.services.chat import message_preview
from globalmatch.services.notifications import default_settings, push_allowed


class FakeDB:
    def __init__(self):
        self.calls = []

    def execute(self, stmt, params=None):
        self.calls.append((str(stmt), params or {}))


def test_engagement_score_empty_history_is_zero():
    assert engagement_score(BehaviorStats()) == 0


def test_engagement_score_components():
    stats = BehaviorStats(
        total_logins=10,
        total_profile_views=20,
        total_likes_sent=10,
        total_likes_received=10,
        total_matches=5,
        total_messages_sent=30,
        total_messages_received=20,
    )
    # logins 5 + views 4 + likes 6 + match rate 0.5 * 15 + messages 5
    assert stats.match_rate == 0.5
    assert engagement_score(stats) == 28


def test_engagement_score_is_capped_at_100():
    stats = BehaviorStats(
        total_logins=1000,
        total_profile_views=1000,
        total_likes_sent=1000,
        total_likes_received=1000,
        total_matches=1000,
        total_messages_sent=1000,
        total_messages_received=1000,
    )
    assert engagement_score(stats) == 100


def test_match_rate_without_likes_sent():
    assert BehaviorStats(total_matches=3).match_rate == 0.0


def test_message_preview():
    assert message_preview("hi there") == "hi there"
    assert message_preview("x" * 60) == "x" * 50 + "..."
    assert message_preview("/uploads/a.jpg", "image") == "Sent a photo"
    assert message_preview("/uploads/a.pdf", "file") == "Sent a file"


def test_push_allowed_respects_master_switch_and_type_flags():
    settings = default_settings()
    assert push_allowed(settings, "message")
    assert push_allowed(None, "like")

    assert not push_allowed({**settings, "like_notifications": False}, "like")
    assert push_allowed({**settings, "like_notifications": False}, "message")
    assert not push_allowed({**settings, "push_enabled": False}, "system")
    assert push_allowed({**settings, "match_notifications": False}, "system")


def test_log_user_activity_records_row():
    db = FakeDB()
    events.log_user_activity(db, user_id="u-1", activity_type="like", metadata={"target_id": "u-2"})
    sql, params = db.calls[0]
    assert "INSERT INTO user_activity" in sql
    assert params["activity_type"] == "like"
    assert params["metadata"] == '{"target_id": "u-2"}'


def test_log_user_activity_rejects_unknown_type():
    with pytest.raises(ValueError):
        events.log_user_activity(FakeDB(), user_id="u-1", activity_type="teleport")


def test_log_product_event_allows_anonymous_user():
    db = FakeDB()
    events.log_product_event(db, event_name="auth_registered")
    _, params = db.calls[0]
    assert params["user_id"] == ""
    assert params["properties"] == "{}"
