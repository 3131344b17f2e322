import smtplib
from datetime import datetime, timezone

import pytest

from globalmatch import config
from globalmatch.services import mailer

TEMPLATE = {
    "id": "44444444-4444-4444-4444-444444444444",
    "name": "welcome",
    "subject": "Welcome to {{app_name}}, {{user_name}}",
    "html_content": "<p>Hi {{ user_name }}</p><a href='{{profile_url}}'>profile</a>",
    "text_content": "Hi {{user_name}} (c) {{current_year}}",
    "template_type": "welcome",
    "is_active": True,
}


class _Result:
    def __init__(self, row=None):
        self._row = row

    def mappings(self):
        return self

    def first(self):
        return self._row


class FakeDB:
    def __init__(self):
        self.calls = []

    def execute(self, stmt, params=None):
        sql = str(stmt)
        self.calls.append((sql, params or {}))
        if "INSERT INTO email_jobs" in sql:
            return _Result({"id": "55555555-5555-5555-5555-555555555555"})
        return _Result()


def test_render_template_fills_defaults_and_blanks_missing(monkeypatch):
    monkeypatch.setattr(config, "APP_URL", "https://globalmatch.test")
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    out = mailer.render_template("{{app_name}} {{app_url}} {{current_year}} [{{unknown}}]", {}, now)
    assert out == f"{config.APP_NAME} https://globalmatch.test 2026 []"


def test_render_template_caller_values_override_defaults():
    assert mailer.render_template("{{ app_name }}!", {"app_name": "GM"}) == "GM!"
    assert mailer.render_template("{{user_name}}", {"user_name": None}) == ""


def test_unsubscribe_changes():
    assert mailer.unsubscribe_changes("marketing") == {"newsletter": False, "promotional": False}
    assert mailer.unsubscribe_changes("all") == {
        "match_notifications": False,
        "message_notifications": False,
        "newsletter": False,
        "promotional": False,
    }
    with pytest.raises(ValueError):
        mailer.unsubscribe_changes("everything")


def test_summarize_statistics_rates():
    campaigns = [
        {"id": 1, "opened_count": 30, "clicked_count": 6},
        {"id": 2, "opened_count": 10, "clicked_count": 4},
    ]
    stats = mailer.summarize_statistics(200, campaigns)
    assert stats["total_opened"] == 40
    assert stats["total_clicked"] == 10
    assert stats["open_rate"] == 20.0
    assert stats["click_rate"] == 25.0
    assert stats["recent_campaigns"][0]["id"] == "1"


def test_summarize_statistics_without_sends():
    stats = mailer.summarize_statistics(0, [])
    assert stats["open_rate"] == 0.0
    assert stats["click_rate"] == 0.0


def test_send_email_renders_and_marks_sent(monkeypatch):
    monkeypatch.setattr(mailer, "get_template", lambda db, name: dict(TEMPLATE))
    delivered = []
    db = FakeDB()

    ok = mailer.send_email(db, "mina@example.com", "welcome", {"user_name": "Mina"}, deliver=delivered.append)

    assert ok is True
    assert delivered[0].to == "mina@example.com"
    assert delivered[0].subject == f"Welcome to {config.APP_NAME}, Mina"
    assert "Hi Mina" in delivered[0].html
    assert any("status = 'sent'" in sql for sql, _ in db.calls)


def test_send_email_marks_job_failed_on_delivery_error(monkeypatch):
    monkeypatch.setattr(mailer, "get_template", lambda db, name: dict(TEMPLATE))

    def _fail(message):
        raise smtplib.SMTPException("relay refused")

    db = FakeDB()
    assert mailer.send_email(db, "mina@example.com", "welcome", deliver=_fail) is False
    failed = [params for sql, params in db.calls if "status = 'failed'" in sql]
    assert failed and failed[0]["error"] == "relay refused"


def test_send_email_scheduled_job_is_only_queued(monkeypatch):
    monkeypatch.setattr(mailer, "get_template", lambda db, name: dict(TEMPLATE))
    delivered = []
    db = FakeDB()
    when = datetime(2026, 12, 24, 9, 0, tzinfo=timezone.utc)

    assert mailer.send_email(db, "a@b.co", "welcome", scheduled_at=when, deliver=delivered.append) is True
    assert delivered == []
    assert len(db.calls) == 1


def test_send_email_inactive_template_is_skipped(monkeypatch):
    monkeypatch.setattr(mailer, "get_template", lambda db, name: {**TEMPLATE, "is_active": False})
    db = FakeDB()
    assert mailer.send_email(db, "a@b.co", "welcome") is False
    assert db.calls == []
