from datetime import datetime, timedelta, timezone

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

import globalmatch.main as m
from globalmatch import config, repo
from globalmatch.auth import security
from globalmatch.auth.deps import get_current_user, require_active_user
from globalmatch.routes import billing as billing_routes
from globalmatch.routes import chat as chat_routes
from globalmatch.routes import match as match_routes
from globalmatch.routes import profile as profile_routes
from globalmatch.routes import safety as safety_routes
from globalmatch.services import billing, chat, matching, moderation, notifications, rate_limit

ME = "11111111-1111-1111-1111-111111111111"
OTHER = "22222222-2222-2222-2222-222222222222"
PLAN = "33333333-3333-3333-3333-333333333333"
ROOM = "77777777-7777-7777-7777-777777777777"


class _DummySession:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, *args, **kwargs):
        return None

    def commit(self):
        return None


def _user(**overrides):
    user = {
        "id": ME,
        "email": "mina@example.com",
        "full_name": "Mina",
        "account_status": "active",
        "suspension_until": None,
        "is_premium": False,
    }
    user.update(overrides)
    return user


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(m, "wait_for_db", lambda: None)
    monkeypatch.setattr(m, "run_migrations", lambda: None)
    rate_limit.limiter.reset()
    yield TestClient(m.app)
    m.app.dependency_overrides.clear()
    rate_limit.limiter.reset()


def _login_as(user):
    m.app.dependency_overrides[get_current_user] = lambda: user
    m.app.dependency_overrides[require_active_user] = lambda: user


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.parametrize("module", ["auth", "match", "chat", "billing", "calls", "translate", "admin"])
def test_scaffold_health(client, module):
    resp = client.get(f"/_scaffold/{module}/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "module": module}


def test_protected_route_requires_auth(client):
    assert client.get("/matches").status_code == 401
    assert client.get("/notifications").status_code == 401


def test_register_rejects_invalid_email(client):
    resp = client.post(
        "/auth/register",
        json={"email": "nope", "password": "longenough", "full_name": "Mina", "gender": "female", "country": "한국"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid email format"


def test_register_is_rate_limited(client, monkeypatch):
    monkeypatch.setattr(
        rate_limit.limiter,
        "check",
        lambda key, limit, window_seconds: rate_limit.RateDecision(allowed=False, retry_after_seconds=7),
    )
    resp = client.post("/auth/register", json={})
    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "7"


def test_suspended_user_cannot_like(client):
    until = datetime.now(timezone.utc) + timedelta(hours=72)
    m.app.dependency_overrides[get_current_user] = lambda: _user(account_status="suspended", suspension_until=until)
    resp = client.post(f"/matches/like/{OTHER}")
    assert resp.status_code == 403
    assert resp.json()["detail"].startswith("Account suspended")


def test_cannot_report_yourself(client, monkeypatch):
    _login_as(_user())
    monkeypatch.setattr(safety_routes, "SessionLocal", lambda: _DummySession())
    resp = client.post("/reports", json={"reported_user_id": ME, "report_type": "spam"})
    assert resp.status_code == 400
    assert "yourself" in resp.json()["detail"]


def test_like_creates_mutual_match(client, monkeypatch):
    _login_as(_user())
    notified = []
    monkeypatch.setattr(match_routes, "SessionLocal", lambda: _DummySession())
    monkeypatch.setattr(moderation, "is_blocked", lambda db, a, b: False)
    monkeypatch.setattr(
        repo,
        "get_profile",
        lambda db, user_id: {"id": user_id, "email": f"{user_id[:4]}@example.com", "full_name": "Sam", "account_status": "active"},
    )
    monkeypatch.setattr(
        matching,
        "like_user",
        lambda db, user_id, target: matching.LikeResult(match_id="m-1", is_match=True, newly_mutual=True, room_id="r-1"),
    )
    monkeypatch.setattr(match_routes, "log_user_activity", lambda db, **kwargs: None)
    monkeypatch.setattr(match_routes, "log_product_event", lambda db, **kwargs: None)
    monkeypatch.setattr(notifications, "notify_new_match", lambda db, user_id, name, **kwargs: notified.append(user_id))
    monkeypatch.setattr(match_routes.mailer, "send_match_email", lambda *args: True)

    resp = client.post(f"/matches/like/{OTHER}")
    assert resp.status_code == 200
    assert resp.json() == {"is_match": True, "match_id": "m-1", "room_id": "r-1"}
    assert sorted(notified) == [ME, OTHER]


def test_like_blocked_user_is_forbidden(client, monkeypatch):
    _login_as(_user())
    monkeypatch.setattr(match_routes, "SessionLocal", lambda: _DummySession())
    monkeypatch.setattr(moderation, "is_blocked", lambda db, a, b: True)
    assert client.post(f"/matches/like/{OTHER}").status_code == 403


def test_like_self_is_rejected(client):
    _login_as(_user())
    assert client.post(f"/matches/like/{ME}").status_code == 400


def test_checkout_without_stripe_is_unavailable(client, monkeypatch):
    _login_as(_user())
    monkeypatch.setattr(billing_routes, "SessionLocal", lambda: _DummySession())
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "")
    resp = client.post("/billing/checkout", json={"plan_id": PLAN})
    assert resp.status_code == 503


def test_webhook_rejects_bad_payload(client, monkeypatch):
    def _bad(payload, sig):
        raise ValueError("bad json")

    monkeypatch.setattr(billing, "construct_event", _bad)
    resp = client.post("/billing/webhook", content=b"not-json", headers={"stripe-signature": "t=1,v1=x"})
    assert resp.status_code == 400


def test_webhook_without_secret_is_unavailable(client, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "")
    resp = client.post("/billing/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})
    assert resp.status_code == 503


def test_webhook_dispatches_verified_event(client, monkeypatch):
    seen = []
    monkeypatch.setattr(billing, "construct_event", lambda payload, sig: object())
    monkeypatch.setattr(billing, "handle_event", lambda db, event: seen.append(event["type"]) or True)
    monkeypatch.setattr(billing_routes, "SessionLocal", lambda: _DummySession())
    resp = client.post(
        "/billing/webhook",
        content=b'{"type": "checkout.session.completed", "data": {"object": {}}}',
        headers={"stripe-signature": "t=1,v1=x"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "handled": True}
    assert seen == ["checkout.session.completed"]


def test_translate_uses_mock_without_provider_key(client, monkeypatch):
    _login_as(_user())
    monkeypatch.setattr(config, "GOOGLE_TRANSLATE_API_KEY", "")
    resp = client.post("/translate", json={"text": "Hello", "target_language": "ko"})
    assert resp.status_code == 200
    assert resp.json()["translated_text"] == "안녕하세요"

    bad = client.post("/translate", json={"text": "Hello", "target_language": "xx"})
    assert bad.status_code == 400


def test_country_language_is_public(client):
    resp = client.get("/translate/country-language", params={"country": "독일"})
    assert resp.json() == {"country": "독일", "language": "de"}


def test_admin_requires_authentication(client, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_TOKEN", "")
    assert client.get("/admin/dashboard").status_code == 401


def test_admin_rejects_regular_user(client, monkeypatch):
    monkeypatch.setattr(security, "JWT_SECRET", "test-secret")
    monkeypatch.setattr(config, "ADMIN_EMAILS", ["admin@example.com"])
    monkeypatch.setattr(repo, "get_user_by_id", lambda user_id: {"id": user_id, "email": "mina@example.com"})
    token = security.create_access_token(ME, "mina@example.com")
    resp = client.get("/admin/dashboard", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 403


def test_auth_routes_limit_by_address_and_user_routes_by_account(client, monkeypatch):
    keys = []

    def _check(key, limit, window_seconds):
        keys.append(key)
        return rate_limit.RateDecision(allowed=True, retry_after_seconds=0)

    monkeypatch.setattr(rate_limit.limiter, "check", _check)
    client.post("/auth/login", json={}, headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
    _login_as(_user())
    client.post(f"/matches/like/{ME}", headers={"X-Forwarded-For": "203.0.113.7"})
    assert keys == ["auth_login:ip:203.0.113.7", f"match_like:user:{ME}"]


def test_accounts_behind_one_address_have_separate_budgets(client, monkeypatch):
    monkeypatch.setattr(safety_routes, "SessionLocal", lambda: _DummySession())
    self_report = {"reported_user_id": ME, "report_type": "spam"}
    _login_as(_user())
    for _ in range(config.RL_REPORT_LIMIT):
        assert client.post("/reports", json=self_report).status_code == 400
    limited = client.post("/reports", json=self_report)
    assert limited.status_code == 429
    assert limited.headers["X-RateLimit-Limit"] == str(config.RL_REPORT_LIMIT)

    _login_as(_user(id=OTHER))
    assert client.post("/reports", json={"reported_user_id": OTHER, "report_type": "spam"}).status_code == 400


def _room(**overrides):
    room = {"id": ROOM, "match_id": "m-1", "user1_id": ME, "user2_id": OTHER, "is_active": True, "match_active": True}
    room.update(overrides)
    return room


@pytest.fixture
def chat_room(monkeypatch):
    sent = []
    state = {"room": _room(), "blocked": False}
    monkeypatch.setattr(chat_routes, "SessionLocal", lambda: _DummySession())
    monkeypatch.setattr(chat, "get_room", lambda db, room_id: state["room"])
    monkeypatch.setattr(moderation, "is_blocked", lambda db, a, b: state["blocked"])
    monkeypatch.setattr(chat, "send_message", lambda db, **kwargs: sent.append(kwargs) or {"id": "msg-1", **kwargs})
    monkeypatch.setattr(chat_routes, "log_user_activity", lambda db, **kwargs: None)
    monkeypatch.setattr(repo, "touch_last_active", lambda db, user_id: None)
    monkeypatch.setattr(notifications, "notify_new_message", lambda *args, **kwargs: None)
    state["sent"] = sent
    return state


def test_send_to_inactive_room_is_rejected(client, chat_room):
    _login_as(_user())
    chat_room["room"] = _room(match_active=False)
    resp = client.post(f"/chat/rooms/{ROOM}/messages", json={"content": "hi"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Chat room is no longer active"
    assert chat_room["sent"] == []


def test_send_to_blocked_partner_is_forbidden(client, chat_room):
    _login_as(_user())
    chat_room["blocked"] = True
    assert client.post(f"/chat/rooms/{ROOM}/messages", json={"content": "hi"}).status_code == 403
    assert chat_room["sent"] == []


def test_message_length_limit(client, chat_room):
    _login_as(_user())
    too_long = client.post(f"/chat/rooms/{ROOM}/messages", json={"content": "a" * (config.MESSAGE_MAX_LENGTH + 1)})
    assert too_long.status_code == 400
    assert chat_room["sent"] == []

    ok = client.post(f"/chat/rooms/{ROOM}/messages", json={"content": "a" * config.MESSAGE_MAX_LENGTH})
    assert ok.status_code == 201
    assert len(chat_room["sent"]) == 1


def test_non_participant_cannot_send(client, chat_room):
    _login_as(_user(id="99999999-9999-9999-9999-999999999999"))
    assert client.post(f"/chat/rooms/{ROOM}/messages", json={"content": "hi"}).status_code == 403


@pytest.mark.parametrize(
    "payload",
    [
        {"height": 99},
        {"height": 251},
        {"height": "tall"},
        {"bio": "x" * 501},
        {"interests": [f"i{n}" for n in range(21)]},
        {"full_name": "  "},
        {"gender": "other"},
        {},
    ],
)
def test_profile_update_rejects_out_of_bounds(client, monkeypatch, payload):
    _login_as(_user())
    monkeypatch.setattr(repo, "update_profile", lambda user_id, changes: pytest.fail("must not write"))
    assert client.put("/profiles/me", json=payload).status_code == 400


def test_profile_update_accepts_bounds(client, monkeypatch):
    _login_as(_user())
    written = []
    monkeypatch.setattr(repo, "update_profile", lambda user_id, changes: written.append(changes) or {"id": user_id, **changes})
    monkeypatch.setattr(profile_routes, "SessionLocal", lambda: _DummySession())
    monkeypatch.setattr(profile_routes, "log_product_event", lambda db, **kwargs: None)
    resp = client.put("/profiles/me", json={"height": 250, "bio": "x" * 500, "interests": ["a", "a", "b"]})
    assert resp.status_code == 200
    assert written == [{"height": 250, "bio": "x" * 500, "interests": ["a", "b"]}]


def test_repeat_block_returns_conflict(client, monkeypatch):
    _login_as(_user())
    monkeypatch.setattr(safety_routes, "SessionLocal", lambda: _DummySession())

    def _already(db, blocker, blocked, reason):
        raise FileExistsError("User already blocked")

    monkeypatch.setattr(moderation, "block_user", _already)
    resp = client.post("/blocks", json={"blocked_user_id": OTHER})
    assert resp.status_code == 409


@pytest.mark.parametrize("error,status", [(FileExistsError("dup"), 409), (LookupError("gone"), 404)])
def test_report_errors_map_to_status(client, monkeypatch, error, status):
    _login_as(_user())
    monkeypatch.setattr(safety_routes, "SessionLocal", lambda: _DummySession())

    def _fail(db, reporter_id, payload):
        raise error

    monkeypatch.setattr(moderation, "create_report", _fail)
    resp = client.post("/reports", json={"reported_user_id": OTHER, "report_type": "spam"})
    assert resp.status_code == status


def test_webhook_processes_event_in_worker_thread(client, monkeypatch):
    processed = []
    monkeypatch.setattr(billing, "construct_event", lambda payload, sig: object())
    monkeypatch.setattr(billing_routes, "_process_event", lambda event: processed.append(event["type"]) or False)
    resp = client.post("/billing/webhook", content=b'{"type": "invoice.created", "data": {"object": {}}}', headers={"stripe-signature": "t=1,v1=x"})
    assert resp.json() == {"received": True, "handled": False}
    assert processed == ["invoice.created"]
