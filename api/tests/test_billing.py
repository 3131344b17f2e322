from datetime import datetime, timezone
from decimal import Decimal

import pytest

from globalmatch import config
from globalmatch.services import billing


class _Result:
    rowcount = 1

    def __init__(self, row=None):
        self._row = row

    def first(self):
        return self._row


class FakeDB:
    def __init__(self):
        self.calls = []
        self.payment_ids = set()

    def execute(self, stmt, params=None):
        sql, params = str(stmt), params or {}
        self.calls.append((sql, params))
        if "INSERT INTO payments" in sql:
            self.payment_ids.add(params.get("provider_payment_id"))
        if "FROM payments" in sql:
            return _Result((1,) if params.get("provider_payment_id") in self.payment_ids else None)
        return _Result()


def test_krw_amounts_are_zero_decimal():
    assert billing.amount_from_stripe(24900, "krw") == Decimal(24900)
    assert billing.amount_to_stripe(9900, "KRW") == 9900


def test_two_decimal_currency_amounts_are_scaled():
    assert billing.amount_from_stripe(1999, "usd") == Decimal("19.99")
    assert billing.amount_to_stripe("19.99", "usd") == 1999
    assert billing.amount_from_stripe(None, "usd") == Decimal(0)


def test_add_months_clamps_to_month_end():
    start = datetime(2026, 1, 31, 9, 30, tzinfo=timezone.utc)
    assert billing.add_months(start, 1) == datetime(2026, 2, 28, 9, 30, tzinfo=timezone.utc)
    assert billing.add_months(start, 12) == datetime(2027, 1, 31, 9, 30, tzinfo=timezone.utc)
    assert billing.add_months(datetime(2026, 11, 15), 3) == datetime(2027, 2, 15)


def test_default_plans_match_catalogue():
    names = [(p["name"], p["price"], p["duration_months"]) for p in billing.DEFAULT_PLANS]
    assert names == [("Basic", 9900, 1), ("Premium", 24900, 3), ("Gold", 79900, 12)]


def test_checkout_requires_stripe_configuration(monkeypatch):
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "")
    with pytest.raises(billing.BillingNotConfigured):
        billing.create_checkout_session(FakeDB(), {"id": "u1", "email": "a@b.co"}, "plan")


def test_construct_event_requires_webhook_secret(monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "")
    with pytest.raises(billing.BillingNotConfigured):
        billing.construct_event(b"{}", "sig")


def test_checkout_completed_records_subscription_and_payment(monkeypatch):
    db = FakeDB()
    notified = []
    monkeypatch.setattr(
        billing,
        "get_plan",
        lambda db, plan_id: {"id": plan_id, "name": "Premium", "duration_months": 3, "price": 24900.0, "is_active": True},
    )
    monkeypatch.setattr(billing.notifications, "create_notification", lambda db, **kwargs: notified.append(kwargs))

    event = {
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "payment_intent": "pi_123",
                "amount_total": 24900,
                "currency": "krw",
                "metadata": {"userId": "11111111-1111-1111-1111-111111111111", "planId": "33333333-3333-3333-3333-333333333333"},
            }
        },
    }
    assert billing.handle_event(db, event) is True

    sql = [s for s, _ in db.calls]
    assert any("INSERT INTO user_subscriptions" in s for s in sql)
    payment = next(p for s, p in db.calls if "INSERT INTO payments" in s)
    assert payment["amount"] == Decimal(24900)
    assert payment["currency"] == "KRW"
    assert payment["provider_payment_id"] == "pi_123"
    assert any("is_premium" in s for s in sql)
    assert notified and notified[0]["user_id"] == "11111111-1111-1111-1111-111111111111"


def test_redelivered_checkout_records_payment_once(monkeypatch):
    db = FakeDB()
    monkeypatch.setattr(
        billing,
        "get_plan",
        lambda db, plan_id: {"id": plan_id, "name": "Basic", "duration_months": 1, "price": 9900.0, "is_active": True},
    )
    monkeypatch.setattr(billing.notifications, "create_notification", lambda db, **kwargs: None)
    event = {
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_2",
                "payment_intent": "pi_456",
                "amount_total": 9900,
                "currency": "krw",
                "metadata": {"userId": "u-1", "planId": "p-1"},
            }
        },
    }

    assert billing.handle_event(db, event) is True
    assert billing.handle_event(db, event) is False

    sql = [s for s, _ in db.calls]
    assert sum("INSERT INTO payments" in s for s in sql) == 1
    assert sum("INSERT INTO user_subscriptions" in s for s in sql) == 1


def test_checkout_completed_without_metadata_is_ignored():
    db = FakeDB()
    assert billing.handle_checkout_completed(db, {"id": "cs_1", "metadata": {}}) is False
    assert db.calls == []


def test_subscription_deleted_uses_metadata_user():
    db = FakeDB()
    handled = billing.handle_subscription_deleted(db, {"id": "sub_1", "metadata": {"userId": "u-1"}})
    assert handled is True
    sql = " ".join(s for s, _ in db.calls)
    assert "status = 'cancelled'" in sql
    assert "is_premium" in sql


def test_unknown_event_is_acknowledged_but_not_handled():
    assert billing.handle_event(FakeDB(), {"type": "invoice.created", "data": {"object": {}}}) is False
