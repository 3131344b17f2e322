from __future__ import annotations

import calendar
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import stripe
from sqlalchemy import text

from globalmatch import config
from globalmatch.services import notifications
from globalmatch.services.events import log_product_event, log_user_activity

logger = logging.getLogger(__name__)

# Stripe amounts for these currencies are already in the major unit.
ZERO_DECIMAL_CURRENCIES = {"bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga", "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf"}

DEFAULT_PLANS = (
    {
        "name": "Basic",
        "price": 9900,
        "duration_months": 1,
        "features": ["Unlimited likes", "See who liked you", "5 super likes per day"],
    },
    {
        "name": "Premium",
        "price": 24900,
        "duration_months": 3,
        "features": ["Everything in Basic", "Message translation", "Video calls", "Priority in discovery"],
    },
    {
        "name": "Gold",
        "price": 79900,
        "duration_months": 12,
        "features": ["Everything in Premium", "Profile boost every month", "Read receipts", "Dedicated support"],
    },
)


class BillingNotConfigured(RuntimeError):
    pass


def stripe_configured() -> bool:
    return bool(config.STRIPE_SECRET_KEY)


def _stripe_client_ready() -> None:
    if not stripe_configured():
        raise BillingNotConfigured("Payment system not configured")
    stripe.api_key = config.STRIPE_SECRET_KEY


def add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def amount_from_stripe(amount: int | None, currency: str) -> Decimal:
    if amount is None:
        return Decimal(0)
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return Decimal(amount)
    return Decimal(amount) / 100


def amount_to_stripe(price: Any, currency: str) -> int:
    value = Decimal(str(price))
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return int(value)
    return int(value * 100)


def _plan_out(row: Any) -> dict[str, Any]:
    features = row["features"]
    if isinstance(features, str):
        features = json.loads(features)
    return {
        "id": str(row["id"]),
        "name": row["name"],
        "price": float(row["price"]),
        "duration_months": int(row["duration_months"]),
        "features": list(features or []),
        "is_active": bool(row["is_active"]),
    }


def seed_default_plans(db) -> int:
    existing = db.execute(text("SELECT COUNT(1) FROM subscription_plans")).scalar()
    if existing:
        return 0
    for plan in DEFAULT_PLANS:
        db.execute(
            text(
                """
                INSERT INTO subscription_plans (name, price, duration_months, features)
                VALUES (:name, :price, :duration_months, CAST(:features AS jsonb))
                ON CONFLICT (name) DO NOTHING
                """
            ),
            {**plan, "features": json.dumps(plan["features"])},
        )
    logger.info(f"[billing] seeded {len(DEFAULT_PLANS)} default plans")
    return len(DEFAULT_PLANS)


def list_plans(db) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT id, name, price, duration_months, features, is_active
            FROM subscription_plans
            WHERE is_active = true
            ORDER BY price ASC
            """
        )
    ).mappings().all()
    return [_plan_out(r) for r in rows]


def get_plan(db, plan_id: str) -> dict[str, Any] | None:
    row = db.execute(
        text(
            """
            SELECT id, name, price, duration_months, features, is_active
            FROM subscription_plans
            WHERE id = CAST(:id AS uuid)
            """
        ),
        {"id": plan_id},
    ).mappings().first()
    return _plan_out(row) if row else None


def _find_or_create_customer(user: dict[str, Any]) -> str:
    found = stripe.Customer.list(email=user["email"], limit=1)
    if found.data:
        return found.data[0].id
    customer = stripe.Customer.create(
        email=user["email"],
        name=user.get("full_name") or None,
        metadata={"userId": user["id"]},
    )
    return customer.id


def create_checkout_session(db, user: dict[str, Any], plan_id: str) -> dict[str, Any]:
    _stripe_client_ready()
    plan = get_plan(db, plan_id)
    if not plan or not plan["is_active"]:
        raise LookupError("Plan not found")

    currency = config.STRIPE_CURRENCY
    checkout_params = {
        "customer": _find_or_create_customer(user),
        "payment_method_types": ["card"],
        "line_items": [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {
                        "name": f"{config.APP_NAME} {plan['name']}",
                        "description": f"{plan['duration_months']} month subscription",
                    },
                    "unit_amount": amount_to_stripe(plan["price"], currency),
                },
                "quantity": 1,
            }
        ],
        "mode": "payment",
        "success_url": f"{config.APP_URL}/premium/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{config.APP_URL}/premium?canceled=true",
        "metadata": {"userId": user["id"], "planId": plan["id"]},
    }
    session = stripe.checkout.Session.create(**checkout_params)
    log_product_event(db, event_name="checkout_started", user_id=user["id"], properties={"plan_id": plan["id"]})
    logger.info(f"[billing] checkout session user_id={user['id']} plan={plan['name']} session={session.id}")
    return {"session_id": session.id, "url": session.url}


def construct_event(payload: bytes, sig_header: str | None):
    """Verify the webhook signature; raises ValueError or stripe.error.SignatureVerificationError."""
    if not config.STRIPE_WEBHOOK_SECRET:
        raise BillingNotConfigured("Webhook secret not configured")
    return stripe.Webhook.construct_event(payload, sig_header, config.STRIPE_WEBHOOK_SECRET)


def _set_premium(db, user_id: str, value: bool) -> None:
    db.execute(
        text("UPDATE profiles SET is_premium = :value, updated_at = NOW() WHERE id = CAST(:id AS uuid)"),
        {"id": user_id, "value": value},
    )


def _payment_recorded(db, provider_payment_id: str | None) -> bool:
    if not provider_payment_id:
        return False
    row = db.execute(
        text("SELECT 1 FROM payments WHERE provider_payment_id = :provider_payment_id LIMIT 1"),
        {"provider_payment_id": provider_payment_id},
    ).first()
    return row is not None


def handle_checkout_completed(db, session: dict[str, Any], now: datetime | None = None) -> bool:
    metadata = session.get("metadata") or {}
    user_id = metadata.get("userId")
    plan_id = metadata.get("planId")
    if not user_id or not plan_id:
        logger.warning(f"[billing] checkout session without metadata id={session.get('id')}")
        return False
    plan = get_plan(db, plan_id)
    if not plan:
        logger.warning(f"[billing] checkout for unknown plan_id={plan_id}")
        return False

    payment_id = session.get("payment_intent") or session.get("id")
    if _payment_recorded(db, payment_id):
        logger.info(f"[billing] checkout already recorded payment_id={payment_id}")
        return False

    now = now or datetime.now(timezone.utc)
    currency = str(session.get("currency") or config.STRIPE_CURRENCY)
    db.execute(
        text(
            """
            INSERT INTO user_subscriptions (user_id, plan_id, start_date, end_date, status, payment_id)
            VALUES (CAST(:user_id AS uuid), CAST(:plan_id AS uuid), :start_date, :end_date, 'active', :payment_id)
            """
        ),
        {
            "user_id": user_id,
            "plan_id": plan_id,
            "start_date": now,
            "end_date": add_months(now, plan["duration_months"]),
            "payment_id": payment_id,
        },
    )
    db.execute(
        text(
            """
            INSERT INTO payments
              (user_id, amount, currency, payment_method, payment_status, payment_provider, provider_payment_id, description)
            VALUES
              (CAST(:user_id AS uuid), :amount, :currency, 'stripe', 'completed', 'stripe', :provider_payment_id, :description)
            """
        ),
        {
            "user_id": user_id,
            "amount": amount_from_stripe(session.get("amount_total"), currency),
            "currency": currency.upper(),
            "provider_payment_id": payment_id,
            "description": f"{plan['name']} subscription",
        },
    )
    _set_premium(db, user_id, True)
    log_user_activity(db, user_id=user_id, activity_type="premium_purchase", metadata={"plan_id": plan_id})
    log_product_event(db, event_name="subscription_started", user_id=user_id, properties={"plan": plan["name"]})
    notifications.create_notification(
        db,
        user_id=user_id,
        notification_type="system",
        title="Premium activated",
        body=f"Your {plan['name']} subscription is active.",
        data={"kind": "subscription", "plan_id": plan_id},
    )
    logger.info(f"[billing] subscription activated user_id={user_id} plan={plan['name']}")
    return True


def handle_payment_failed(db, intent: dict[str, Any]) -> bool:
    result = db.execute(
        text(
            """
            UPDATE payments SET payment_status = 'failed'
            WHERE provider_payment_id = :provider_payment_id
            """
        ),
        {"provider_payment_id": intent.get("id")},
    )
    logger.info(f"[billing] payment failed intent={intent.get('id')} rows={result.rowcount}")
    return bool(result.rowcount)


def _subscription_user_id(subscription: dict[str, Any]) -> str | None:
    user_id = (subscription.get("metadata") or {}).get("userId")
    if user_id:
        return user_id
    customer_id = subscription.get("customer")
    if not customer_id or not stripe_configured():
        return None
    _stripe_client_ready()
    customer = stripe.Customer.retrieve(customer_id)
    return (customer.get("metadata") or {}).get("userId")


def handle_subscription_deleted(db, subscription: dict[str, Any]) -> bool:
    user_id = _subscription_user_id(subscription)
    if not user_id:
        logger.warning(f"[billing] subscription deleted without user id={subscription.get('id')}")
        return False
    db.execute(
        text(
            """
            UPDATE user_subscriptions SET status = 'cancelled'
            WHERE user_id = CAST(:user_id AS uuid) AND status = 'active'
            """
        ),
        {"user_id": user_id},
    )
    _set_premium(db, user_id, False)
    logger.info(f"[billing] subscription cancelled user_id={user_id}")
    return True


def handle_event(db, event: dict[str, Any]) -> bool:
    event_type = event["type"]
    obj = event["data"]["object"]
    if event_type == "checkout.session.completed":
        return handle_checkout_completed(db, obj)
    if event_type == "payment_intent.payment_failed":
        return handle_payment_failed(db, obj)
    if event_type == "customer.subscription.deleted":
        return handle_subscription_deleted(db, obj)
    logger.info(f"[billing] unhandled webhook event type={event_type}")
    return False


def get_active_subscription(db, user_id: str) -> dict[str, Any] | None:
    row = db.execute(
        text(
            """
            SELECT s.id, s.plan_id, s.start_date, s.end_date, s.status, s.payment_id,
                   p.name AS plan_name, p.price AS plan_price, p.duration_months, p.features
            FROM user_subscriptions s
            LEFT JOIN subscription_plans p ON p.id = s.plan_id
            WHERE s.user_id = CAST(:user_id AS uuid)
              AND s.status = 'active'
              AND s.end_date >= NOW()
            ORDER BY s.end_date DESC
            LIMIT 1
            """
        ),
        {"user_id": user_id},
    ).mappings().first()
    if not row:
        return None
    features = row["features"]
    if isinstance(features, str):
        features = json.loads(features)
    return {
        "id": str(row["id"]),
        "start_date": row["start_date"],
        "end_date": row["end_date"],
        "status": row["status"],
        "payment_id": row["payment_id"],
        "plan": {
            "id": str(row["plan_id"]) if row["plan_id"] else None,
            "name": row["plan_name"],
            "price": float(row["plan_price"]) if row["plan_price"] is not None else None,
            "duration_months": row["duration_months"],
            "features": list(features or []),
        },
    }


def is_premium(db, user_id: str) -> bool:
    return get_active_subscription(db, user_id) is not None


def list_payments(db, user_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT id, amount, currency, payment_method, payment_status, payment_provider,
                   provider_payment_id, description, created_at
            FROM payments
            WHERE user_id = CAST(:user_id AS uuid)
            ORDER BY created_at DESC
            """
        ),
        {"user_id": user_id},
    ).mappings().all()
    return [{**dict(r), "id": str(r["id"]), "amount": float(r["amount"])} for r in rows]
