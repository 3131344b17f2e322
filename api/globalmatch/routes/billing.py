import json
import logging
from typing import Any

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from ..auth.deps import get_current_user, require_active_user
from ..database import SessionLocal
from ..deps import parse_uuid
from ..schemas import CheckoutRequest
from ..services import billing

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def billing_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "billing"}


@router.get("/billing/plans")
def get_plans() -> dict[str, Any]:
    with SessionLocal() as db:
        return {"plans": billing.list_plans(db)}


@router.post("/billing/checkout")
def create_checkout(payload: CheckoutRequest, current_user: dict[str, Any] = Depends(require_active_user)) -> dict[str, Any]:
    plan_id = parse_uuid(payload.plan_id, "plan_id")
    with SessionLocal() as db:
        try:
            session = billing.create_checkout_session(db, current_user, plan_id)
        except billing.BillingNotConfigured as exc:
            raise HTTPException(status_code=503, detail=str(exc))
        except LookupError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except stripe.error.StripeError as exc:
            logger.error(f"[billing] checkout failed user_id={current_user['id']} error={exc}")
            raise HTTPException(status_code=502, detail="Payment provider error")
        db.commit()
    return session


def _process_event(event: dict[str, Any]) -> bool:
    with SessionLocal() as db:
        handled = billing.handle_event(db, event)
        db.commit()
    return handled


@router.post("/billing/webhook")
async def stripe_webhook(request: Request) -> dict[str, bool]:
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        billing.construct_event(payload, sig_header)
    except billing.BillingNotConfigured as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.error.SignatureVerificationError:
        logger.warning("[billing] webhook signature verification failed")
        raise HTTPException(status_code=400, detail="Invalid signature")

    handled = await run_in_threadpool(_process_event, json.loads(payload))
    return {"received": True, "handled": handled}


@router.get("/billing/subscription")
def get_subscription(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        return {"subscription": billing.get_active_subscription(db, str(current_user["id"]))}


@router.get("/billing/payments")
def get_payments(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    with SessionLocal() as db:
        return {"payments": billing.list_payments(db, str(current_user["id"]))}


@router.get("/billing/premium")
def get_premium_status(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, bool]:
    with SessionLocal() as db:
        return {"is_premium": billing.is_premium(db, str(current_user["id"]))}
