import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.encoders import jsonable_encoder

from .. import repo as auth_repo
from ..auth.admin_deps import admin_actor, get_current_admin
from ..database import SessionLocal
from ..deps import page_params, parse_uuid
from ..schemas import (
    AdminSendEmailRequest,
    BanRequest,
    EmailTemplateUpdate,
    ProcessReportRequest,
    SuspendRequest,
    VerificationStatusRequest,
)
from ..services import analytics, mailer, metrics, moderation
from ..services.events import log_product_event

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()


def _json(data: Any) -> Any:
    return jsonable_encoder(data)


def _require_profile(db, user_id: str) -> dict[str, Any]:
    profile = auth_repo.get_profile(db, user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


@scaffold_router.get("/health")
def admin_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "admin"}


@router.get("/admin/dashboard")
def admin_dashboard(admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    _ = admin_user
    with SessionLocal() as db:
        summary = metrics.dashboard_summary(db)
    return _json({"summary": summary})


@router.get("/admin/users")
def admin_users_list(
    search: str | None = None,
    verification_status: str | None = None,
    is_premium: bool | None = None,
    country: str | None = None,
    account_status: str | None = None,
    page: int = 1,
    limit: int = 20,
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    _ = admin_user
    size, offset = page_params(page, limit)
    with SessionLocal() as db:
        result = metrics.search_users(
            db,
            search=(search or "").strip() or None,
            verification_status=verification_status,
            is_premium=is_premium,
            country=country,
            account_status=account_status,
            limit=size,
            offset=offset,
        )
    return _json({"users": result["items"], "count": result["total"], "page": page, "limit": size})


@router.get("/admin/users/{user_id}")
def admin_user_detail(user_id: str, admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    _ = admin_user
    uid = parse_uuid(user_id, "user_id")
    with SessionLocal() as db:
        profile = _require_profile(db, uid)
        photos = auth_repo.list_user_photos(db, uid)
        verifications = auth_repo.list_photo_verifications(db, uid)
        latest_by_photo: dict[str, dict[str, Any]] = {}
        for v in verifications:
            key = str(v.get("photo_id") or "")
            if key and key not in latest_by_photo:
                latest_by_photo[key] = v
        actions = moderation.list_safety_actions(db, uid)
        reports = moderation.list_reports_against(db, uid)

    photo_rows = [{**p, "verification": latest_by_photo.get(str(p["id"]))} for p in photos]
    return _json(
        {
            "profile": profile,
            "photos": photo_rows,
            "safety_actions": actions,
            "reports_received": reports,
        }
    )


@router.post("/admin/users/{user_id}/verification")
def admin_set_verification(
    user_id: str,
    payload: VerificationStatusRequest,
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    uid = parse_uuid(user_id, "user_id")
    with SessionLocal() as db:
        if not metrics.set_verification_status(db, uid, payload.status):
            raise HTTPException(status_code=404, detail="User not found")
        log_product_event(
            db,
            event_name="admin_verification_set",
            user_id=uid,
            properties={"status": payload.status, "by": admin_actor(admin_user)},
        )
        db.commit()
    return {"ok": True, "user_id": uid, "verification_status": payload.status}


@router.post("/admin/users/{user_id}/suspend")
def admin_suspend_user(
    user_id: str,
    payload: SuspendRequest,
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    uid = parse_uuid(user_id, "user_id")
    with SessionLocal() as db:
        _require_profile(db, uid)
        action = moderation.apply_safety_action(
            db,
            user_id=uid,
            action_type="temporary_ban",
            reason=payload.reason,
            duration_hours=payload.duration_hours,
            created_by=admin_actor(admin_user),
        )
        db.commit()
    return _json({"action": action})


@router.post("/admin/users/{user_id}/ban")
def admin_ban_user(
    user_id: str,
    payload: BanRequest,
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    uid = parse_uuid(user_id, "user_id")
    with SessionLocal() as db:
        _require_profile(db, uid)
        action = moderation.apply_safety_action(
            db,
            user_id=uid,
            action_type="permanent_ban",
            reason=payload.reason,
            created_by=admin_actor(admin_user),
        )
        db.commit()
    return _json({"action": action})


@router.post("/admin/users/{user_id}/reinstate")
def admin_reinstate_user(user_id: str, admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    uid = parse_uuid(user_id, "user_id")
    with SessionLocal() as db:
        _require_profile(db, uid)
        moderation.reinstate_user(db, uid)
        db.commit()
    logger.info(f"[admin] reinstated user_id={uid} by={admin_actor(admin_user)}")
    return {"ok": True, "user_id": uid}


@router.get("/admin/reports")
def admin_reports_list(
    status: str | None = None,
    priority: str | None = None,
    report_type: str | None = None,
    page: int = 1,
    limit: int = 20,
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    _ = admin_user
    size, offset = page_params(page, limit)
    with SessionLocal() as db:
        result = moderation.search_reports(
            db,
            status=status,
            priority=priority,
            report_type=report_type,
            limit=size,
            offset=offset,
        )
    return _json({"reports": result["items"], "count": result["total"], "page": page, "limit": size})


@router.get("/admin/reports/statistics")
def admin_report_statistics(
    days: int = Query(30, ge=1, le=365),
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    _ = admin_user
    with SessionLocal() as db:
        return _json(moderation.report_statistics(db, days))


@router.patch("/admin/reports/{report_id}")
def admin_process_report(
    report_id: str,
    payload: ProcessReportRequest,
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    rid = parse_uuid(report_id, "report_id")
    with SessionLocal() as db:
        try:
            result = moderation.process_report(
                db,
                rid,
                status=payload.status,
                admin_notes=payload.admin_notes,
                actor=admin_actor(admin_user),
                action=payload.action.model_dump() if payload.action else None,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except LookupError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        db.commit()
    return _json(result)


@router.get("/admin/stats/monthly")
def admin_monthly_stats(
    months: int = Query(6, ge=1, le=24),
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    _ = admin_user
    with SessionLocal() as db:
        return _json({"months": metrics.monthly_stats(db, months)})


@router.get("/admin/stats/countries")
def admin_country_stats(admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    _ = admin_user
    with SessionLocal() as db:
        rows = analytics.country_statistics(db)
    return _json(
        {
            "countries": [
                {"country": r["country"], "user_count": r["user_count"], "premium_users": r["premium_users"]}
                for r in rows
            ]
        }
    )


@router.get("/admin/analytics/platform")
def admin_platform_analytics(
    days: int = Query(30, ge=1, le=365),
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    _ = admin_user
    with SessionLocal() as db:
        return _json(analytics.platform_statistics(db, days))


@router.get("/admin/analytics/countries")
def admin_country_analytics(admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    _ = admin_user
    with SessionLocal() as db:
        return _json({"countries": analytics.country_statistics(db)})


@router.get("/admin/email/templates")
def admin_email_templates(admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    _ = admin_user
    with SessionLocal() as db:
        return _json({"templates": mailer.list_templates(db)})


@router.put("/admin/email/templates/{name}")
def admin_update_email_template(
    name: str,
    payload: EmailTemplateUpdate,
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    with SessionLocal() as db:
        template = mailer.update_template(db, name, payload.model_dump(exclude_none=True))
        if not template:
            raise HTTPException(status_code=404, detail="Template not found")
        db.commit()
    logger.info(f"[admin] email template updated name={name} by={admin_actor(admin_user)}")
    return _json({"template": template})


@router.post("/admin/email/send")
def admin_send_email(payload: AdminSendEmailRequest, admin_user: dict[str, Any] = Depends(get_current_admin)) -> dict[str, Any]:
    _ = admin_user
    with SessionLocal() as db:
        sent = mailer.send_email(db, payload.to.strip(), payload.template_name, payload.variables)
        db.commit()
    if not sent:
        raise HTTPException(status_code=400, detail="Email could not be sent")
    return {"success": True}


@router.get("/admin/email/statistics")
def admin_email_statistics(
    days: int = Query(30, ge=1, le=365),
    admin_user: dict[str, Any] = Depends(get_current_admin),
) -> dict[str, Any]:
    _ = admin_user
    with SessionLocal() as db:
        return _json(mailer.email_statistics(db, days))
