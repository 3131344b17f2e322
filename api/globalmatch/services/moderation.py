from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text

from globalmatch import config, repo
from globalmatch.services import chat, notifications

logger = logging.getLogger(__name__)

REPORT_TYPES = {"inappropriate_content", "harassment", "fake_profile", "spam", "abuse", "other"}
REPORT_CATEGORIES = {"profile", "message", "photo", "behavior"}
REPORT_STATUSES = {"pending", "investigating", "resolved", "rejected"}
REPORT_PRIORITIES = ("low", "medium", "high", "critical")
ACTION_TYPES = {"warning", "temporary_ban", "permanent_ban", "content_removal", "profile_review"}

_PRIORITY_BY_TYPE = {
    "abuse": "critical",
    "harassment": "critical",
    "inappropriate_content": "high",
    "fake_profile": "high",
}

ACTION_MESSAGES = {
    "warning": "Your account received a warning for violating community guidelines.",
    "temporary_ban": "Your account has been temporarily suspended.",
    "permanent_ban": "Your account has been permanently banned.",
    "content_removal": "Some of your content was removed for violating community guidelines.",
    "profile_review": "Your profile is under review by our safety team.",
}


@dataclass(frozen=True)
class EscalationThresholds:
    harassment_ban: int = config.ESCALATION_HARASSMENT_BAN_THRESHOLD
    harassment_ban_hours: int = config.ESCALATION_HARASSMENT_BAN_HOURS
    content_review: int = config.ESCALATION_CONTENT_REVIEW_THRESHOLD
    permanent_ban: int = config.ESCALATION_PERMANENT_BAN_THRESHOLD
    warning: int = config.ESCALATION_WARNING_THRESHOLD


@dataclass
class EscalationDecision:
    action_type: str
    reason: str
    duration_hours: int | None = None


def report_priority(report_type: str) -> str:
    return _PRIORITY_BY_TYPE.get(report_type, "medium")


def validate_report(reporter_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    reported_user_id = str(payload.get("reported_user_id") or "").strip()
    report_type = str(payload.get("report_type") or "").strip()
    if not reported_user_id or not report_type:
        raise ValueError("reported_user_id and report_type are required")
    try:
        reported_user_id = str(uuid.UUID(reported_user_id))
    except ValueError:
        raise ValueError("reported_user_id must be a valid UUID")
    if report_type not in REPORT_TYPES:
        raise ValueError(f"report_type must be one of: {', '.join(sorted(REPORT_TYPES))}")
    category = str(payload.get("category") or "profile").strip()
    if category not in REPORT_CATEGORIES:
        raise ValueError(f"category must be one of: {', '.join(sorted(REPORT_CATEGORIES))}")
    if reported_user_id == reporter_id:
        raise ValueError("You cannot report yourself")
    evidence = [str(u).strip() for u in (payload.get("evidence_urls") or []) if str(u or "").strip()]
    description = payload.get("description")
    return {
        "reported_user_id": reported_user_id,
        "report_type": report_type,
        "category": category,
        "description": description.strip() if isinstance(description, str) else None,
        "content_id": str(payload["content_id"]).strip() if payload.get("content_id") else None,
        "evidence_urls": evidence,
        "priority": report_priority(report_type),
    }


def decide_escalation(
    report_type: str,
    recent_count: int,
    thresholds: EscalationThresholds | None = None,
) -> EscalationDecision | None:
    """Map the number of recent same-type reports against one user to an automatic action."""
    t = thresholds or EscalationThresholds()
    if report_type == "harassment" and recent_count >= t.harassment_ban:
        return EscalationDecision(
            action_type="temporary_ban",
            reason=f"Automatic: {recent_count} harassment reports",
            duration_hours=t.harassment_ban_hours,
        )
    if report_type == "inappropriate_content" and recent_count >= t.content_review:
        return EscalationDecision(
            action_type="profile_review",
            reason=f"Automatic: {recent_count} inappropriate content reports",
        )
    if recent_count >= t.permanent_ban:
        return EscalationDecision(
            action_type="permanent_ban",
            reason=f"Automatic: {recent_count} {report_type} reports",
        )
    if recent_count >= t.warning:
        return EscalationDecision(
            action_type="warning",
            reason=f"Automatic: {recent_count} {report_type} reports",
        )
    return None


def _report_out(row: Any) -> dict[str, Any]:
    out = dict(row)
    for key in ("id", "reporter_id", "reported_user_id"):
        if out.get(key) is not None:
            out[key] = str(out[key])
    out["evidence_urls"] = list(out.get("evidence_urls") or [])
    return out


REPORT_COLUMNS = """
  id, reporter_id, reported_user_id, report_type, category, description, content_id,
  evidence_urls, priority, status, admin_notes, resolved_at, resolved_by, created_at, updated_at
"""


def find_duplicate_report(db, reporter_id: str, reported_user_id: str, content_id: str | None) -> bool:
    row = db.execute(
        text(
            """
            SELECT 1
            FROM reports
            WHERE reporter_id = CAST(:reporter_id AS uuid)
              AND reported_user_id = CAST(:reported_user_id AS uuid)
              AND content_id IS NOT DISTINCT FROM :content_id
            LIMIT 1
            """
        ),
        {"reporter_id": reporter_id, "reported_user_id": reported_user_id, "content_id": content_id},
    ).first()
    return row is not None


def insert_report(db, reporter_id: str, report: dict[str, Any]) -> dict[str, Any]:
    row = db.execute(
        text(
            f"""
            INSERT INTO reports
              (reporter_id, reported_user_id, report_type, category, description, content_id, evidence_urls, priority)
            VALUES
              (CAST(:reporter_id AS uuid), CAST(:reported_user_id AS uuid), :report_type, :category,
               :description, :content_id, :evidence_urls, :priority)
            RETURNING {REPORT_COLUMNS}
            """
        ),
        {"reporter_id": reporter_id, **report},
    ).mappings().first()
    return _report_out(row)


def count_recent_reports(db, reported_user_id: str, report_type: str, window_days: int | None = None) -> int:
    since = datetime.now(timezone.utc) - timedelta(days=window_days or config.ESCALATION_WINDOW_DAYS)
    value = db.execute(
        text(
            """
            SELECT COUNT(1)
            FROM reports
            WHERE reported_user_id = CAST(:user_id AS uuid)
              AND report_type = :report_type
              AND created_at >= :since
            """
        ),
        {"user_id": reported_user_id, "report_type": report_type, "since": since},
    ).scalar()
    return int(value or 0)


def apply_safety_action(
    db,
    *,
    user_id: str,
    action_type: str,
    reason: str,
    duration_hours: int | None = None,
    report_id: str | None = None,
    created_by: str = "system",
    now: datetime | None = None,
) -> dict[str, Any]:
    if action_type not in ACTION_TYPES:
        raise ValueError(f"action_type must be one of: {', '.join(sorted(ACTION_TYPES))}")
    now = now or datetime.now(timezone.utc)
    expires_at = None
    if action_type == "temporary_ban":
        duration_hours = duration_hours or config.DEFAULT_SUSPENSION_HOURS
        expires_at = now + timedelta(hours=duration_hours)

    row = db.execute(
        text(
            """
            INSERT INTO safety_actions (user_id, action_type, reason, duration_hours, report_id, created_by, expires_at)
            VALUES (CAST(:user_id AS uuid), :action_type, :reason, :duration_hours,
                    CAST(NULLIF(:report_id, '') AS uuid), :created_by, :expires_at)
            RETURNING id, user_id, action_type, reason, duration_hours, report_id, created_by, expires_at, created_at
            """
        ),
        {
            "user_id": user_id,
            "action_type": action_type,
            "reason": reason,
            "duration_hours": duration_hours,
            "report_id": report_id or "",
            "created_by": created_by,
            "expires_at": expires_at,
        },
    ).mappings().first()

    if action_type == "temporary_ban":
        db.execute(
            text(
                """
                UPDATE profiles SET account_status = 'suspended', suspension_until = :until, updated_at = NOW()
                WHERE id = CAST(:user_id AS uuid) AND account_status <> 'banned'
                """
            ),
            {"user_id": user_id, "until": expires_at},
        )
    elif action_type == "permanent_ban":
        db.execute(
            text(
                """
                UPDATE profiles SET account_status = 'banned', banned_at = NOW(), updated_at = NOW()
                WHERE id = CAST(:user_id AS uuid)
                """
            ),
            {"user_id": user_id},
        )
    elif action_type == "profile_review":
        db.execute(
            text(
                """
                UPDATE profiles SET account_status = 'under_review', updated_at = NOW()
                WHERE id = CAST(:user_id AS uuid) AND account_status = 'active'
                """
            ),
            {"user_id": user_id},
        )

    notifications.create_notification(
        db,
        user_id=user_id,
        notification_type="system",
        title="Account notice",
        body=ACTION_MESSAGES[action_type],
        data={"kind": "safety_action", "action_type": action_type},
    )
    logger.info(f"[moderation] action={action_type} user_id={user_id} by={created_by} report_id={report_id}")
    out = dict(row)
    for key in ("id", "user_id", "report_id"):
        if out.get(key) is not None:
            out[key] = str(out[key])
    return out


def reinstate_user(db, user_id: str) -> None:
    db.execute(
        text(
            """
            UPDATE profiles
            SET account_status = 'active', suspension_until = NULL, banned_at = NULL, updated_at = NOW()
            WHERE id = CAST(:user_id AS uuid)
            """
        ),
        {"user_id": user_id},
    )


def escalate(db, report: dict[str, Any]) -> dict[str, Any] | None:
    count = count_recent_reports(db, report["reported_user_id"], report["report_type"])
    decision = decide_escalation(report["report_type"], count)
    if decision is None:
        return None
    return apply_safety_action(
        db,
        user_id=report["reported_user_id"],
        action_type=decision.action_type,
        reason=decision.reason,
        duration_hours=decision.duration_hours,
        report_id=report["id"],
    )


def notify_admins(db, report: dict[str, Any]) -> int:
    admins = repo.list_admin_profiles(db)
    for admin in admins:
        notifications.create_notification(
            db,
            user_id=str(admin["id"]),
            notification_type="system",
            title=f"New {report['priority']} report",
            body=f"{report['report_type']} report filed against user {report['reported_user_id']}",
            data={"kind": "report", "report_id": report["id"]},
        )
    return len(admins)


def create_report(db, reporter_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Validate, store and escalate a user report; returns the report plus any automatic action."""
    report = validate_report(reporter_id, payload)
    if not repo.get_profile(db, report["reported_user_id"]):
        raise LookupError("Reported user not found")
    if find_duplicate_report(db, reporter_id, report["reported_user_id"], report["content_id"]):
        raise FileExistsError("You have already reported this")
    saved = insert_report(db, reporter_id, report)
    notify_admins(db, saved)
    action = escalate(db, saved)
    logger.info(
        f"[moderation] report id={saved['id']} type={saved['report_type']} "
        f"priority={saved['priority']} escalated={action['action_type'] if action else None}"
    )
    return {"report": saved, "action": action}


def list_reports_by_reporter(db, reporter_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            f"""
            SELECT {REPORT_COLUMNS}
            FROM reports
            WHERE reporter_id = CAST(:reporter_id AS uuid)
            ORDER BY created_at DESC
            """
        ),
        {"reporter_id": reporter_id},
    ).mappings().all()
    return [_report_out(r) for r in rows]


def list_reports_against(db, user_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            f"""
            SELECT {REPORT_COLUMNS}
            FROM reports
            WHERE reported_user_id = CAST(:user_id AS uuid)
            ORDER BY created_at DESC
            """
        ),
        {"user_id": user_id},
    ).mappings().all()
    return [_report_out(r) for r in rows]


def search_reports(
    db,
    *,
    status: str | None = None,
    priority: str | None = None,
    report_type: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> dict[str, Any]:
    clauses = []
    params: dict[str, Any] = {"limit": limit, "offset": offset}
    if status:
        clauses.append("r.status = :status")
        params["status"] = status
    if priority:
        clauses.append("r.priority = :priority")
        params["priority"] = priority
    if report_type:
        clauses.append("r.report_type = :report_type")
        params["report_type"] = report_type
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    total = db.execute(text(f"SELECT COUNT(1) FROM reports r {where}"), params).scalar()
    rows = db.execute(
        text(
            f"""
            SELECT r.id, r.reporter_id, r.reported_user_id, r.report_type, r.category, r.description,
                   r.content_id, r.evidence_urls, r.priority, r.status, r.admin_notes, r.resolved_at,
                   r.resolved_by, r.created_at, r.updated_at,
                   rp.full_name AS reporter_name, tp.full_name AS reported_user_name
            FROM reports r
            LEFT JOIN profiles rp ON rp.id = r.reporter_id
            LEFT JOIN profiles tp ON tp.id = r.reported_user_id
            {where}
            ORDER BY
              CASE r.priority WHEN 'critical' THEN 0 WHEN 'high' THEN 1 WHEN 'medium' THEN 2 ELSE 3 END,
              r.created_at DESC
            LIMIT :limit OFFSET :offset
            """
        ),
        params,
    ).mappings().all()
    return {"items": [_report_out(r) for r in rows], "total": int(total or 0)}


def get_report(db, report_id: str) -> dict[str, Any] | None:
    row = db.execute(
        text(f"SELECT {REPORT_COLUMNS} FROM reports WHERE id = CAST(:id AS uuid)"),
        {"id": report_id},
    ).mappings().first()
    return _report_out(row) if row else None


def process_report(
    db,
    report_id: str,
    *,
    status: str,
    admin_notes: str | None,
    actor: str,
    action: dict[str, Any] | None = None,
) -> dict[str, Any]:
    if status not in REPORT_STATUSES:
        raise ValueError(f"status must be one of: {', '.join(sorted(REPORT_STATUSES))}")
    report = get_report(db, report_id)
    if not report:
        raise LookupError("Report not found")

    row = db.execute(
        text(
            f"""
            UPDATE reports
            SET status = :status,
                admin_notes = COALESCE(:admin_notes, admin_notes),
                resolved_at = CASE WHEN :status IN ('resolved', 'rejected') THEN NOW() ELSE resolved_at END,
                resolved_by = CASE WHEN :status IN ('resolved', 'rejected') THEN :actor ELSE resolved_by END,
                updated_at = NOW()
            WHERE id = CAST(:id AS uuid)
            RETURNING {REPORT_COLUMNS}
            """
        ),
        {"id": report_id, "status": status, "admin_notes": admin_notes, "actor": actor},
    ).mappings().first()
    updated = _report_out(row)

    applied = None
    if action:
        applied = apply_safety_action(
            db,
            user_id=updated["reported_user_id"],
            action_type=action["action_type"],
            reason=action.get("reason") or f"Report {report_id}",
            duration_hours=action.get("duration_hours"),
            report_id=report_id,
            created_by=actor,
        )

    notifications.create_notification(
        db,
        user_id=updated["reporter_id"],
        notification_type="system",
        title="Report update",
        body=f"Your report is now {status}.",
        data={"kind": "report_update", "report_id": report_id, "status": status},
    )
    logger.info(f"[moderation] report processed id={report_id} status={status} by={actor}")
    return {"report": updated, "action": applied}


def report_statistics(db, days: int = 30) -> dict[str, Any]:
    since = datetime.now(timezone.utc) - timedelta(days=days)
    rows = db.execute(
        text(
            """
            SELECT report_type, status, priority, COUNT(1) AS n
            FROM reports
            WHERE created_at >= :since
            GROUP BY report_type, status, priority
            """
        ),
        {"since": since},
    ).mappings().all()
    by_type: dict[str, int] = defaultdict(int)
    by_status: dict[str, int] = defaultdict(int)
    by_priority: dict[str, int] = defaultdict(int)
    total = 0
    for r in rows:
        n = int(r["n"])
        total += n
        by_type[r["report_type"]] += n
        by_status[r["status"]] += n
        by_priority[r["priority"]] += n
    return {
        "days": days,
        "total": total,
        "by_type": dict(by_type),
        "by_status": dict(by_status),
        "by_priority": dict(by_priority),
    }


def list_safety_actions(db, user_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT id, action_type, reason, duration_hours, report_id, created_by, expires_at, created_at
            FROM safety_actions
            WHERE user_id = CAST(:user_id AS uuid)
            ORDER BY created_at DESC
            """
        ),
        {"user_id": user_id},
    ).mappings().all()
    return [{**dict(r), "id": str(r["id"]), "report_id": str(r["report_id"]) if r["report_id"] else None} for r in rows]


# Blocks


def is_blocked(db, user_a: str, user_b: str) -> bool:
    row = db.execute(
        text(
            """
            SELECT 1 FROM blocks
            WHERE (blocker_id = CAST(:a AS uuid) AND blocked_id = CAST(:b AS uuid))
               OR (blocker_id = CAST(:b AS uuid) AND blocked_id = CAST(:a AS uuid))
            LIMIT 1
            """
        ),
        {"a": user_a, "b": user_b},
    ).first()
    return row is not None


def _has_block(db, blocker_id: str, blocked_id: str) -> bool:
    row = db.execute(
        text(
            """
            SELECT 1 FROM blocks
            WHERE blocker_id = CAST(:blocker_id AS uuid) AND blocked_id = CAST(:blocked_id AS uuid)
            """
        ),
        {"blocker_id": blocker_id, "blocked_id": blocked_id},
    ).first()
    return row is not None


def _deactivate_pair_match(db, user_a: str, user_b: str) -> None:
    rows = db.execute(
        text(
            """
            UPDATE matches SET is_active = false
            WHERE (user1_id = CAST(:a AS uuid) AND user2_id = CAST(:b AS uuid))
               OR (user1_id = CAST(:b AS uuid) AND user2_id = CAST(:a AS uuid))
            RETURNING id
            """
        ),
        {"a": user_a, "b": user_b},
    ).mappings().all()
    for r in rows:
        chat.deactivate_room_for_match(db, str(r["id"]))


def block_user(db, blocker_id: str, blocked_id: str, reason: str | None = None) -> dict[str, Any]:
    if blocker_id == blocked_id:
        raise ValueError("You cannot block yourself")
    if not repo.get_profile(db, blocked_id):
        raise LookupError("User not found")
    if _has_block(db, blocker_id, blocked_id):
        raise FileExistsError("User already blocked")

    mutual = _has_block(db, blocked_id, blocker_id)
    row = db.execute(
        text(
            """
            INSERT INTO blocks (blocker_id, blocked_id, reason, is_mutual)
            VALUES (CAST(:blocker_id AS uuid), CAST(:blocked_id AS uuid), :reason, :is_mutual)
            RETURNING id, blocker_id, blocked_id, reason, is_mutual, created_at
            """
        ),
        {"blocker_id": blocker_id, "blocked_id": blocked_id, "reason": reason, "is_mutual": mutual},
    ).mappings().first()
    if mutual:
        db.execute(
            text(
                """
                UPDATE blocks SET is_mutual = true
                WHERE blocker_id = CAST(:blocked_id AS uuid) AND blocked_id = CAST(:blocker_id AS uuid)
                """
            ),
            {"blocker_id": blocker_id, "blocked_id": blocked_id},
        )
    _deactivate_pair_match(db, blocker_id, blocked_id)
    logger.info(f"[moderation] block blocker={blocker_id} blocked={blocked_id} mutual={mutual}")
    return {
        "id": str(row["id"]),
        "blocker_id": str(row["blocker_id"]),
        "blocked_id": str(row["blocked_id"]),
        "reason": row["reason"],
        "is_mutual": bool(row["is_mutual"]),
        "created_at": row["created_at"],
    }


def unblock_user(db, blocker_id: str, blocked_id: str) -> bool:
    result = db.execute(
        text(
            """
            DELETE FROM blocks
            WHERE blocker_id = CAST(:blocker_id AS uuid) AND blocked_id = CAST(:blocked_id AS uuid)
            """
        ),
        {"blocker_id": blocker_id, "blocked_id": blocked_id},
    )
    if not result.rowcount:
        return False
    db.execute(
        text(
            """
            UPDATE blocks SET is_mutual = false
            WHERE blocker_id = CAST(:blocked_id AS uuid) AND blocked_id = CAST(:blocker_id AS uuid)
            """
        ),
        {"blocker_id": blocker_id, "blocked_id": blocked_id},
    )
    return True


def list_blocks(db, blocker_id: str, *, limit: int = 20, offset: int = 0) -> dict[str, Any]:
    total = db.execute(
        text("SELECT COUNT(1) FROM blocks WHERE blocker_id = CAST(:blocker_id AS uuid)"),
        {"blocker_id": blocker_id},
    ).scalar()
    rows = db.execute(
        text(
            """
            SELECT b.id, b.blocked_id, b.reason, b.is_mutual, b.created_at,
                   p.full_name, p.avatar_url, p.country
            FROM blocks b
            JOIN profiles p ON p.id = b.blocked_id
            WHERE b.blocker_id = CAST(:blocker_id AS uuid)
            ORDER BY b.created_at DESC
            LIMIT :limit OFFSET :offset
            """
        ),
        {"blocker_id": blocker_id, "limit": limit, "offset": offset},
    ).mappings().all()
    items = [
        {
            "id": str(r["id"]),
            "blocked_user": {
                "id": str(r["blocked_id"]),
                "full_name": r["full_name"],
                "avatar_url": r["avatar_url"],
                "country": r["country"],
            },
            "reason": r["reason"],
            "is_mutual": bool(r["is_mutual"]),
            "created_at": r["created_at"],
        }
        for r in rows
    ]
    return {"items": items, "total": int(total or 0)}
