from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text

from globalmatch.repo import PROFILE_COLUMNS


def dashboard_summary(db, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    row = db.execute(
        text(
            """
            SELECT
              (SELECT COUNT(1) FROM profiles) AS total_users,
              (SELECT COUNT(1) FROM profiles WHERE verification_status = 'verified') AS verified_users,
              (SELECT COUNT(1) FROM profiles WHERE is_premium) AS premium_users,
              (SELECT COUNT(1) FROM matches WHERE is_mutual) AS total_matches,
              (SELECT COUNT(1) FROM messages) AS total_messages,
              (SELECT COUNT(1) FROM profiles WHERE last_active >= :day_ago) AS daily_active_users,
              (SELECT COALESCE(SUM(amount), 0) FROM payments WHERE payment_status = 'completed') AS revenue,
              (SELECT COUNT(1) FROM reports WHERE status = 'pending') AS pending_reports
            """
        ),
        {"day_ago": now - timedelta(hours=24)},
    ).mappings().first()
    row = dict(row or {})
    out = {k: int(row.get(k) or 0) for k in (
        "total_users",
        "verified_users",
        "premium_users",
        "total_matches",
        "total_messages",
        "daily_active_users",
        "pending_reports",
    )}
    out["revenue"] = float(row.get("revenue") or 0)
    return out


def month_starts(months: int, today: date | None = None) -> list[date]:
    """First day of each of the last `months` months, oldest first, current month last."""
    today = today or date.today()
    year, month = today.year, today.month
    out = []
    for _ in range(months):
        out.append(date(year, month, 1))
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    return list(reversed(out))


def monthly_stats(db, months: int = 6, today: date | None = None) -> list[dict[str, Any]]:
    starts = month_starts(months, today)
    since = starts[0]
    rows = db.execute(
        text(
            """
            SELECT month, SUM(new_users) AS new_users, SUM(new_matches) AS new_matches, SUM(revenue) AS revenue
            FROM (
              SELECT date_trunc('month', created_at)::date AS month, COUNT(1) AS new_users, 0 AS new_matches, 0 AS revenue
              FROM profiles WHERE created_at >= :since GROUP BY 1
              UNION ALL
              SELECT date_trunc('month', matched_at)::date, 0, COUNT(1), 0
              FROM matches WHERE is_mutual AND matched_at >= :since GROUP BY 1
              UNION ALL
              SELECT date_trunc('month', created_at)::date, 0, 0, SUM(amount)
              FROM payments WHERE payment_status = 'completed' AND created_at >= :since GROUP BY 1
            ) t
            GROUP BY month
            """
        ),
        {"since": since},
    ).mappings().all()
    by_month = {str(r["month"])[:7]: r for r in rows}
    out = []
    for start in starts:
        key = start.isoformat()[:7]
        r = by_month.get(key)
        out.append(
            {
                "month": key,
                "new_users": int(r["new_users"] or 0) if r else 0,
                "new_matches": int(r["new_matches"] or 0) if r else 0,
                "revenue": float(r["revenue"] or 0) if r else 0.0,
            }
        )
    return out


def search_users(
    db,
    *,
    search: str | None = None,
    verification_status: str | None = None,
    is_premium: bool | None = None,
    country: str | None = None,
    account_status: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> dict[str, Any]:
    clauses = []
    params: dict[str, Any] = {"limit": limit, "offset": offset}
    if search:
        clauses.append("(p.full_name ILIKE :search OR p.email ILIKE :search)")
        params["search"] = f"%{search}%"
    if verification_status:
        clauses.append("p.verification_status = :verification_status")
        params["verification_status"] = verification_status
    if is_premium is not None:
        clauses.append("p.is_premium = :is_premium")
        params["is_premium"] = is_premium
    if country:
        clauses.append("p.country = :country")
        params["country"] = country
    if account_status:
        clauses.append("p.account_status = :account_status")
        params["account_status"] = account_status
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    total = db.execute(text(f"SELECT COUNT(1) FROM profiles p {where}"), params).scalar()
    rows = db.execute(
        text(
            f"""
            SELECT {PROFILE_COLUMNS},
              (SELECT COUNT(1) FROM matches m
                 WHERE m.is_mutual AND (m.user1_id = p.id OR m.user2_id = p.id)) AS match_count,
              (SELECT COUNT(1) FROM messages msg WHERE msg.sender_id = p.id) AS message_count
            FROM profiles p
            {where}
            ORDER BY p.created_at DESC
            LIMIT :limit OFFSET :offset
            """
        ),
        params,
    ).mappings().all()
    items = []
    for r in rows:
        item = dict(r)
        item["id"] = str(item["id"])
        item["interests"] = list(item.get("interests") or [])
        item["languages"] = list(item.get("languages") or [])
        item["match_count"] = int(item.get("match_count") or 0)
        item["message_count"] = int(item.get("message_count") or 0)
        items.append(item)
    return {"items": items, "total": int(total or 0)}


def set_verification_status(db, user_id: str, status: str) -> bool:
    result = db.execute(
        text(
            """
            UPDATE profiles SET verification_status = :status, updated_at = NOW()
            WHERE id = CAST(:id AS uuid)
            """
        ),
        {"id": user_id, "status": status},
    )
    return bool(result.rowcount)
