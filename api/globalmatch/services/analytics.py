from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text


@dataclass
class BehaviorStats:
    total_logins: int = 0
    total_profile_views: int = 0
    total_likes_sent: int = 0
    total_likes_received: int = 0
    total_matches: int = 0
    total_messages_sent: int = 0
    total_messages_received: int = 0

    @property
    def match_rate(self) -> float:
        if self.total_likes_sent <= 0:
            return 0.0
        return self.total_matches / self.total_likes_sent


def engagement_score(stats: BehaviorStats) -> int:
    score = 0.0
    score += min(stats.total_logins * 0.5, 30)
    score += min(stats.total_profile_views * 0.2, 20)
    score += min((stats.total_likes_sent + stats.total_likes_received) * 0.3, 20)
    score += stats.match_rate * 15
    score += min((stats.total_messages_sent + stats.total_messages_received) * 0.1, 15)
    return int(round(min(100.0, max(0.0, score))))


def _since(days: int, now: datetime | None = None) -> datetime:
    return (now or datetime.now(timezone.utc)) - timedelta(days=days)


def behavior_stats(db, user_id: str, days: int = 30) -> BehaviorStats:
    row = db.execute(
        text(
            """
            SELECT
              (SELECT COUNT(1) FROM user_activity
                 WHERE user_id = CAST(:user_id AS uuid) AND activity_type = 'login' AND created_at >= :since) AS logins,
              (SELECT COUNT(1) FROM user_activity
                 WHERE user_id = CAST(:user_id AS uuid) AND activity_type = 'profile_view' AND created_at >= :since) AS profile_views,
              (SELECT COUNT(1) FROM matches
                 WHERE created_at >= :since
                   AND ((user1_id = CAST(:user_id AS uuid) AND user1_liked)
                     OR (user2_id = CAST(:user_id AS uuid) AND user2_liked))) AS likes_sent,
              (SELECT COUNT(1) FROM matches
                 WHERE created_at >= :since
                   AND ((user1_id = CAST(:user_id AS uuid) AND user2_liked)
                     OR (user2_id = CAST(:user_id AS uuid) AND user1_liked))) AS likes_received,
              (SELECT COUNT(1) FROM matches
                 WHERE is_mutual AND matched_at >= :since
                   AND (user1_id = CAST(:user_id AS uuid) OR user2_id = CAST(:user_id AS uuid))) AS matches,
              (SELECT COUNT(1) FROM messages
                 WHERE sender_id = CAST(:user_id AS uuid) AND created_at >= :since) AS messages_sent,
              (SELECT COUNT(1) FROM messages msg
                 JOIN chat_rooms r ON r.id = msg.room_id
                 JOIN matches m ON m.id = r.match_id
                 WHERE msg.created_at >= :since
                   AND msg.sender_id <> CAST(:user_id AS uuid)
                   AND (m.user1_id = CAST(:user_id AS uuid) OR m.user2_id = CAST(:user_id AS uuid))) AS messages_received
            """
        ),
        {"user_id": user_id, "since": _since(days)},
    ).mappings().first()
    row = row or {}
    return BehaviorStats(
        total_logins=int(row.get("logins") or 0),
        total_profile_views=int(row.get("profile_views") or 0),
        total_likes_sent=int(row.get("likes_sent") or 0),
        total_likes_received=int(row.get("likes_received") or 0),
        total_matches=int(row.get("matches") or 0),
        total_messages_sent=int(row.get("messages_sent") or 0),
        total_messages_received=int(row.get("messages_received") or 0),
    )


def popular_hours(db, user_id: str, days: int = 30) -> list[dict[str, int]]:
    rows = db.execute(
        text(
            """
            SELECT EXTRACT(HOUR FROM created_at)::int AS hour, COUNT(1) AS n
            FROM user_activity
            WHERE user_id = CAST(:user_id AS uuid) AND created_at >= :since
            GROUP BY 1
            ORDER BY n DESC, hour
            LIMIT 5
            """
        ),
        {"user_id": user_id, "since": _since(days)},
    ).mappings().all()
    return [{"hour": int(r["hour"]), "count": int(r["n"])} for r in rows]


def user_analytics(db, user_id: str, days: int = 30) -> dict[str, Any]:
    stats = behavior_stats(db, user_id, days)
    return {
        "days": days,
        "stats": asdict(stats),
        "match_rate": round(stats.match_rate * 100, 1),
        "engagement_score": engagement_score(stats),
        "popular_hours": popular_hours(db, user_id, days),
    }


def _ratio_pct(num: int, den: int) -> float:
    if den <= 0:
        return 0.0
    return round(num / den * 100, 1)


def platform_statistics(db, days: int = 30, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    row = db.execute(
        text(
            """
            SELECT
              (SELECT COUNT(1) FROM profiles) AS total_users,
              (SELECT COUNT(1) FROM profiles WHERE created_at >= :since) AS new_users,
              (SELECT COUNT(1) FROM profiles WHERE is_premium) AS premium_users,
              (SELECT COUNT(DISTINCT user_id) FROM user_activity WHERE created_at >= :day_ago) AS active_today,
              (SELECT COUNT(DISTINCT user_id) FROM user_activity WHERE created_at >= :week_ago) AS active_week,
              (SELECT COUNT(DISTINCT user_id) FROM user_activity WHERE created_at >= :since) AS active_period,
              (SELECT COUNT(1) FROM matches WHERE is_mutual) AS total_matches,
              (SELECT COUNT(1) FROM matches WHERE is_mutual AND matched_at >= :since) AS period_matches,
              (SELECT COUNT(1) FROM messages) AS total_messages,
              (SELECT COUNT(1) FROM messages WHERE created_at >= :since) AS period_messages,
              (SELECT COALESCE(SUM(amount), 0) FROM payments WHERE payment_status = 'completed') AS revenue_total,
              (SELECT COALESCE(SUM(amount), 0) FROM payments
                 WHERE payment_status = 'completed' AND created_at >= :since) AS revenue_period,
              (SELECT COUNT(1) FROM profiles p
                 WHERE p.created_at >= :week_ago
                   AND EXISTS (SELECT 1 FROM user_activity a WHERE a.user_id = p.id)) AS retained_week,
              (SELECT COUNT(1) FROM profiles WHERE created_at >= :week_ago) AS new_week
            """
        ),
        {
            "since": now - timedelta(days=days),
            "day_ago": now - timedelta(days=1),
            "week_ago": now - timedelta(days=7),
        },
    ).mappings().first()
    row = dict(row or {})
    total_users = int(row.get("total_users") or 0)
    return {
        "days": days,
        "total_users": total_users,
        "new_users": int(row.get("new_users") or 0),
        "premium_users": int(row.get("premium_users") or 0),
        "active_users_today": int(row.get("active_today") or 0),
        "active_users_week": int(row.get("active_week") or 0),
        "active_users_period": int(row.get("active_period") or 0),
        "total_matches": int(row.get("total_matches") or 0),
        "period_matches": int(row.get("period_matches") or 0),
        "total_messages": int(row.get("total_messages") or 0),
        "period_messages": int(row.get("period_messages") or 0),
        "revenue_total": float(row.get("revenue_total") or 0),
        "revenue_period": float(row.get("revenue_period") or 0),
        "conversion_rate": _ratio_pct(int(row.get("premium_users") or 0), total_users),
        "retention_rate_7d": _ratio_pct(int(row.get("retained_week") or 0), int(row.get("new_week") or 0)),
        "daily_activity": activity_trend(db, days, now),
    }


def activity_trend(db, days: int = 7, now: datetime | None = None) -> list[dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    rows = db.execute(
        text(
            """
            SELECT created_at::date AS day, COUNT(1) AS n
            FROM user_activity
            WHERE created_at >= :since
            GROUP BY 1
            """
        ),
        {"since": now - timedelta(days=days)},
    ).mappings().all()
    counts = Counter({str(r["day"]): int(r["n"]) for r in rows})
    out = []
    for offset in range(days - 1, -1, -1):
        day = (now - timedelta(days=offset)).date().isoformat()
        out.append({"date": day, "activity_count": counts.get(day, 0)})
    return out


def country_statistics(db) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT
              p.country,
              COUNT(1) AS user_count,
              COUNT(1) FILTER (WHERE p.is_premium) AS premium_users,
              COUNT(1) FILTER (WHERE p.last_active >= NOW() - INTERVAL '7 days') AS active_users,
              COALESCE(SUM(mc.n), 0) AS match_count
            FROM profiles p
            LEFT JOIN LATERAL (
              SELECT COUNT(1) AS n FROM matches m
              WHERE m.is_mutual AND (m.user1_id = p.id OR m.user2_id = p.id)
            ) mc ON true
            WHERE p.country IS NOT NULL
            GROUP BY p.country
            ORDER BY user_count DESC
            """
        )
    ).mappings().all()
    out = []
    for r in rows:
        users = int(r["user_count"])
        out.append(
            {
                "country": r["country"],
                "user_count": users,
                "active_users": int(r["active_users"]),
                "premium_users": int(r["premium_users"]),
                "premium_ratio": _ratio_pct(int(r["premium_users"]), users),
                "matches_per_user": round(int(r["match_count"]) / users, 2) if users else 0.0,
            }
        )
    return out
