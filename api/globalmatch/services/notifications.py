from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any

import firebase_admin
from firebase_admin import credentials, exceptions, messaging
from sqlalchemy import text

from globalmatch import config
from globalmatch.services.chat import message_preview

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = {"match", "message", "like", "profile_view", "system"}
DEVICE_TYPES = {"web", "ios", "android"}
SETTING_FIELDS = (
    "push_enabled",
    "match_notifications",
    "message_notifications",
    "like_notifications",
    "profile_view_notifications",
)
# Notification type -> settings flag that gates its push.
TYPE_SETTING = {
    "match": "match_notifications",
    "message": "message_notifications",
    "like": "like_notifications",
    "profile_view": "profile_view_notifications",
}
STALE_TOKEN_ERRORS = (messaging.UnregisteredError, exceptions.InvalidArgumentError)

_firebase_lock = threading.Lock()
_firebase_app = None


@dataclass
class PushResult:
    success_count: int = 0
    error_count: int = 0
    skipped: bool = False


def _get_firebase_app():
    global _firebase_app
    if not config.FIREBASE_CREDENTIALS_PATH:
        return None
    with _firebase_lock:
        if _firebase_app is None:
            cred = credentials.Certificate(config.FIREBASE_CREDENTIALS_PATH)
            _firebase_app = firebase_admin.initialize_app(cred, name="globalmatch-push")
            logger.info("[push] firebase initialised")
    return _firebase_app


def default_settings() -> dict[str, bool]:
    return {k: True for k in SETTING_FIELDS}


def push_allowed(settings: dict[str, Any] | None, notification_type: str) -> bool:
    settings = settings or default_settings()
    if not settings.get("push_enabled", True):
        return False
    flag = TYPE_SETTING.get(notification_type)
    if flag is None:
        return True
    return bool(settings.get(flag, True))


def get_settings(db, user_id: str) -> dict[str, bool]:
    row = db.execute(
        text(
            """
            SELECT push_enabled, match_notifications, message_notifications,
                   like_notifications, profile_view_notifications
            FROM notification_settings
            WHERE user_id = CAST(:user_id AS uuid)
            """
        ),
        {"user_id": user_id},
    ).mappings().first()
    if not row:
        return default_settings()
    return {k: bool(row[k]) for k in SETTING_FIELDS}


def update_settings(db, user_id: str, changes: dict[str, Any]) -> dict[str, bool]:
    merged = get_settings(db, user_id)
    for key in SETTING_FIELDS:
        if changes.get(key) is not None:
            merged[key] = bool(changes[key])
    db.execute(
        text(
            """
            INSERT INTO notification_settings
              (user_id, push_enabled, match_notifications, message_notifications,
               like_notifications, profile_view_notifications)
            VALUES
              (CAST(:user_id AS uuid), :push_enabled, :match_notifications, :message_notifications,
               :like_notifications, :profile_view_notifications)
            ON CONFLICT (user_id) DO UPDATE SET
              push_enabled = EXCLUDED.push_enabled,
              match_notifications = EXCLUDED.match_notifications,
              message_notifications = EXCLUDED.message_notifications,
              like_notifications = EXCLUDED.like_notifications,
              profile_view_notifications = EXCLUDED.profile_view_notifications,
              updated_at = NOW()
            """
        ),
        {"user_id": user_id, **merged},
    )
    return merged


def register_device_token(db, user_id: str, token: str, device_type: str) -> None:
    if device_type not in DEVICE_TYPES:
        raise ValueError(f"device_type must be one of: {', '.join(sorted(DEVICE_TYPES))}")
    db.execute(
        text(
            """
            INSERT INTO device_tokens (user_id, token, device_type)
            VALUES (CAST(:user_id AS uuid), :token, :device_type)
            ON CONFLICT (token) DO UPDATE SET
              user_id = EXCLUDED.user_id,
              device_type = EXCLUDED.device_type,
              updated_at = NOW()
            """
        ),
        {"user_id": user_id, "token": token, "device_type": device_type},
    )


def remove_device_token(db, user_id: str, token: str) -> bool:
    result = db.execute(
        text("DELETE FROM device_tokens WHERE user_id = CAST(:user_id AS uuid) AND token = :token"),
        {"user_id": user_id, "token": token},
    )
    return bool(result.rowcount)


def list_device_tokens(db, user_id: str) -> list[str]:
    rows = db.execute(
        text("SELECT token FROM device_tokens WHERE user_id = CAST(:user_id AS uuid)"),
        {"user_id": user_id},
    ).mappings().all()
    return [r["token"] for r in rows]


def _delete_tokens(db, tokens: list[str]) -> None:
    if not tokens:
        return
    db.execute(text("DELETE FROM device_tokens WHERE token = ANY(:tokens)"), {"tokens": tokens})


def send_push(db, user_id: str, *, title: str, body: str, data: dict[str, Any] | None = None) -> PushResult:
    """Deliver a push to every registered device of `user_id`; stale tokens are pruned."""
    tokens = list_device_tokens(db, user_id)
    if not tokens:
        return PushResult()
    app = _get_firebase_app()
    if app is None:
        logger.info(f"[push] firebase not configured; skipped user_id={user_id} devices={len(tokens)}")
        return PushResult(skipped=True)

    payload = {k: str(v) for k, v in (data or {}).items() if v is not None}
    result = PushResult()
    stale: list[str] = []
    for token in tokens:
        message = messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data=payload,
            token=token,
        )
        try:
            messaging.send(message, app=app)
            result.success_count += 1
        except STALE_TOKEN_ERRORS:
            stale.append(token)
            result.error_count += 1
        except exceptions.FirebaseError as exc:
            logger.warning(f"[push] delivery failed user_id={user_id} error={exc}")
            result.error_count += 1
    _delete_tokens(db, stale)
    if stale:
        logger.info(f"[push] pruned {len(stale)} stale tokens user_id={user_id}")
    return result


def create_notification(
    db,
    *,
    user_id: str,
    notification_type: str,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
    push: bool = True,
) -> dict[str, Any]:
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {notification_type}")
    row = db.execute(
        text(
            """
            INSERT INTO notifications (user_id, type, title, body, data)
            VALUES (CAST(:user_id AS uuid), :type, :title, :body, CAST(:data AS jsonb))
            RETURNING id, user_id, type, title, body, data, is_read, created_at
            """
        ),
        {
            "user_id": user_id,
            "type": notification_type,
            "title": title,
            "body": body,
            "data": json.dumps(data or {}, default=str),
        },
    ).mappings().first()
    out = _notification_out(row)
    if push and push_allowed(get_settings(db, user_id), notification_type):
        send_push(db, user_id, title=title, body=body, data={"type": notification_type, **(data or {})})
    return out


def _notification_out(row: Any) -> dict[str, Any]:
    return {
        "id": str(row["id"]),
        "user_id": str(row["user_id"]),
        "type": row["type"],
        "title": row["title"],
        "body": row["body"],
        "data": row["data"] or {},
        "is_read": bool(row["is_read"]),
        "created_at": row["created_at"],
    }


def list_notifications(db, user_id: str, *, limit: int = 20, offset: int = 0, unread_only: bool = False) -> list[dict[str, Any]]:
    unread_clause = "AND is_read = false" if unread_only else ""
    rows = db.execute(
        text(
            f"""
            SELECT id, user_id, type, title, body, data, is_read, created_at
            FROM notifications
            WHERE user_id = CAST(:user_id AS uuid)
              {unread_clause}
            ORDER BY created_at DESC
            LIMIT :limit OFFSET :offset
            """
        ),
        {"user_id": user_id, "limit": limit, "offset": offset},
    ).mappings().all()
    return [_notification_out(r) for r in rows]


def unread_count(db, user_id: str) -> int:
    value = db.execute(
        text("SELECT COUNT(1) FROM notifications WHERE user_id = CAST(:user_id AS uuid) AND is_read = false"),
        {"user_id": user_id},
    ).scalar()
    return int(value or 0)


def mark_read(db, user_id: str, notification_id: str) -> bool:
    result = db.execute(
        text(
            """
            UPDATE notifications SET is_read = true
            WHERE id = CAST(:id AS uuid) AND user_id = CAST(:user_id AS uuid)
            """
        ),
        {"id": notification_id, "user_id": user_id},
    )
    return bool(result.rowcount)


def mark_all_read(db, user_id: str) -> int:
    result = db.execute(
        text("UPDATE notifications SET is_read = true WHERE user_id = CAST(:user_id AS uuid) AND is_read = false"),
        {"user_id": user_id},
    )
    return int(result.rowcount or 0)


def delete_notification(db, user_id: str, notification_id: str) -> bool:
    result = db.execute(
        text("DELETE FROM notifications WHERE id = CAST(:id AS uuid) AND user_id = CAST(:user_id AS uuid)"),
        {"id": notification_id, "user_id": user_id},
    )
    return bool(result.rowcount)


def notify_new_match(db, user_id: str, partner_name: str | None, *, match_id: str, room_id: str | None) -> None:
    create_notification(
        db,
        user_id=user_id,
        notification_type="match",
        title="It's a match!",
        body=f"You and {partner_name or 'someone'} liked each other.",
        data={"match_id": match_id, "room_id": room_id},
    )


def notify_new_message(db, user_id: str, sender_name: str | None, content: str, message_type: str, *, room_id: str) -> None:
    create_notification(
        db,
        user_id=user_id,
        notification_type="message",
        title=sender_name or "New message",
        body=message_preview(content, message_type),
        data={"room_id": room_id},
    )


def notify_new_like(db, user_id: str, *, liker_id: str) -> None:
    create_notification(
        db,
        user_id=user_id,
        notification_type="like",
        title="Someone likes you",
        body="Keep swiping to find out who.",
        data={"liker_id": liker_id},
    )


def notify_profile_view(db, user_id: str, viewer_name: str | None, *, viewer_id: str) -> None:
    create_notification(
        db,
        user_id=user_id,
        notification_type="profile_view",
        title="Profile view",
        body=f"{viewer_name or 'Someone'} viewed your profile.",
        data={"viewer_id": viewer_id},
    )
