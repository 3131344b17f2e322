from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import text

MESSAGE_TYPES = {"text", "image", "file"}


def ensure_room(db, match_id: str) -> dict[str, Any]:
    db.execute(
        text(
            """
            INSERT INTO chat_rooms (match_id)
            VALUES (CAST(:match_id AS uuid))
            ON CONFLICT (match_id) DO UPDATE SET is_active = true
            """
        ),
        {"match_id": match_id},
    )
    row = db.execute(
        text("SELECT id, match_id, is_active, created_at, last_message_at FROM chat_rooms WHERE match_id = CAST(:match_id AS uuid)"),
        {"match_id": match_id},
    ).mappings().first()
    return dict(row)


def deactivate_room_for_match(db, match_id: str) -> None:
    db.execute(
        text("UPDATE chat_rooms SET is_active = false WHERE match_id = CAST(:match_id AS uuid)"),
        {"match_id": match_id},
    )


def get_room(db, room_id: str) -> dict[str, Any] | None:
    row = db.execute(
        text(
            """
            SELECT r.id, r.match_id, r.is_active, r.last_message_at,
                   m.user1_id, m.user2_id, m.is_mutual, m.is_active AS match_active
            FROM chat_rooms r
            JOIN matches m ON m.id = r.match_id
            WHERE r.id = CAST(:room_id AS uuid)
            """
        ),
        {"room_id": room_id},
    ).mappings().first()
    return dict(row) if row else None


def room_partner_id(room: dict[str, Any], user_id: str) -> str | None:
    """Return the other participant, or None when user_id is not in the room."""
    a = str(room["user1_id"])
    b = str(room["user2_id"])
    if user_id == a:
        return b
    if user_id == b:
        return a
    return None


def list_rooms(db, user_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT
              r.id, r.match_id, r.last_message_at, m.matched_at,
              p.id AS partner_id, p.full_name AS partner_name, p.avatar_url AS partner_avatar_url,
              p.country AS partner_country, p.last_active AS partner_last_active,
              lm.content AS last_message_content, lm.message_type AS last_message_type,
              lm.sender_id AS last_message_sender_id, lm.created_at AS last_message_created_at,
              (
                SELECT COUNT(1) FROM messages um
                WHERE um.room_id = r.id AND um.sender_id <> CAST(:user_id AS uuid) AND um.is_read = false
              ) AS unread_count
            FROM chat_rooms r
            JOIN matches m ON m.id = r.match_id
            JOIN profiles p ON p.id = CASE WHEN m.user1_id = CAST(:user_id AS uuid) THEN m.user2_id ELSE m.user1_id END
            LEFT JOIN LATERAL (
              SELECT content, message_type, sender_id, created_at
              FROM messages
              WHERE room_id = r.id
              ORDER BY created_at DESC
              LIMIT 1
            ) lm ON true
            WHERE (m.user1_id = CAST(:user_id AS uuid) OR m.user2_id = CAST(:user_id AS uuid))
              AND m.is_mutual = true
              AND m.is_active = true
              AND r.is_active = true
            ORDER BY r.last_message_at DESC
            """
        ),
        {"user_id": user_id},
    ).mappings().all()
    rooms = []
    for r in rows:
        rooms.append(
            {
                "id": str(r["id"]),
                "match_id": str(r["match_id"]),
                "last_message_at": r["last_message_at"],
                "matched_at": r["matched_at"],
                "partner": {
                    "id": str(r["partner_id"]),
                    "full_name": r.get("partner_name"),
                    "avatar_url": r.get("partner_avatar_url"),
                    "country": r.get("partner_country"),
                    "last_active": r.get("partner_last_active"),
                },
                "last_message": (
                    {
                        "content": r["last_message_content"],
                        "message_type": r["last_message_type"],
                        "sender_id": str(r["last_message_sender_id"]),
                        "created_at": r["last_message_created_at"],
                    }
                    if r.get("last_message_created_at")
                    else None
                ),
                "unread_count": int(r.get("unread_count") or 0),
            }
        )
    return rooms


def _message_out(row: Any) -> dict[str, Any]:
    return {
        "id": str(row["id"]),
        "room_id": str(row["room_id"]),
        "sender_id": str(row["sender_id"]),
        "content": row["content"],
        "message_type": row["message_type"],
        "is_read": bool(row["is_read"]),
        "created_at": row["created_at"],
    }


def get_room_messages(db, room_id: str, *, limit: int = 50, before: datetime | None = None) -> list[dict[str, Any]]:
    """Latest `limit` messages (optionally older than `before`) in ascending order."""
    before_clause = "AND created_at < :before" if before else ""
    rows = db.execute(
        text(
            f"""
            SELECT id, room_id, sender_id, content, message_type, is_read, created_at
            FROM (
              SELECT id, room_id, sender_id, content, message_type, is_read, created_at
              FROM messages
              WHERE room_id = CAST(:room_id AS uuid)
                {before_clause}
              ORDER BY created_at DESC
              LIMIT :limit
            ) recent
            ORDER BY created_at ASC
            """
        ),
        {"room_id": room_id, "limit": limit, "before": before},
    ).mappings().all()
    return [_message_out(r) for r in rows]


def send_message(db, *, room_id: str, sender_id: str, content: str, message_type: str = "text") -> dict[str, Any]:
    if message_type not in MESSAGE_TYPES:
        raise ValueError(f"message_type must be one of: {', '.join(sorted(MESSAGE_TYPES))}")
    row = db.execute(
        text(
            """
            INSERT INTO messages (room_id, sender_id, content, message_type)
            VALUES (CAST(:room_id AS uuid), CAST(:sender_id AS uuid), :content, :message_type)
            RETURNING id, room_id, sender_id, content, message_type, is_read, created_at
            """
        ),
        {"room_id": room_id, "sender_id": sender_id, "content": content, "message_type": message_type},
    ).mappings().first()
    db.execute(
        text("UPDATE chat_rooms SET last_message_at = :ts WHERE id = CAST(:room_id AS uuid)"),
        {"room_id": room_id, "ts": row["created_at"]},
    )
    return _message_out(row)


def mark_room_read(db, room_id: str, reader_id: str) -> int:
    result = db.execute(
        text(
            """
            UPDATE messages
            SET is_read = true
            WHERE room_id = CAST(:room_id AS uuid)
              AND sender_id <> CAST(:reader_id AS uuid)
              AND is_read = false
            """
        ),
        {"room_id": room_id, "reader_id": reader_id},
    )
    return int(result.rowcount or 0)


def unread_count(db, user_id: str) -> int:
    value = db.execute(
        text(
            """
            SELECT COUNT(1)
            FROM messages msg
            JOIN chat_rooms r ON r.id = msg.room_id
            JOIN matches m ON m.id = r.match_id
            WHERE (m.user1_id = CAST(:user_id AS uuid) OR m.user2_id = CAST(:user_id AS uuid))
              AND msg.sender_id <> CAST(:user_id AS uuid)
              AND msg.is_read = false
              AND r.is_active = true
            """
        ),
        {"user_id": user_id},
    ).scalar()
    return int(value or 0)


def message_preview(content: str, message_type: str = "text", length: int = 50) -> str:
    if message_type == "image":
        return "Sent a photo"
    if message_type == "file":
        return "Sent a file"
    if len(content) > length:
        return content[:length] + "..."
    return content
