from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text

from globalmatch import config

logger = logging.getLogger(__name__)

CALL_TYPES = {"voice", "video"}
_BASE36 = string.digits + string.ascii_lowercase

CALL_COLUMNS = "id, caller_id, caller_name, receiver_id, room_id, call_type, status, created_at, responded_at, ended_at"


class CallStateError(Exception):
    pass


def generate_room_id(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"room_{int(now.timestamp() * 1000)}_{suffix}"


def invitation_expired(created_at: datetime, now: datetime | None = None, ttl_seconds: int | None = None) -> bool:
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    ttl = ttl_seconds if ttl_seconds is not None else config.CALL_INVITE_TTL_SECONDS
    return now - created_at > timedelta(seconds=ttl)


def _call_out(row: Any) -> dict[str, Any]:
    out = dict(row)
    for key in ("id", "caller_id", "receiver_id"):
        out[key] = str(out[key])
    return out


def create_invitation(db, *, caller_id: str, caller_name: str | None, receiver_id: str, call_type: str) -> dict[str, Any]:
    if call_type not in CALL_TYPES:
        raise ValueError("call_type must be voice or video")
    if caller_id == receiver_id:
        raise ValueError("Cannot call yourself")
    row = db.execute(
        text(
            f"""
            INSERT INTO call_invitations (caller_id, caller_name, receiver_id, room_id, call_type)
            VALUES (CAST(:caller_id AS uuid), :caller_name, CAST(:receiver_id AS uuid), :room_id, :call_type)
            RETURNING {CALL_COLUMNS}
            """
        ),
        {
            "caller_id": caller_id,
            "caller_name": caller_name,
            "receiver_id": receiver_id,
            "room_id": generate_room_id(),
            "call_type": call_type,
        },
    ).mappings().first()
    logger.info(f"[calls] invitation id={row['id']} caller={caller_id} receiver={receiver_id} type={call_type}")
    return _call_out(row)


def get_invitation(db, call_id: str) -> dict[str, Any] | None:
    row = db.execute(
        text(f"SELECT {CALL_COLUMNS} FROM call_invitations WHERE id = CAST(:id AS uuid)"),
        {"id": call_id},
    ).mappings().first()
    return _call_out(row) if row else None


def _set_status(db, call_id: str, status: str, column: str | None = None) -> dict[str, Any]:
    stamp = f", {column} = NOW()" if column else ""
    row = db.execute(
        text(
            f"""
            UPDATE call_invitations SET status = :status{stamp}
            WHERE id = CAST(:id AS uuid)
            RETURNING {CALL_COLUMNS}
            """
        ),
        {"id": call_id, "status": status},
    ).mappings().first()
    return _call_out(row)


def respond(db, call: dict[str, Any], user_id: str, accept: bool, now: datetime | None = None) -> dict[str, Any]:
    if call["receiver_id"] != user_id:
        raise PermissionError("Only the receiver can respond")
    if call["status"] != "pending":
        raise CallStateError(f"Call is already {call['status']}")
    if invitation_expired(call["created_at"], now):
        _set_status(db, call["id"], "expired", "responded_at")
        raise CallStateError("Call invitation expired")
    return _set_status(db, call["id"], "accepted" if accept else "declined", "responded_at")


def end_call(db, call: dict[str, Any], user_id: str) -> dict[str, Any]:
    if user_id not in (call["caller_id"], call["receiver_id"]):
        raise PermissionError("Not a participant of this call")
    if call["status"] in ("declined", "expired", "ended"):
        raise CallStateError(f"Call is already {call['status']}")
    return _set_status(db, call["id"], "ended", "ended_at")


def list_history(db, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            f"""
            SELECT {CALL_COLUMNS}
            FROM call_invitations
            WHERE caller_id = CAST(:user_id AS uuid) OR receiver_id = CAST(:user_id AS uuid)
            ORDER BY created_at DESC
            LIMIT :limit
            """
        ),
        {"user_id": user_id, "limit": limit},
    ).mappings().all()
    return [_call_out(r) for r in rows]
