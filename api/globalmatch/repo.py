import json
import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from globalmatch.config import ADMIN_EMAILS
from globalmatch.database import SessionLocal

PROFILE_COLUMNS = """
  p.id, p.email, p.full_name, p.avatar_url, p.birth_date, p.gender, p.country, p.city,
  p.occupation, p.bio, p.interests, p.languages, p.relationship_goal, p.education_level,
  p.height, p.verification_status, p.is_premium, p.account_status, p.suspension_until,
  p.last_active, p.created_at, p.updated_at
"""

PUBLIC_PROFILE_FIELDS = (
    "id",
    "full_name",
    "avatar_url",
    "birth_date",
    "gender",
    "country",
    "city",
    "occupation",
    "bio",
    "interests",
    "languages",
    "relationship_goal",
    "education_level",
    "height",
    "verification_status",
    "is_premium",
    "last_active",
)

EDITABLE_PROFILE_FIELDS = (
    "full_name",
    "birth_date",
    "gender",
    "country",
    "city",
    "occupation",
    "bio",
    "interests",
    "languages",
    "relationship_goal",
    "education_level",
    "height",
)


def public_profile(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if not row:
        return None
    out = {k: row.get(k) for k in PUBLIC_PROFILE_FIELDS if k in row}
    out["id"] = str(row["id"])
    out["interests"] = list(row.get("interests") or [])
    out["languages"] = list(row.get("languages") or [])
    return out


def create_account(
    *,
    email: str,
    password_hash: str,
    full_name: str,
    gender: str,
    country: str,
    birth_date: date,
) -> dict[str, Any] | None:
    user_id = str(uuid.uuid4())
    try:
        with SessionLocal() as db:
            db.execute(
                text(
                    """
                    INSERT INTO user_account (id, email, password_hash)
                    VALUES (CAST(:id AS uuid), :email, :password_hash)
                    """
                ),
                {"id": user_id, "email": email, "password_hash": password_hash},
            )
            db.execute(
                text(
                    """
                    INSERT INTO profiles (id, email, full_name, gender, country, birth_date)
                    VALUES (CAST(:id AS uuid), :email, :full_name, :gender, :country, :birth_date)
                    """
                ),
                {
                    "id": user_id,
                    "email": email,
                    "full_name": full_name,
                    "gender": gender,
                    "country": country,
                    "birth_date": birth_date,
                },
            )
            db.commit()
    except IntegrityError:
        return None
    return get_user_by_id(user_id)


def get_user_by_email(email: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT a.id, a.email, a.password_hash, a.disabled_at,
                       p.full_name, p.account_status, p.suspension_until
                FROM user_account a
                LEFT JOIN profiles p ON p.id = a.id
                WHERE a.email = :email
                """
            ),
            {"email": email},
        ).mappings().first()
    return dict(row) if row else None


def get_user_by_id(user_id: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text(
                """
                SELECT a.id, a.email, a.disabled_at,
                       p.full_name, p.account_status, p.suspension_until, p.is_premium
                FROM user_account a
                LEFT JOIN profiles p ON p.id = a.id
                WHERE a.id = CAST(:id AS uuid)
                """
            ),
            {"id": user_id},
        ).mappings().first()
    return dict(row) if row else None


def get_password_hash(user_id: str) -> str | None:
    with SessionLocal() as db:
        row = db.execute(
            text("SELECT password_hash FROM user_account WHERE id = CAST(:id AS uuid)"),
            {"id": user_id},
        ).mappings().first()
    return str(row["password_hash"]) if row else None


def update_user_password(user_id: str, password_hash: str) -> None:
    with SessionLocal() as db:
        db.execute(
            text("UPDATE user_account SET password_hash = :password_hash WHERE id = CAST(:id AS uuid)"),
            {"id": user_id, "password_hash": password_hash},
        )
        db.execute(
            text("UPDATE refresh_token SET revoked_at = NOW() WHERE user_id = CAST(:id AS uuid) AND revoked_at IS NULL"),
            {"id": user_id},
        )
        db.commit()


def update_last_login(user_id: str) -> None:
    with SessionLocal() as db:
        db.execute(text("UPDATE user_account SET last_login_at = NOW() WHERE id = CAST(:id AS uuid)"), {"id": user_id})
        touch_last_active(db, user_id)
        db.commit()


def touch_last_active(db, user_id: str) -> None:
    db.execute(text("UPDATE profiles SET last_active = NOW() WHERE id = CAST(:id AS uuid)"), {"id": user_id})


def create_refresh_token_row(user_id: str, token_hash: str, expires_at: datetime) -> None:
    with SessionLocal() as db:
        db.execute(
            text(
                """
                INSERT INTO refresh_token (user_id, token_hash, expires_at)
                VALUES (CAST(:user_id AS uuid), :token_hash, :expires_at)
                """
            ),
            {"user_id": user_id, "token_hash": token_hash, "expires_at": expires_at},
        )
        db.commit()


def get_refresh_token_row(token_hash: str) -> dict[str, Any] | None:
    with SessionLocal() as db:
        row = db.execute(
            text("SELECT id, user_id, token_hash, expires_at, revoked_at FROM refresh_token WHERE token_hash = :token_hash"),
            {"token_hash": token_hash},
        ).mappings().first()
    return dict(row) if row else None


def revoke_refresh_token_row(token_hash: str) -> None:
    with SessionLocal() as db:
        db.execute(
            text("UPDATE refresh_token SET revoked_at = NOW() WHERE token_hash = :token_hash AND revoked_at IS NULL"),
            {"token_hash": token_hash},
        )
        db.commit()


def rotate_refresh_token(old_token_hash: str, user_id: str, new_token_hash: str, expires_at: datetime) -> None:
    with SessionLocal() as db:
        db.execute(
            text("UPDATE refresh_token SET revoked_at = NOW() WHERE token_hash = :token_hash AND revoked_at IS NULL"),
            {"token_hash": old_token_hash},
        )
        db.execute(
            text(
                """
                INSERT INTO refresh_token (user_id, token_hash, expires_at)
                VALUES (CAST(:user_id AS uuid), :token_hash, :expires_at)
                """
            ),
            {"user_id": user_id, "token_hash": new_token_hash, "expires_at": expires_at},
        )
        db.commit()


def get_profile(db, user_id: str) -> dict[str, Any] | None:
    row = db.execute(
        text(f"SELECT {PROFILE_COLUMNS} FROM profiles p WHERE p.id = CAST(:id AS uuid)"),
        {"id": user_id},
    ).mappings().first()
    return dict(row) if row else None


def get_profile_by_email(db, email: str) -> dict[str, Any] | None:
    row = db.execute(
        text(f"SELECT {PROFILE_COLUMNS} FROM profiles p WHERE p.email = :email"),
        {"email": email},
    ).mappings().first()
    return dict(row) if row else None


def update_profile(user_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
    fields = [k for k in EDITABLE_PROFILE_FIELDS if k in changes]
    with SessionLocal() as db:
        if fields:
            assignments = ", ".join(f"{k} = :{k}" for k in fields)
            params = {k: changes[k] for k in fields}
            params["id"] = user_id
            db.execute(
                text(f"UPDATE profiles SET {assignments}, updated_at = NOW() WHERE id = CAST(:id AS uuid)"),
                params,
            )
            db.commit()
        return get_profile(db, user_id)


def list_user_photos(db, user_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT id, photo_url, is_primary, order_index, created_at
            FROM user_photos
            WHERE user_id = CAST(:user_id AS uuid)
            ORDER BY is_primary DESC, order_index ASC, created_at ASC
            """
        ),
        {"user_id": user_id},
    ).mappings().all()
    return [dict(r) for r in rows]


def add_user_photo(db, user_id: str, photo_url: str, content_hash: str | None) -> dict[str, Any]:
    existing = db.execute(
        text("SELECT COUNT(1) FROM user_photos WHERE user_id = CAST(:user_id AS uuid)"),
        {"user_id": user_id},
    ).scalar() or 0
    is_primary = int(existing) == 0
    row = db.execute(
        text(
            """
            INSERT INTO user_photos (user_id, photo_url, content_hash, is_primary, order_index)
            VALUES (CAST(:user_id AS uuid), :photo_url, :content_hash, :is_primary, :order_index)
            RETURNING id, photo_url, is_primary, order_index, created_at
            """
        ),
        {
            "user_id": user_id,
            "photo_url": photo_url,
            "content_hash": content_hash,
            "is_primary": is_primary,
            "order_index": int(existing),
        },
    ).mappings().first()
    if is_primary:
        db.execute(
            text("UPDATE profiles SET avatar_url = :url, updated_at = NOW() WHERE id = CAST(:user_id AS uuid)"),
            {"url": photo_url, "user_id": user_id},
        )
    return dict(row)


def count_user_photos(db, user_id: str) -> int:
    return int(
        db.execute(
            text("SELECT COUNT(1) FROM user_photos WHERE user_id = CAST(:user_id AS uuid)"),
            {"user_id": user_id},
        ).scalar()
        or 0
    )


def photo_hash_used_by_others(db, user_id: str, content_hash: str) -> bool:
    row = db.execute(
        text(
            """
            SELECT 1 FROM user_photos
            WHERE content_hash = :content_hash AND user_id <> CAST(:user_id AS uuid)
            LIMIT 1
            """
        ),
        {"content_hash": content_hash, "user_id": user_id},
    ).first()
    return row is not None


def set_primary_photo(db, user_id: str, photo_id: str) -> dict[str, Any] | None:
    row = db.execute(
        text("SELECT id, photo_url FROM user_photos WHERE id = CAST(:id AS uuid) AND user_id = CAST(:user_id AS uuid)"),
        {"id": photo_id, "user_id": user_id},
    ).mappings().first()
    if not row:
        return None
    db.execute(
        text("UPDATE user_photos SET is_primary = (id = CAST(:id AS uuid)) WHERE user_id = CAST(:user_id AS uuid)"),
        {"id": photo_id, "user_id": user_id},
    )
    db.execute(
        text("UPDATE profiles SET avatar_url = :url, updated_at = NOW() WHERE id = CAST(:user_id AS uuid)"),
        {"url": row["photo_url"], "user_id": user_id},
    )
    return dict(row)


def delete_user_photo(db, user_id: str, photo_id: str) -> bool:
    row = db.execute(
        text(
            """
            DELETE FROM user_photos
            WHERE id = CAST(:id AS uuid) AND user_id = CAST(:user_id AS uuid)
            RETURNING is_primary
            """
        ),
        {"id": photo_id, "user_id": user_id},
    ).mappings().first()
    if not row:
        return False
    if row["is_primary"]:
        successor = db.execute(
            text(
                """
                SELECT id, photo_url FROM user_photos
                WHERE user_id = CAST(:user_id AS uuid)
                ORDER BY order_index ASC, created_at ASC
                LIMIT 1
                """
            ),
            {"user_id": user_id},
        ).mappings().first()
        if successor:
            set_primary_photo(db, user_id, str(successor["id"]))
        else:
            db.execute(
                text("UPDATE profiles SET avatar_url = NULL, updated_at = NOW() WHERE id = CAST(:user_id AS uuid)"),
                {"user_id": user_id},
            )
    return True


def save_photo_verification(db, *, user_id: str, photo_id: str | None, photo_url: str, result: dict[str, Any]) -> None:
    db.execute(
        text(
            """
            INSERT INTO photo_verifications
              (user_id, photo_id, photo_url, is_approved, verification_score, rejection_reasons, analysis_data)
            VALUES (
              CAST(:user_id AS uuid),
              CAST(NULLIF(:photo_id, '') AS uuid),
              :photo_url,
              :is_approved,
              :score,
              CAST(:reasons AS jsonb),
              CAST(:analysis AS jsonb)
            )
            """
        ),
        {
            "user_id": user_id,
            "photo_id": photo_id or "",
            "photo_url": photo_url,
            "is_approved": bool(result.get("approved")),
            "score": int(result.get("score") or 0),
            "reasons": json.dumps(result.get("reasons") or []),
            "analysis": json.dumps(result.get("analysis") or {}),
        },
    )


def list_photo_verifications(db, user_id: str, limit: int = 20) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT id, photo_id, photo_url, is_approved, verification_score, rejection_reasons, verified_at
            FROM photo_verifications
            WHERE user_id = CAST(:user_id AS uuid)
            ORDER BY verified_at DESC
            LIMIT :limit
            """
        ),
        {"user_id": user_id, "limit": limit},
    ).mappings().all()
    return [dict(r) for r in rows]


def list_admin_profiles(db) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT id, email, full_name
            FROM profiles
            WHERE lower(email) = ANY(:emails)
            """
        ),
        {"emails": list(ADMIN_EMAILS)},
    ).mappings().all()
    return [dict(r) for r in rows]
