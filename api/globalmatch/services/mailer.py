from __future__ import annotations

import json
import logging
import re
import smtplib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from typing import Any, Callable

from sqlalchemy import text

from globalmatch import config
from globalmatch.repo import get_profile_by_email

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS = ("match_notifications", "message_notifications", "newsletter", "promotional")
UNSUBSCRIBE_TYPES = {"all", "marketing"}
_VARIABLE_RE = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")


@dataclass
class RenderedEmail:
    to: str
    subject: str
    html: str
    text: str
    recipient_name: str | None = None


def default_variables(now: datetime | None = None) -> dict[str, str]:
    now = now or datetime.now(timezone.utc)
    return {
        "app_name": config.APP_NAME,
        "app_url": config.APP_URL,
        "support_email": config.SUPPORT_EMAIL,
        "current_year": str(now.year),
    }


def render_template(content: str, variables: dict[str, Any] | None = None, now: datetime | None = None) -> str:
    """Substitute {{name}} placeholders; unknown or empty values render as ''."""
    values = {**default_variables(now), **(variables or {})}

    def _sub(m: re.Match) -> str:
        value = values.get(m.group(1))
        return "" if value is None else str(value)

    return _VARIABLE_RE.sub(_sub, content or "")


def smtp_delivery(message: RenderedEmail) -> None:
    msg = EmailMessage()
    msg["Subject"] = message.subject
    msg["From"] = config.SMTP_FROM
    msg["To"] = message.to
    msg.set_content(message.text or message.subject)
    if message.html:
        msg.add_alternative(message.html, subtype="html")

    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=15) as smtp:
        if config.SMTP_USE_TLS:
            smtp.starttls()
        if config.SMTP_USER:
            smtp.login(config.SMTP_USER, config.SMTP_PASS)
        smtp.send_message(msg)


def outbox_delivery(message: RenderedEmail) -> None:
    logger.info(f"[email] outbox to={message.to} subject={message.subject!r}")


def default_delivery() -> Callable[[RenderedEmail], None]:
    return smtp_delivery if config.SMTP_HOST else outbox_delivery


def get_template(db, name: str) -> dict[str, Any] | None:
    row = db.execute(
        text(
            """
            SELECT id, name, subject, html_content, text_content, template_type, is_active, updated_at
            FROM email_templates
            WHERE name = :name
            """
        ),
        {"name": name},
    ).mappings().first()
    if not row:
        return None
    return {**dict(row), "id": str(row["id"])}


def list_templates(db) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT id, name, subject, html_content, text_content, template_type, is_active, updated_at
            FROM email_templates
            ORDER BY name
            """
        )
    ).mappings().all()
    return [{**dict(r), "id": str(r["id"])} for r in rows]


def update_template(db, name: str, changes: dict[str, Any]) -> dict[str, Any] | None:
    fields = [k for k in ("subject", "html_content", "text_content", "is_active") if changes.get(k) is not None]
    if fields:
        assignments = ", ".join(f"{k} = :{k}" for k in fields)
        db.execute(
            text(f"UPDATE email_templates SET {assignments}, updated_at = NOW() WHERE name = :name"),
            {"name": name, **{k: changes[k] for k in fields}},
        )
    return get_template(db, name)


def render_email(template: dict[str, Any], recipient: str, variables: dict[str, Any] | None, recipient_name: str | None = None) -> RenderedEmail:
    return RenderedEmail(
        to=recipient,
        subject=render_template(template["subject"], variables),
        html=render_template(template["html_content"], variables),
        text=render_template(template["text_content"], variables),
        recipient_name=recipient_name,
    )


def send_email(
    db,
    recipient: str,
    template_name: str,
    variables: dict[str, Any] | None = None,
    *,
    recipient_name: str | None = None,
    scheduled_at: datetime | None = None,
    deliver: Callable[[RenderedEmail], None] | None = None,
) -> bool:
    """Queue an email job; unscheduled jobs are rendered and delivered immediately."""
    template = get_template(db, template_name)
    if not template or not template["is_active"]:
        logger.warning(f"[email] template missing or inactive name={template_name}")
        return False

    job = db.execute(
        text(
            """
            INSERT INTO email_jobs (recipient_email, recipient_name, template_id, template_variables, scheduled_at)
            VALUES (:recipient, :recipient_name, CAST(:template_id AS uuid), CAST(:variables AS jsonb), :scheduled_at)
            RETURNING id
            """
        ),
        {
            "recipient": recipient,
            "recipient_name": recipient_name,
            "template_id": template["id"],
            "variables": json.dumps(variables or {}, default=str),
            "scheduled_at": scheduled_at,
        },
    ).mappings().first()
    if scheduled_at is not None:
        return True

    deliver = deliver or default_delivery()
    try:
        deliver(render_email(template, recipient, variables, recipient_name))
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning(f"[email] delivery failed job={job['id']} error={exc}")
        db.execute(
            text("UPDATE email_jobs SET status = 'failed', error_message = :error WHERE id = CAST(:id AS uuid)"),
            {"id": str(job["id"]), "error": str(exc)},
        )
        return False
    db.execute(
        text("UPDATE email_jobs SET status = 'sent', sent_at = NOW() WHERE id = CAST(:id AS uuid)"),
        {"id": str(job["id"])},
    )
    return True


def send_welcome_email(db, email: str, name: str | None) -> bool:
    return send_email(
        db,
        email,
        "welcome",
        {"user_name": name or "", "profile_url": f"{config.APP_URL}/profile"},
        recipient_name=name,
    )


def send_match_email(db, email: str, name: str | None, matched_user_name: str | None) -> bool:
    return send_email(
        db,
        email,
        "match_notification",
        {"user_name": name or "", "matched_user_name": matched_user_name or "", "matches_url": f"{config.APP_URL}/matches"},
        recipient_name=name,
    )


def get_preferences(db, user_id: str) -> dict[str, bool]:
    row = db.execute(
        text(
            """
            SELECT match_notifications, message_notifications, newsletter, promotional
            FROM email_preferences
            WHERE user_id = CAST(:user_id AS uuid)
            """
        ),
        {"user_id": user_id},
    ).mappings().first()
    if not row:
        return {k: True for k in PREFERENCE_FIELDS}
    return {k: bool(row[k]) for k in PREFERENCE_FIELDS}


def update_preferences(db, user_id: str, changes: dict[str, Any]) -> dict[str, bool]:
    merged = get_preferences(db, user_id)
    for key in PREFERENCE_FIELDS:
        if changes.get(key) is not None:
            merged[key] = bool(changes[key])
    db.execute(
        text(
            """
            INSERT INTO email_preferences (user_id, match_notifications, message_notifications, newsletter, promotional)
            VALUES (CAST(:user_id AS uuid), :match_notifications, :message_notifications, :newsletter, :promotional)
            ON CONFLICT (user_id) DO UPDATE SET
              match_notifications = EXCLUDED.match_notifications,
              message_notifications = EXCLUDED.message_notifications,
              newsletter = EXCLUDED.newsletter,
              promotional = EXCLUDED.promotional,
              updated_at = NOW()
            """
        ),
        {"user_id": user_id, **merged},
    )
    return merged


def unsubscribe_changes(unsubscribe_type: str) -> dict[str, bool]:
    if unsubscribe_type not in UNSUBSCRIBE_TYPES:
        raise ValueError("type must be all or marketing")
    if unsubscribe_type == "marketing":
        return {"newsletter": False, "promotional": False}
    return {k: False for k in PREFERENCE_FIELDS}


def unsubscribe(db, email: str, unsubscribe_type: str = "all") -> bool:
    changes = unsubscribe_changes(unsubscribe_type)
    profile = get_profile_by_email(db, email.strip().lower())
    if not profile:
        return False
    update_preferences(db, str(profile["id"]), changes)
    logger.info(f"[email] unsubscribed user_id={profile['id']} type={unsubscribe_type}")
    return True


def email_statistics(db, days: int = 30, now: datetime | None = None) -> dict[str, Any]:
    since = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    total_sent = db.execute(
        text("SELECT COUNT(1) FROM email_jobs WHERE status = 'sent' AND sent_at >= :since"),
        {"since": since},
    ).scalar()
    campaigns = db.execute(
        text(
            """
            SELECT id, name, subject, status, total_recipients, sent_count, opened_count, clicked_count,
                   scheduled_at, sent_at, created_at
            FROM email_campaigns
            WHERE created_at >= :since
            ORDER BY created_at DESC
            LIMIT 10
            """
        ),
        {"since": since},
    ).mappings().all()
    return summarize_statistics(int(total_sent or 0), [dict(c) for c in campaigns])


def summarize_statistics(total_sent: int, campaigns: list[dict[str, Any]]) -> dict[str, Any]:
    opened = sum(int(c.get("opened_count") or 0) for c in campaigns)
    clicked = sum(int(c.get("clicked_count") or 0) for c in campaigns)
    return {
        "total_sent": total_sent,
        "total_opened": opened,
        "total_clicked": clicked,
        "open_rate": round(opened / total_sent * 100, 2) if total_sent > 0 else 0.0,
        "click_rate": round(clicked / opened * 100, 2) if opened > 0 else 0.0,
        "recent_campaigns": [{**c, "id": str(c["id"])} for c in campaigns],
    }
