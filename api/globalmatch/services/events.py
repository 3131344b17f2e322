import json
import uuid
from typing import Any

from sqlalchemy import text

ACTIVITY_TYPES = {
    "login",
    "profile_view",
    "like",
    "pass",
    "match",
    "message",
    "search",
    "premium_purchase",
}


def log_product_event(
    db,
    *,
    event_name: str,
    user_id: str | None = None,
    properties: dict[str, Any] | None = None,
) -> None:
    properties = properties or {}
    db.execute(
        text(
            """
            INSERT INTO product_event (id, user_id, event_name, properties)
            VALUES (
              :id,
              CAST(NULLIF(:user_id, '') AS uuid),
              :event_name,
              CAST(:properties AS jsonb)
            )
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "user_id": user_id or "",
            "event_name": event_name,
            "properties": json.dumps(properties, default=str),
        },
    )


def log_user_activity(
    db,
    *,
    user_id: str,
    activity_type: str,
    metadata: dict[str, Any] | None = None,
) -> None:
    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {activity_type}")
    db.execute(
        text(
            """
            INSERT INTO user_activity (id, user_id, activity_type, metadata)
            VALUES (:id, CAST(:user_id AS uuid), :activity_type, CAST(:metadata AS jsonb))
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "activity_type": activity_type,
            "metadata": json.dumps(metadata or {}, default=str),
        },
    )
