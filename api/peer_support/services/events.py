import json
import uuid
from typing import Any

from sqlalchemy import text


def log_session_event(
    db,
    *,
    session_id: str,
    event_type: str,
    payload: dict[str, Any] | None = None,
    reschedule_request_id: str | None = None,
) -> None:
    payload = payload or {}
    db.execute(
        text(
            """
            INSERT INTO session_event (id, session_id, reschedule_request_id, event_type, payload)
            VALUES (:id, CAST(:session_id AS uuid), CAST(NULLIF(:reschedule_request_id, '') AS uuid), :event_type, CAST(:payload AS jsonb))
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "session_id": session_id,
            "reschedule_request_id": reschedule_request_id or "",
            "event_type": event_type,
            "payload": json.dumps(payload, default=str),
        },
    )


def enqueue_notification(
    db,
    *,
    recipient_id: str,
    template_kind: str,
    title: str,
    body: str,
    payload: dict[str, Any] | None = None,
) -> None:
    payload = payload or {}
    db.execute(
        text(
            """
            INSERT INTO notification_outbox (id, recipient_id, template_kind, title, body, payload)
            VALUES (:id, CAST(:recipient_id AS uuid), :template_kind, :title, :body, CAST(:payload AS jsonb))
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "recipient_id": recipient_id,
            "template_kind": template_kind,
            "title": title,
            "body": body,
            "payload": json.dumps(payload, default=str),
        },
    )
