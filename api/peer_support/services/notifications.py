"""
Notification copy and delivery.

Every state transition that people need to hear about goes through
`dispatch`, which is best-effort: a notifier failure is logged and dropped so
it can never undo or block the transition that triggered it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from ..config import DEFAULT_TIMEZONE
from ..store import Notifier
from .availability import to_local
from .events import enqueue_notification

logger = logging.getLogger(__name__)

SESSION_BOOKED = "session_booked"
SESSION_CANCELLED = "session_cancelled"
RESCHEDULE_REQUEST = "reschedule_request"
RESCHEDULE_ACCEPTED = "reschedule_accepted"
RESCHEDULE_DECLINED = "reschedule_declined"
SESSION_AUTO_CANCELLED = "session_auto_cancelled"
ASSIGNMENT_ENDED = "assignment_ended"


def _moment(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def format_date(value: Any, tz: str = DEFAULT_TIMEZONE) -> str:
    moment = _moment(value)
    if moment is None:
        return str(value or "")
    local = to_local(moment, tz)
    return f"{local:%A, %B} {local.day}"


def format_time(value: Any, tz: str = DEFAULT_TIMEZONE) -> str:
    moment = _moment(value)
    if moment is None:
        return str(value or "")
    local = to_local(moment, tz)
    return f"{local.hour % 12 or 12}:{local.minute:02d} {'PM' if local.hour >= 12 else 'AM'}"


def _booked(p: dict[str, Any]) -> tuple[str, str]:
    return (
        "New Session Booked",
        f"A client booked a {p.get('session_type', '')} session on {format_date(p.get('scheduled_at'))} "
        f"at {format_time(p.get('scheduled_at'))}.",
    )


def _cancelled(p: dict[str, Any]) -> tuple[str, str]:
    when = f"{format_date(p.get('scheduled_at'))} at {format_time(p.get('scheduled_at'))}"
    if p.get("recipient_type") == "supporter":
        return "Session Cancelled", f"Your client cancelled the {p.get('session_type', '')} session on {when}."
    body = f"Your {p.get('session_type', '')} session on {when} has been cancelled."
    if p.get("refund_amount"):
        body += f" A refund of {p['refund_amount']} will be issued."
    return "Session Cancelled", body


def _reschedule_request(p: dict[str, Any]) -> tuple[str, str]:
    who = p.get("supporter_name") or "Your supporter"
    return (
        "Reschedule Request",
        f"{who} wants to reschedule your session to {format_date(p.get('proposed_scheduled_at'))} at "
        f"{format_time(p.get('proposed_scheduled_at'))}. Please respond by "
        f"{format_time(p.get('response_deadline'))} or the session will be cancelled.",
    )


def _reschedule_accepted(p: dict[str, Any]) -> tuple[str, str]:
    when = f"{format_date(p.get('new_scheduled_at'))} at {format_time(p.get('new_scheduled_at'))}"
    if p.get("recipient_type") == "client":
        return "Session Rescheduled", f"Your session has been moved to {when}."
    return "Reschedule Confirmed", f"Your client accepted your reschedule request. Your session is now on {when}."


def _reschedule_declined(p: dict[str, Any]) -> tuple[str, str]:
    when = f"{format_date(p.get('original_scheduled_at'))} at {format_time(p.get('original_scheduled_at'))}"
    return "Reschedule Declined", f"Your client declined your reschedule request. The session remains on {when}."


def _auto_cancelled(p: dict[str, Any]) -> tuple[str, str]:
    if p.get("recipient_type") == "client":
        body = "Your session has been automatically cancelled because you didn't respond to the reschedule request in time."
        if p.get("refund_amount"):
            body += f" A refund of {p['refund_amount']} has been processed."
    else:
        body = "Your session has been automatically cancelled because the client didn't respond to your reschedule request in time."
    return "Session Auto-Cancelled", body


def _assignment_ended(p: dict[str, Any]) -> tuple[str, str]:
    return "Client Reassigned", "One of your clients has been matched with a different supporter."


TEMPLATES: dict[str, Callable[[dict[str, Any]], tuple[str, str]]] = {
    SESSION_BOOKED: _booked,
    SESSION_CANCELLED: _cancelled,
    RESCHEDULE_REQUEST: _reschedule_request,
    RESCHEDULE_ACCEPTED: _reschedule_accepted,
    RESCHEDULE_DECLINED: _reschedule_declined,
    SESSION_AUTO_CANCELLED: _auto_cancelled,
    ASSIGNMENT_ENDED: _assignment_ended,
}


def render_notification(template_kind: str, payload: dict[str, Any]) -> dict[str, str]:
    renderer = TEMPLATES.get(template_kind)
    if renderer is None:
        raise KeyError(f"unknown notification template: {template_kind}")
    title, body = renderer(payload or {})
    return {"title": title, "body": body}


def dispatch(notifier: Notifier, recipient_id: str, template_kind: str, payload: dict[str, Any]) -> bool:
    try:
        notifier.notify(recipient_id, template_kind, payload)
        return True
    except Exception:
        logger.warning(
            "[NOTIFY] delivery failed kind=%s recipient=%s session=%s",
            template_kind,
            recipient_id,
            payload.get("session_id"),
            exc_info=True,
        )
        return False


class LoggingNotifier:
    def notify(self, recipient_id: str, template_kind: str, payload: dict[str, Any]) -> None:
        content = render_notification(template_kind, payload)
        logger.info("[NOTIFY] to=%s kind=%s title=%r body=%r", recipient_id, template_kind, content["title"], content["body"])


class OutboxNotifier:
    """Writes rendered notifications to notification_outbox for the push worker."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def notify(self, recipient_id: str, template_kind: str, payload: dict[str, Any]) -> None:
        content = render_notification(template_kind, payload)
        with self._session_factory() as db:
            enqueue_notification(
                db,
                recipient_id=recipient_id,
                template_kind=template_kind,
                title=content["title"],
                body=content["body"],
                payload=payload,
            )
            db.commit()
