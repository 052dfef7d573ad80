from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from ..config import RESCHEDULE_RESPONSE_WINDOW_HOURS
from ..domain import RescheduleRequest, RescheduleStatus, Session, SessionStatus
from ..errors import CollaboratorUnavailable, NotFoundError, PreconditionFailed, ValidationError
from ..store import Clock, Notifier, Store
from . import notifications
from .state_machine import transition_reschedule

logger = logging.getLogger(__name__)


def response_deadline(original_scheduled_at: datetime) -> datetime:
    return original_scheduled_at - timedelta(hours=RESCHEDULE_RESPONSE_WINDOW_HOURS)


def time_until_deadline(deadline: datetime, now: datetime) -> dict[str, Any]:
    remaining = int((deadline - now).total_seconds())
    if remaining <= 0:
        return {"hours": 0, "minutes": 0, "is_expired": True, "formatted": "Expired"}
    hours, rest = divmod(remaining, 3600)
    minutes = rest // 60
    formatted = f"{hours}h {minutes}m remaining" if hours > 0 else f"{minutes}m remaining"
    return {"hours": hours, "minutes": minutes, "is_expired": False, "formatted": formatted}


def _require_aware(value: datetime, field: str) -> None:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"{field} must include a timezone")


def request_payload(request: RescheduleRequest) -> dict[str, Any]:
    return {
        "request_id": request.id,
        "session_id": request.session_id,
        "original_scheduled_at": request.original_scheduled_at.isoformat(),
        "proposed_scheduled_at": request.proposed_scheduled_at.isoformat(),
        "response_deadline": request.response_deadline.isoformat(),
        "reason": request.reason,
    }


def create_reschedule_request(
    store: Store,
    notifier: Notifier,
    clock: Clock,
    *,
    session_id: str,
    supporter_id: str,
    proposed_scheduled_at: datetime,
    reason: str | None = None,
    supporter_name: str | None = None,
) -> RescheduleRequest:
    """Open a reschedule negotiation on a scheduled session.

    The client has until three hours before the original time to answer.
    Requests whose window has already closed are rejected rather than
    created already expired.
    """
    _require_aware(proposed_scheduled_at, "proposed_scheduled_at")
    now = clock.now()

    session = store.get_session(session_id)
    if session is None:
        raise NotFoundError("session not found")
    if session.supporter_id != supporter_id:
        raise ValidationError("only the session's supporter can request a reschedule", code="not_participant")
    if session.status != SessionStatus.SCHEDULED:
        raise ValidationError(f"cannot reschedule a session that is {session.status.value}", code="invalid_transition")
    if store.get_pending_reschedule(session_id) is not None:
        raise ValidationError("a reschedule request is already pending for this session", code="duplicate_pending")
    if proposed_scheduled_at <= now:
        raise ValidationError("proposed time must be in the future")
    if proposed_scheduled_at == session.scheduled_at:
        raise ValidationError("proposed time matches the current schedule")

    deadline = response_deadline(session.scheduled_at)
    if deadline <= now:
        raise ValidationError(
            f"sessions less than {RESCHEDULE_RESPONSE_WINDOW_HOURS} hours away cannot be rescheduled",
            code="window_elapsed",
        )

    request = store.create_reschedule_request(
        RescheduleRequest(
            id=str(uuid.uuid4()),
            session_id=session.id,
            supporter_id=session.supporter_id,
            client_id=session.client_id,
            original_scheduled_at=session.scheduled_at,
            proposed_scheduled_at=proposed_scheduled_at,
            status=RescheduleStatus.PENDING,
            response_deadline=deadline,
            reason=reason,
            created_at=now,
        )
    )
    logger.info("[RESCHEDULE] created request=%s session=%s deadline=%s", request.id, session.id, deadline.isoformat())

    payload = request_payload(request)
    payload["supporter_name"] = supporter_name
    notifications.dispatch(notifier, request.client_id, notifications.RESCHEDULE_REQUEST, payload)
    return request


def _load_for_response(store: Store, request_id: str, client_id: str) -> RescheduleRequest:
    request = store.get_reschedule_request(request_id)
    if request is None:
        raise NotFoundError("reschedule request not found")
    if request.client_id != client_id:
        raise ValidationError("only the session's client can respond to this request", code="not_participant")
    return request


def release_claim(store: Store, request: RescheduleRequest, claimed: RescheduleStatus) -> None:
    """Put a claimed request back to pending after its session write failed.

    Called while the original store error is propagating; a failure here is
    logged and the original error is the one the caller sees.
    """
    try:
        released = store.update_reschedule_status(request.id, RescheduleStatus.PENDING, claimed)
    except CollaboratorUnavailable as exc:
        logger.error("[RESCHEDULE] could not release request=%s from %s: %s", request.id, claimed.value, exc.message)
        return
    if released:
        logger.warning("[RESCHEDULE] released request=%s back to pending", request.id)
    else:
        logger.error("[RESCHEDULE] request=%s left %s state before release", request.id, claimed.value)


def accept_reschedule(
    store: Store,
    notifier: Notifier,
    clock: Clock,
    request_id: str,
    *,
    client_id: str,
) -> tuple[RescheduleRequest, Session]:
    now = clock.now()
    request = _load_for_response(store, request_id, client_id)
    target = transition_reschedule(request.status, "accept", now, request.response_deadline)

    session = store.get_session(request.session_id)
    if session is None:
        raise NotFoundError("session not found")
    if session.status != SessionStatus.SCHEDULED:
        raise PreconditionFailed(f"session is {session.status.value}", code="session_not_scheduled")

    if not store.update_reschedule_status(request.id, target, RescheduleStatus.PENDING, responded_at=now):
        logger.warning("[RESCHEDULE] accept lost race request=%s", request.id)
        raise PreconditionFailed("reschedule request was already resolved", code="already_resolved")

    try:
        moved = store.update_session_schedule(session.id, request.proposed_scheduled_at)
    except CollaboratorUnavailable:
        release_claim(store, request, target)
        raise
    if not moved:
        logger.error("[RESCHEDULE] request=%s accepted but session=%s was no longer scheduled", request.id, session.id)
        raise PreconditionFailed("session changed while accepting the reschedule", code="session_not_scheduled")

    request = replace(request, status=target, responded_at=now)
    session = replace(session, scheduled_at=request.proposed_scheduled_at)
    logger.info("[RESCHEDULE] accepted request=%s session=%s new_time=%s", request.id, session.id, session.scheduled_at.isoformat())

    payload = request_payload(request)
    payload["new_scheduled_at"] = session.scheduled_at.isoformat()
    notifications.dispatch(notifier, request.supporter_id, notifications.RESCHEDULE_ACCEPTED, {**payload, "recipient_type": "supporter"})
    notifications.dispatch(notifier, request.client_id, notifications.RESCHEDULE_ACCEPTED, {**payload, "recipient_type": "client"})
    return request, session


def decline_reschedule(
    store: Store,
    notifier: Notifier,
    clock: Clock,
    request_id: str,
    *,
    client_id: str,
) -> RescheduleRequest:
    now = clock.now()
    request = _load_for_response(store, request_id, client_id)
    target = transition_reschedule(request.status, "decline", now, request.response_deadline)

    if not store.update_reschedule_status(request.id, target, RescheduleStatus.PENDING, responded_at=now):
        logger.warning("[RESCHEDULE] decline lost race request=%s", request.id)
        raise PreconditionFailed("reschedule request was already resolved", code="already_resolved")

    request = replace(request, status=target, responded_at=now)
    logger.info("[RESCHEDULE] declined request=%s session=%s", request.id, request.session_id)
    notifications.dispatch(notifier, request.supporter_id, notifications.RESCHEDULE_DECLINED, request_payload(request))
    return request
