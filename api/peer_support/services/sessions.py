from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from ..config import DEFAULT_TIMEZONE, SESSION_DURATIONS_MINUTES
from ..domain import (
    EligibleSupporter,
    Initiator,
    RefundDecision,
    RescheduleStatus,
    Session,
    SessionStatus,
    SessionType,
)
from ..errors import NotFoundError, PreconditionFailed, ValidationError
from ..store import Clock, Notifier, Store
from . import notifications
from .availability import (
    available_time_slots,
    is_day_available,
    is_slot_available,
    local_slot,
    slot_fits_availability,
    to_local,
)
from .refunds import calculate_refund, format_currency, session_price
from .state_machine import transition_session

logger = logging.getLogger(__name__)


def _get_session(store: Store, session_id: str) -> Session:
    session = store.get_session(session_id)
    if session is None:
        raise NotFoundError("session not found")
    return session


def _eligible_supporter(store: Store, supporter_id: str) -> EligibleSupporter:
    supporter = store.get_supporter(supporter_id)
    if supporter is None:
        raise NotFoundError("supporter not found")
    if not isinstance(supporter, EligibleSupporter):
        raise ValidationError(
            f"supporter is not accepting bookings (missing: {', '.join(supporter.missing)})",
            code="supporter_not_eligible",
        )
    return supporter


def _day_bounds(day: date, tz: str) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=ZoneInfo(tz))
    return start, start + timedelta(days=1)


def _booked_ranges(store: Store, supporter_id: str, day: date, tz: str):
    start, end = _day_bounds(day, tz)
    return [local_slot(s.scheduled_at, s.duration_minutes, tz)[1] for s in store.list_booked_sessions(supporter_id, start, end)]


def supporter_slots(
    store: Store,
    clock: Clock,
    supporter_id: str,
    day: date,
    session_type: SessionType,
    tz: str = DEFAULT_TIMEZONE,
) -> list[dict[str, str]]:
    supporter = _eligible_supporter(store, supporter_id)
    session_type = SessionType(session_type)
    if session_type not in supporter.session_types or not is_day_available(day, supporter.availability):
        return []
    return available_time_slots(
        day,
        supporter.availability,
        _booked_ranges(store, supporter_id, day, tz),
        SESSION_DURATIONS_MINUTES[session_type.value],
        now=to_local(clock.now(), tz),
    )


def book_session(
    store: Store,
    notifier: Notifier,
    clock: Clock,
    *,
    client_id: str,
    supporter_id: str,
    session_type: SessionType,
    scheduled_at: datetime,
    tz: str = DEFAULT_TIMEZONE,
) -> Session:
    if scheduled_at.tzinfo is None or scheduled_at.utcoffset() is None:
        raise ValidationError("scheduled_at must include a timezone")
    if scheduled_at <= clock.now():
        raise ValidationError("sessions must be booked in the future")

    session_type = SessionType(session_type)
    supporter = _eligible_supporter(store, supporter_id)
    if session_type not in supporter.session_types:
        raise ValidationError(f"supporter does not offer {session_type.value} sessions")

    duration = SESSION_DURATIONS_MINUTES[session_type.value]
    day, slot = local_slot(scheduled_at, duration, tz)
    if not slot_fits_availability(day, slot, supporter.availability):
        raise ValidationError("requested time is outside the supporter's availability", code="outside_availability")
    if not is_slot_available(slot, _booked_ranges(store, supporter_id, day, tz)):
        raise ValidationError("requested time is already booked", code="slot_taken")

    session = store.create_session(
        Session(
            id=str(uuid.uuid4()),
            client_id=client_id,
            supporter_id=supporter_id,
            session_type=session_type,
            scheduled_at=scheduled_at,
            duration_minutes=duration,
            status=SessionStatus.SCHEDULED,
        )
    )
    logger.info("[SESSION] booked session=%s client=%s supporter=%s", session.id, client_id, supporter_id)
    notifications.dispatch(
        notifier,
        supporter_id,
        notifications.SESSION_BOOKED,
        {"session_id": session.id, "session_type": session_type.value, "scheduled_at": scheduled_at.isoformat()},
    )
    return session


def _advance(store: Store, session_id: str, action: str) -> Session:
    session = _get_session(store, session_id)
    target = transition_session(session.status, action)
    if not store.update_session_status(session.id, target, session.status):
        raise PreconditionFailed("session changed concurrently", code="stale_status")
    logger.info("[SESSION] %s session=%s %s->%s", action, session.id, session.status.value, target.value)
    return replace(session, status=target)


def start_session(store: Store, session_id: str) -> Session:
    return _advance(store, session_id, "start")


def complete_session(store: Store, session_id: str) -> Session:
    return _advance(store, session_id, "complete")


def mark_no_show(store: Store, session_id: str) -> Session:
    return _advance(store, session_id, "no_show")


def refund_quote(store: Store, clock: Clock, session_id: str, initiator: Initiator) -> RefundDecision:
    session = _get_session(store, session_id)
    return calculate_refund(session_price(session.session_type), session.scheduled_at, Initiator(initiator), clock.now())


def cancel_session(
    store: Store,
    notifier: Notifier,
    clock: Clock,
    session_id: str,
    initiator: Initiator,
    *,
    actor_id: str | None = None,
) -> tuple[Session, RefundDecision]:
    """Cancel a session on behalf of one party and work out the refund owed.

    The refund is evaluated at the moment of cancellation. A reschedule
    request still pending on the session is closed as declined.
    """
    initiator = Initiator(initiator)
    now = clock.now()
    session = _get_session(store, session_id)
    if actor_id is not None:
        expected = session.client_id if initiator == Initiator.CLIENT else session.supporter_id
        if actor_id != expected:
            raise ValidationError("actor is not the session's " + initiator.value, code="not_participant")

    target = transition_session(session.status, "cancel")
    if not store.update_session_status(session.id, target, session.status):
        raise PreconditionFailed("session changed concurrently", code="stale_status")

    pending = store.get_pending_reschedule(session.id)
    if pending is not None and store.update_reschedule_status(
        pending.id, RescheduleStatus.DECLINED, RescheduleStatus.PENDING, responded_at=now
    ):
        logger.info("[SESSION] closed pending reschedule=%s on cancel", pending.id)

    refund = calculate_refund(session_price(session.session_type), session.scheduled_at, initiator, now)
    logger.info(
        "[SESSION] cancelled session=%s by=%s refund=%s%% amount=%s",
        session.id,
        initiator.value,
        refund.percentage,
        refund.amount,
    )

    recipient, recipient_type = (
        (session.client_id, "client") if initiator == Initiator.SUPPORTER else (session.supporter_id, "supporter")
    )
    notifications.dispatch(
        notifier,
        recipient,
        notifications.SESSION_CANCELLED,
        {
            "session_id": session.id,
            "session_type": session.session_type.value,
            "scheduled_at": session.scheduled_at.isoformat(),
            "recipient_type": recipient_type,
            "refund_amount": format_currency(refund.amount) if refund.amount else None,
        },
    )
    return replace(session, status=target), refund
