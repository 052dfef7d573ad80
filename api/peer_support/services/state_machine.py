from datetime import datetime

from ..domain import RescheduleStatus, SessionStatus
from ..errors import PreconditionFailed, ValidationError

SESSION_TERMINAL = frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.NO_SHOW})

# action -> {from_status: to_status}
SESSION_TRANSITIONS: dict[str, dict[SessionStatus, SessionStatus]] = {
    "start": {SessionStatus.SCHEDULED: SessionStatus.IN_PROGRESS},
    "complete": {SessionStatus.IN_PROGRESS: SessionStatus.COMPLETED},
    "cancel": {
        SessionStatus.SCHEDULED: SessionStatus.CANCELLED,
        SessionStatus.IN_PROGRESS: SessionStatus.CANCELLED,
    },
    "no_show": {SessionStatus.SCHEDULED: SessionStatus.NO_SHOW},
}

RESCHEDULE_TRANSITIONS: dict[str, RescheduleStatus] = {
    "accept": RescheduleStatus.ACCEPTED,
    "decline": RescheduleStatus.DECLINED,
    "expire": RescheduleStatus.AUTO_CANCELLED,
}


def transition_session(current: SessionStatus, action: str) -> SessionStatus:
    current = SessionStatus(current)
    table = SESSION_TRANSITIONS.get(action)
    if table is None:
        raise ValidationError(f"unknown session action: {action}")
    if current in SESSION_TERMINAL:
        raise ValidationError(f"session is already {current.value}", code="session_terminal")
    target = table.get(current)
    if target is None:
        raise ValidationError(f"cannot {action} a session that is {current.value}", code="invalid_transition")
    return target


def transition_reschedule(current: RescheduleStatus, action: str, now: datetime, deadline: datetime) -> RescheduleStatus:
    """Next status of a reschedule request.

    accept/decline are client responses and need the request to still be
    pending with `now` at or before the deadline. expire is the sweep's move
    and needs the deadline to have strictly passed.
    """
    current = RescheduleStatus(current)
    target = RESCHEDULE_TRANSITIONS.get(action)
    if target is None:
        raise ValidationError(f"unknown reschedule action: {action}")
    if current != RescheduleStatus.PENDING:
        raise PreconditionFailed(f"reschedule request already {current.value}", code="already_resolved")

    if action == "expire":
        if now <= deadline:
            raise PreconditionFailed("response deadline has not passed yet", code="not_expired")
        return target

    if now > deadline:
        raise PreconditionFailed("response deadline has passed", code="deadline_passed")
    return target
