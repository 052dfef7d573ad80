from __future__ import annotations

import logging
import uuid
from typing import Any

from ..domain import AssignmentEndReason, AssignmentStatus, ClientAssignment, MatchResult
from ..errors import NotFoundError, ValidationError
from ..store import Clock, Notifier, Store
from . import notifications
from .matching import best_match, preferences_to_payload, preferences_with_defaults

logger = logging.getLogger(__name__)


def assign_supporter(store: Store, clock: Clock, client_id: str, supporter_id: str) -> ClientAssignment:
    # One active assignment per client; the previous one has to be ended first.
    current = store.get_active_assignment(client_id)
    if current is not None:
        raise ValidationError("client already has an active supporter", code="assignment_exists")
    assignment = store.create_assignment(
        ClientAssignment(
            id=str(uuid.uuid4()),
            client_id=client_id,
            supporter_id=supporter_id,
            status=AssignmentStatus.ACTIVE,
            started_at=clock.now(),
        )
    )
    logger.info("[ASSIGN] client=%s supporter=%s", client_id, supporter_id)
    return assignment


def end_assignment(
    store: Store,
    clock: Clock,
    client_id: str,
    supporter_id: str,
    reason: AssignmentEndReason = AssignmentEndReason.CLIENT_REQUESTED,
) -> None:
    if not store.end_assignment(client_id, supporter_id, AssignmentEndReason(reason), clock.now()):
        raise NotFoundError("no active assignment between this client and supporter")
    logger.info("[ASSIGN] ended client=%s supporter=%s reason=%s", client_id, supporter_id, AssignmentEndReason(reason).value)


def request_reassignment(
    store: Store,
    notifier: Notifier,
    clock: Clock,
    client_id: str,
    preferences: dict[str, Any] | None = None,
    current_supporter_id: str | None = None,
) -> tuple[ClientAssignment, MatchResult]:
    """End the client's current pairing and match them with someone else.

    Without explicit preferences the ones saved for the client are reused.
    Missing fields fall back to broad defaults. The previous supporter is
    never offered again.
    """
    if preferences is None:
        saved = store.get_client_preferences(client_id)
        preferences = preferences_to_payload(saved) if saved else None
    prefs = preferences_with_defaults(preferences)
    best = best_match(
        prefs,
        store.list_eligible_supporters(),
        exclude_ids=[current_supporter_id] if current_supporter_id else (),
    )
    if best is None:
        raise ValidationError(
            "No available supporters match your preferences. Please try adjusting your preferences or try again later.",
            code="no_eligible_candidates",
        )

    if current_supporter_id:
        if store.end_assignment(client_id, current_supporter_id, AssignmentEndReason.CLIENT_REQUESTED, clock.now()):
            notifications.dispatch(notifier, current_supporter_id, notifications.ASSIGNMENT_ENDED, {"client_id": client_id})
        else:
            logger.info("[ASSIGN] no active assignment to end client=%s supporter=%s", client_id, current_supporter_id)

    assignment = assign_supporter(store, clock, client_id, best.candidate_id)
    store.save_client_preferences(client_id, prefs)
    return assignment, best
