from __future__ import annotations

import logging
import threading

from ..config import SWEEP_INTERVAL_SECONDS
from ..domain import Initiator, RescheduleStatus, SessionStatus, SweepResult
from ..errors import CollaboratorUnavailable, DomainError, PreconditionFailed
from ..store import Clock, Notifier, Store
from . import notifications
from .refunds import calculate_refund, format_currency, session_price
from .reschedule import release_claim, request_payload
from .state_machine import transition_reschedule

logger = logging.getLogger(__name__)


def sweep_expired(store: Store, notifier: Notifier, clock: Clock, scope_client_id: str | None = None) -> SweepResult:
    """Auto-cancel sessions whose reschedule request went unanswered.

    Each request is claimed with a pending -> auto_cancelled conditional
    update, so a concurrent client response or a second sweep wins or loses
    cleanly and already-resolved requests are skipped. A store outage after the
    claim puts the request back to pending before the error propagates, so
    the next pass cancels the session instead. The refund is computed
    as a client cancellation because the client is the one who did not answer.
    """
    now = clock.now()
    result = SweepResult()

    for request in store.list_expired_pending(now, scope_client_id):
        try:
            target = transition_reschedule(request.status, "expire", now, request.response_deadline)
        except PreconditionFailed:
            continue
        if not store.update_reschedule_status(request.id, target, RescheduleStatus.PENDING, responded_at=now):
            logger.info("[SWEEP] request=%s resolved concurrently, skipping", request.id)
            continue

        try:
            session = store.get_session(request.session_id)
            cancelled = session is not None and store.update_session_status(
                session.id, SessionStatus.CANCELLED, SessionStatus.SCHEDULED
            )
        except CollaboratorUnavailable:
            # Released requests are picked up again by the next pass.
            release_claim(store, request, target)
            raise
        result.processed_count += 1

        if session is None:
            logger.warning("[SWEEP] request=%s points at missing session=%s", request.id, request.session_id)
            continue
        if not cancelled:
            logger.warning("[SWEEP] session=%s was %s, not cancelling", session.id, session.status.value)
            continue

        refund = calculate_refund(session_price(session.session_type), session.scheduled_at, Initiator.CLIENT, now)
        result.cancelled_session_ids.append(session.id)
        result.refunds[session.id] = refund
        logger.info(
            "[SWEEP] auto-cancelled session=%s request=%s refund=%s%%",
            session.id,
            request.id,
            refund.percentage,
        )

        payload = request_payload(request)
        payload.update(
            {
                "session_type": session.session_type.value,
                "refund_percentage": refund.percentage,
                "refund_amount": format_currency(refund.amount) if refund.amount else None,
            }
        )
        notifications.dispatch(notifier, session.client_id, notifications.SESSION_AUTO_CANCELLED, {**payload, "recipient_type": "client"})
        notifications.dispatch(notifier, session.supporter_id, notifications.SESSION_AUTO_CANCELLED, {**payload, "recipient_type": "supporter"})

    if result.processed_count:
        logger.info("[SWEEP] processed=%d cancelled=%s", result.processed_count, result.cancelled_session_ids)
    return result


class SweepWorker:
    """Runs sweep_expired on a daemon thread every `interval` seconds."""

    def __init__(self, store: Store, notifier: Notifier, clock: Clock, interval: float = SWEEP_INTERVAL_SECONDS) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> SweepResult | None:
        try:
            return sweep_expired(self.store, self.notifier, self.clock)
        except DomainError as exc:
            logger.warning("[SWEEP] pass failed: %s", exc.message)
            return None
        except Exception:
            logger.exception("[SWEEP] pass failed")
            return None

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            if self._stop.wait(self.interval):
                break

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="reschedule-sweep", daemon=True)
        self._thread.start()
        logger.info("[SWEEP] worker started interval=%ss", self.interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
