from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

from .domain import (
    AssignmentEndReason,
    ClientAssignment,
    ClientPreferences,
    RescheduleRequest,
    RescheduleStatus,
    Session,
    SessionStatus,
    SupporterCandidate,
)


class Store(Protocol):
    """Persistence collaborator.

    Status-changing updates take the status the caller last observed and return
    False when the row no longer has it (optimistic concurrency), instead of
    raising. I/O failures surface as CollaboratorUnavailable.
    """

    def get_session(self, session_id: str) -> Session | None: ...

    def create_session(self, session: Session) -> Session: ...

    def update_session_status(
        self, session_id: str, status: SessionStatus, precondition_status: SessionStatus
    ) -> bool: ...

    def update_session_schedule(self, session_id: str, new_time: datetime) -> bool: ...

    def list_sessions(self, participant_id: str, *, upcoming: bool, now: datetime) -> list[Session]: ...

    def list_booked_sessions(self, supporter_id: str, start: datetime, end: datetime) -> list[Session]: ...

    def create_reschedule_request(self, request: RescheduleRequest) -> RescheduleRequest: ...

    def get_reschedule_request(self, request_id: str) -> RescheduleRequest | None: ...

    def get_pending_reschedule(self, session_id: str) -> RescheduleRequest | None: ...

    def list_pending_reschedules(self, client_id: str) -> list[RescheduleRequest]: ...

    def update_reschedule_status(
        self,
        request_id: str,
        status: RescheduleStatus,
        precondition_status: RescheduleStatus,
        responded_at: datetime | None = None,
    ) -> bool: ...

    def list_expired_pending(self, now: datetime, scope_client_id: str | None = None) -> list[RescheduleRequest]: ...

    def list_eligible_supporters(self, filter: dict[str, Any] | None = None) -> list[SupporterCandidate]: ...

    def get_supporter(self, supporter_id: str) -> SupporterCandidate | None: ...

    def get_active_assignment(self, client_id: str) -> ClientAssignment | None: ...

    def create_assignment(self, assignment: ClientAssignment) -> ClientAssignment: ...

    def end_assignment(
        self, client_id: str, supporter_id: str, reason: AssignmentEndReason, ended_at: datetime
    ) -> bool: ...

    def save_client_preferences(self, client_id: str, preferences: ClientPreferences) -> None: ...

    def get_client_preferences(self, client_id: str) -> ClientPreferences | None: ...


class Notifier(Protocol):
    """Fire-and-forget delivery of human-readable alerts."""

    def notify(self, recipient_id: str, template_kind: str, payload: dict[str, Any]) -> None: ...


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
