import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from peer_support.domain import (
    AssignmentStatus,
    EligibleSupporter,
    RescheduleStatus,
    Session,
    SessionStatus,
    SessionType,
)
from peer_support.services.matching import candidate_from_row

# Monday 09:00 in America/New_York.
NOW = datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    def notify(self, recipient_id, template_kind, payload):
        self.sent.append((recipient_id, template_kind, dict(payload)))

    def kinds(self) -> list[str]:
        return [kind for _, kind, _ in self.sent]

    def to(self, recipient_id: str) -> list[tuple[str, dict[str, Any]]]:
        return [(kind, payload) for rid, kind, payload in self.sent if rid == recipient_id]


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    def notify(self, recipient_id, template_kind, payload):
        self.attempts += 1
        raise RuntimeError("push service down")


class InMemoryStore:
    """Dict-backed store with the same compare-and-set contract as SqlStore."""

    def __init__(self):
        self.sessions: dict[str, Session] = {}
        self.requests: dict[str, Any] = {}
        self.supporters: dict[str, Any] = {}
        self.assignments: dict[str, Any] = {}
        self.preferences: dict[str, Any] = {}

    # sessions

    def get_session(self, session_id):
        s = self.sessions.get(session_id)
        return replace(s) if s else None

    def create_session(self, session):
        self.sessions[session.id] = replace(session)
        return session

    def update_session_status(self, session_id, status, precondition_status):
        s = self.sessions.get(session_id)
        if s is None or s.status != precondition_status:
            return False
        s.status = SessionStatus(status)
        return True

    def update_session_schedule(self, session_id, new_time):
        s = self.sessions.get(session_id)
        if s is None or s.status != SessionStatus.SCHEDULED:
            return False
        s.scheduled_at = new_time
        return True

    def list_sessions(self, participant_id, *, upcoming, now):
        mine = [s for s in self.sessions.values() if participant_id in (s.client_id, s.supporter_id)]
        if upcoming:
            rows = [s for s in mine if s.scheduled_at >= now and s.status in (SessionStatus.SCHEDULED, SessionStatus.IN_PROGRESS)]
            return sorted((replace(s) for s in rows), key=lambda s: s.scheduled_at)
        rows = [
            s
            for s in mine
            if s.scheduled_at < now or s.status in (SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.NO_SHOW)
        ]
        return sorted((replace(s) for s in rows), key=lambda s: s.scheduled_at, reverse=True)

    def list_booked_sessions(self, supporter_id, start, end):
        return [
            replace(s)
            for s in self.sessions.values()
            if s.supporter_id == supporter_id
            and s.status in (SessionStatus.SCHEDULED, SessionStatus.IN_PROGRESS)
            and start <= s.scheduled_at < end
        ]

    # reschedule requests

    def create_reschedule_request(self, request):
        self.requests[request.id] = replace(request)
        return request

    def get_reschedule_request(self, request_id):
        r = self.requests.get(request_id)
        return replace(r) if r else None

    def get_pending_reschedule(self, session_id):
        for r in self.requests.values():
            if r.session_id == session_id and r.status == RescheduleStatus.PENDING:
                return replace(r)
        return None

    def list_pending_reschedules(self, client_id):
        rows = [r for r in self.requests.values() if r.client_id == client_id and r.status == RescheduleStatus.PENDING]
        return sorted((replace(r) for r in rows), key=lambda r: r.response_deadline)

    def update_reschedule_status(self, request_id, status, precondition_status, responded_at=None):
        r = self.requests.get(request_id)
        if r is None or r.status != precondition_status:
            return False
        r.status = RescheduleStatus(status)
        if r.status == RescheduleStatus.PENDING:
            r.responded_at = None
        elif responded_at is not None:
            r.responded_at = responded_at
        return True

    def list_expired_pending(self, now, scope_client_id=None):
        rows = [
            r
            for r in self.requests.values()
            if r.status == RescheduleStatus.PENDING
            and r.response_deadline < now
            and (scope_client_id is None or r.client_id == scope_client_id)
        ]
        return sorted((replace(r) for r in rows), key=lambda r: r.response_deadline)

    # supporters

    def add_supporter(self, candidate):
        self.supporters[candidate.id] = candidate
        return candidate

    def list_eligible_supporters(self, filter=None):
        filter = filter or {}
        out = []
        for c in self.supporters.values():
            if isinstance(c, EligibleSupporter):
                if filter.get("session_type") and SessionType(filter["session_type"]) not in c.session_types:
                    continue
                if filter.get("available_only") and not c.is_available:
                    continue
            out.append(c)
        return out

    def get_supporter(self, supporter_id):
        return self.supporters.get(supporter_id)

    # assignments

    def get_active_assignment(self, client_id):
        for a in self.assignments.values():
            if a.client_id == client_id and a.status == AssignmentStatus.ACTIVE:
                return replace(a)
        return None

    def create_assignment(self, assignment):
        self.assignments[assignment.id] = replace(assignment)
        return assignment

    def end_assignment(self, client_id, supporter_id, reason, ended_at):
        ended = False
        for a in self.assignments.values():
            if a.client_id == client_id and a.supporter_id == supporter_id and a.status == AssignmentStatus.ACTIVE:
                a.status = AssignmentStatus.ENDED
                a.end_reason = reason
                a.ended_at = ended_at
                ended = True
        return ended

    def save_client_preferences(self, client_id, preferences):
        self.preferences[client_id] = preferences

    def get_client_preferences(self, client_id):
        return self.preferences.get(client_id)


def supporter_row(**overrides) -> dict[str, Any]:
    row = {
        "id": str(uuid.uuid4()),
        "full_name": "Sam Rivera",
        "specialties": ["Anxiety", "Stress"],
        "session_types": ["chat", "phone", "video"],
        "availability": {"monday": ["9:00-17:00"], "saturday": ["10:00-12:00"]},
        "approach": "I listen with empathy and offer a warm, safe space to explore what matters to you.",
        "is_available": True,
        "accepting_clients": True,
        "is_verified": True,
        "onboarding_complete": True,
    }
    row.update(overrides)
    return row


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def supporter(store):
    return store.add_supporter(candidate_from_row(supporter_row(id="sup-1")))


@pytest.fixture
def make_session(store, supporter):
    def _make(hours_ahead: float = 26, session_type: SessionType = SessionType.VIDEO, **overrides) -> Session:
        fields = {
            "id": str(uuid.uuid4()),
            "client_id": "client-1",
            "supporter_id": supporter.id,
            "session_type": session_type,
            "scheduled_at": NOW + timedelta(hours=hours_ahead),
            "duration_minutes": 45,
            "status": SessionStatus.SCHEDULED,
        }
        fields.update(overrides)
        return store.create_session(Session(**fields))

    return _make
