from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .database import SessionLocal
from .domain import (
    AssignmentEndReason,
    AssignmentStatus,
    ClientAssignment,
    ClientPreferences,
    RescheduleRequest,
    RescheduleStatus,
    Session,
    SessionStatus,
    SessionType,
    SupporterCandidate,
)
from .errors import CollaboratorUnavailable, ValidationError
from .services.events import log_session_event
from .services.matching import build_preferences, candidate_from_row, preferences_to_payload

logger = logging.getLogger(__name__)

_SESSION_COLUMNS = "id, client_id, supporter_id, session_type, scheduled_at, duration_minutes, status"
_REQUEST_COLUMNS = (
    "id, session_id, supporter_id, client_id, original_scheduled_at, proposed_scheduled_at, "
    "status, reason, response_deadline, responded_at, created_at"
)
_SUPPORTER_COLUMNS = (
    "id, full_name, specialties, session_types, availability, approach, "
    "is_available, accepting_clients, is_verified, onboarding_complete"
)


def _session_from_row(row: dict[str, Any]) -> Session:
    return Session(
        id=str(row["id"]),
        client_id=str(row["client_id"]),
        supporter_id=str(row["supporter_id"]),
        session_type=SessionType(row["session_type"]),
        scheduled_at=row["scheduled_at"],
        duration_minutes=int(row["duration_minutes"]),
        status=SessionStatus(row["status"]),
    )


def _request_from_row(row: dict[str, Any]) -> RescheduleRequest:
    return RescheduleRequest(
        id=str(row["id"]),
        session_id=str(row["session_id"]),
        supporter_id=str(row["supporter_id"]),
        client_id=str(row["client_id"]),
        original_scheduled_at=row["original_scheduled_at"],
        proposed_scheduled_at=row["proposed_scheduled_at"],
        status=RescheduleStatus(row["status"]),
        response_deadline=row["response_deadline"],
        reason=row.get("reason"),
        responded_at=row.get("responded_at"),
        created_at=row.get("created_at"),
    )


def _assignment_from_row(row: dict[str, Any]) -> ClientAssignment:
    return ClientAssignment(
        id=str(row["id"]),
        client_id=str(row["client_id"]),
        supporter_id=str(row["supporter_id"]),
        status=AssignmentStatus(row["status"]),
        started_at=row["started_at"],
        ended_at=row.get("ended_at"),
        end_reason=AssignmentEndReason(row["end_reason"]) if row.get("end_reason") else None,
    )


class SqlStore:
    """Store backed by the SQL schema in migrations/.

    Status changes are single conditional UPDATEs; `rowcount` tells the
    caller whether it won.
    """

    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _db(self, conflict: tuple[str, str] | None = None) -> Iterator[Any]:
        try:
            with self._session_factory() as db:
                yield db
        except IntegrityError as exc:
            if conflict is None:
                raise CollaboratorUnavailable("store rejected write") from exc
            message, code = conflict
            raise ValidationError(message, code=code) from exc
        except SQLAlchemyError as exc:
            logger.warning("[STORE] database error: %s", exc.__class__.__name__)
            raise CollaboratorUnavailable("store unavailable") from exc

    # sessions

    def get_session(self, session_id: str) -> Session | None:
        with self._db() as db:
            row = db.execute(
                text(f"SELECT {_SESSION_COLUMNS} FROM support_session WHERE id=CAST(:id AS uuid)"),
                {"id": session_id},
            ).mappings().first()
        return _session_from_row(dict(row)) if row else None

    def create_session(self, session: Session) -> Session:
        with self._db() as db:
            db.execute(
                text(
                    """
                    INSERT INTO support_session (id, client_id, supporter_id, session_type, scheduled_at, duration_minutes, status)
                    VALUES (CAST(:id AS uuid), CAST(:client_id AS uuid), CAST(:supporter_id AS uuid), :session_type, :scheduled_at, :duration_minutes, :status)
                    """
                ),
                {
                    "id": session.id,
                    "client_id": session.client_id,
                    "supporter_id": session.supporter_id,
                    "session_type": session.session_type.value,
                    "scheduled_at": session.scheduled_at,
                    "duration_minutes": session.duration_minutes,
                    "status": session.status.value,
                },
            )
            log_session_event(db, session_id=session.id, event_type="booked", payload={"scheduled_at": session.scheduled_at.isoformat()})
            db.commit()
        return session

    def update_session_status(self, session_id: str, status: SessionStatus, precondition_status: SessionStatus) -> bool:
        with self._db() as db:
            result = db.execute(
                text("UPDATE support_session SET status=:status WHERE id=CAST(:id AS uuid) AND status=:expected"),
                {"id": session_id, "status": SessionStatus(status).value, "expected": SessionStatus(precondition_status).value},
            )
            if result.rowcount != 1:
                db.rollback()
                return False
            log_session_event(
                db,
                session_id=session_id,
                event_type="status_changed",
                payload={"from": SessionStatus(precondition_status).value, "to": SessionStatus(status).value},
            )
            db.commit()
        return True

    def update_session_schedule(self, session_id: str, new_time: datetime) -> bool:
        with self._db() as db:
            result = db.execute(
                text("UPDATE support_session SET scheduled_at=:scheduled_at WHERE id=CAST(:id AS uuid) AND status='scheduled'"),
                {"id": session_id, "scheduled_at": new_time},
            )
            if result.rowcount != 1:
                db.rollback()
                return False
            log_session_event(db, session_id=session_id, event_type="rescheduled", payload={"scheduled_at": new_time.isoformat()})
            db.commit()
        return True

    def list_sessions(self, participant_id: str, *, upcoming: bool, now: datetime) -> list[Session]:
        if upcoming:
            where = "scheduled_at >= :now AND status IN ('scheduled', 'in_progress')"
            order = "scheduled_at ASC"
        else:
            where = "(scheduled_at < :now OR status IN ('completed', 'cancelled', 'no_show'))"
            order = "scheduled_at DESC"
        with self._db() as db:
            rows = db.execute(
                text(
                    f"""
                    SELECT {_SESSION_COLUMNS} FROM support_session
                    WHERE (client_id=CAST(:pid AS uuid) OR supporter_id=CAST(:pid AS uuid)) AND {where}
                    ORDER BY {order}
                    """
                ),
                {"pid": participant_id, "now": now},
            ).mappings().all()
        return [_session_from_row(dict(r)) for r in rows]

    def list_booked_sessions(self, supporter_id: str, start: datetime, end: datetime) -> list[Session]:
        with self._db() as db:
            rows = db.execute(
                text(
                    f"""
                    SELECT {_SESSION_COLUMNS} FROM support_session
                    WHERE supporter_id=CAST(:supporter_id AS uuid)
                      AND status IN ('scheduled', 'in_progress')
                      AND scheduled_at >= :start AND scheduled_at < :end
                    ORDER BY scheduled_at ASC
                    """
                ),
                {"supporter_id": supporter_id, "start": start, "end": end},
            ).mappings().all()
        return [_session_from_row(dict(r)) for r in rows]

    # reschedule requests

    def create_reschedule_request(self, request: RescheduleRequest) -> RescheduleRequest:
        with self._db(conflict=("a reschedule request is already pending for this session", "duplicate_pending")) as db:
            db.execute(
                text(
                    """
                    INSERT INTO reschedule_request (
                      id, session_id, supporter_id, client_id, original_scheduled_at, proposed_scheduled_at,
                      status, reason, response_deadline
                    )
                    VALUES (
                      CAST(:id AS uuid), CAST(:session_id AS uuid), CAST(:supporter_id AS uuid), CAST(:client_id AS uuid),
                      :original_scheduled_at, :proposed_scheduled_at, :status, :reason, :response_deadline
                    )
                    """
                ),
                {
                    "id": request.id,
                    "session_id": request.session_id,
                    "supporter_id": request.supporter_id,
                    "client_id": request.client_id,
                    "original_scheduled_at": request.original_scheduled_at,
                    "proposed_scheduled_at": request.proposed_scheduled_at,
                    "status": request.status.value,
                    "reason": request.reason,
                    "response_deadline": request.response_deadline,
                },
            )
            log_session_event(
                db,
                session_id=request.session_id,
                reschedule_request_id=request.id,
                event_type="reschedule_requested",
                payload={"proposed_scheduled_at": request.proposed_scheduled_at.isoformat()},
            )
            db.commit()
        return request

    def get_reschedule_request(self, request_id: str) -> RescheduleRequest | None:
        with self._db() as db:
            row = db.execute(
                text(f"SELECT {_REQUEST_COLUMNS} FROM reschedule_request WHERE id=CAST(:id AS uuid)"),
                {"id": request_id},
            ).mappings().first()
        return _request_from_row(dict(row)) if row else None

    def get_pending_reschedule(self, session_id: str) -> RescheduleRequest | None:
        with self._db() as db:
            row = db.execute(
                text(
                    f"""
                    SELECT {_REQUEST_COLUMNS} FROM reschedule_request
                    WHERE session_id=CAST(:session_id AS uuid) AND status='pending'
                    LIMIT 1
                    """
                ),
                {"session_id": session_id},
            ).mappings().first()
        return _request_from_row(dict(row)) if row else None

    def list_pending_reschedules(self, client_id: str) -> list[RescheduleRequest]:
        with self._db() as db:
            rows = db.execute(
                text(
                    f"""
                    SELECT {_REQUEST_COLUMNS} FROM reschedule_request
                    WHERE client_id=CAST(:client_id AS uuid) AND status='pending'
                    ORDER BY response_deadline ASC
                    """
                ),
                {"client_id": client_id},
            ).mappings().all()
        return [_request_from_row(dict(r)) for r in rows]

    def update_reschedule_status(
        self,
        request_id: str,
        status: RescheduleStatus,
        precondition_status: RescheduleStatus,
        responded_at: datetime | None = None,
    ) -> bool:
        with self._db() as db:
            row = db.execute(
                text(
                    """
                    UPDATE reschedule_request
                    SET status=:status,
                        responded_at=CASE WHEN :status = 'pending' THEN NULL ELSE COALESCE(:responded_at, responded_at) END
                    WHERE id=CAST(:id AS uuid) AND status=:expected
                    RETURNING session_id
                    """
                ),
                {
                    "id": request_id,
                    "status": RescheduleStatus(status).value,
                    "expected": RescheduleStatus(precondition_status).value,
                    "responded_at": responded_at,
                },
            ).mappings().first()
            if not row:
                db.rollback()
                return False
            released = RescheduleStatus(status) == RescheduleStatus.PENDING
            log_session_event(
                db,
                session_id=str(row["session_id"]),
                reschedule_request_id=request_id,
                event_type="reschedule_released" if released else f"reschedule_{RescheduleStatus(status).value}",
                payload={"from": RescheduleStatus(precondition_status).value} if released else None,
            )
            db.commit()
        return True

    def list_expired_pending(self, now: datetime, scope_client_id: str | None = None) -> list[RescheduleRequest]:
        with self._db() as db:
            rows = db.execute(
                text(
                    f"""
                    SELECT {_REQUEST_COLUMNS} FROM reschedule_request
                    WHERE status='pending'
                      AND response_deadline < :now
                      AND (CAST(:client_id AS uuid) IS NULL OR client_id = CAST(:client_id AS uuid))
                    ORDER BY response_deadline ASC
                    """
                ),
                {"now": now, "client_id": scope_client_id},
            ).mappings().all()
        return [_request_from_row(dict(r)) for r in rows]

    # supporters

    def list_eligible_supporters(self, filter: dict[str, Any] | None = None) -> list[SupporterCandidate]:
        filter = filter or {}
        with self._db() as db:
            rows = db.execute(
                text(
                    f"""
                    SELECT {_SUPPORTER_COLUMNS} FROM supporter_profile
                    WHERE accepting_clients AND is_verified AND onboarding_complete
                      AND (CAST(:session_type AS text) IS NULL OR CAST(:session_type AS text) = ANY(session_types))
                      AND (NOT :available_only OR is_available)
                    ORDER BY created_at ASC, id ASC
                    """
                ),
                {
                    "session_type": filter.get("session_type"),
                    "available_only": bool(filter.get("available_only", False)),
                },
            ).mappings().all()
        return [candidate_from_row(dict(r)) for r in rows]

    def get_supporter(self, supporter_id: str) -> SupporterCandidate | None:
        with self._db() as db:
            row = db.execute(
                text(f"SELECT {_SUPPORTER_COLUMNS} FROM supporter_profile WHERE id=CAST(:id AS uuid)"),
                {"id": supporter_id},
            ).mappings().first()
        return candidate_from_row(dict(row)) if row else None

    # assignments

    def get_active_assignment(self, client_id: str) -> ClientAssignment | None:
        with self._db() as db:
            row = db.execute(
                text(
                    """
                    SELECT id, client_id, supporter_id, status, started_at, ended_at, end_reason
                    FROM client_assignment
                    WHERE client_id=CAST(:client_id AS uuid) AND status='active'
                    LIMIT 1
                    """
                ),
                {"client_id": client_id},
            ).mappings().first()
        return _assignment_from_row(dict(row)) if row else None

    def create_assignment(self, assignment: ClientAssignment) -> ClientAssignment:
        with self._db(conflict=("client already has an active supporter", "assignment_exists")) as db:
            db.execute(
                text(
                    """
                    INSERT INTO client_assignment (id, client_id, supporter_id, status, started_at)
                    VALUES (CAST(:id AS uuid), CAST(:client_id AS uuid), CAST(:supporter_id AS uuid), :status, :started_at)
                    """
                ),
                {
                    "id": assignment.id,
                    "client_id": assignment.client_id,
                    "supporter_id": assignment.supporter_id,
                    "status": assignment.status.value,
                    "started_at": assignment.started_at,
                },
            )
            db.commit()
        return assignment

    def end_assignment(self, client_id: str, supporter_id: str, reason: AssignmentEndReason, ended_at: datetime) -> bool:
        with self._db() as db:
            result = db.execute(
                text(
                    """
                    UPDATE client_assignment
                    SET status='ended', ended_at=:ended_at, end_reason=:reason
                    WHERE client_id=CAST(:client_id AS uuid) AND supporter_id=CAST(:supporter_id AS uuid) AND status='active'
                    """
                ),
                {"client_id": client_id, "supporter_id": supporter_id, "reason": AssignmentEndReason(reason).value, "ended_at": ended_at},
            )
            db.commit()
        return result.rowcount > 0

    def save_client_preferences(self, client_id: str, preferences: ClientPreferences) -> None:
        with self._db() as db:
            db.execute(
                text(
                    """
                    INSERT INTO client_preferences (client_id, preferences, updated_at)
                    VALUES (CAST(:client_id AS uuid), CAST(:preferences AS jsonb), NOW())
                    ON CONFLICT (client_id)
                    DO UPDATE SET preferences=EXCLUDED.preferences, updated_at=NOW()
                    """
                ),
                {"client_id": client_id, "preferences": json.dumps(preferences_to_payload(preferences))},
            )
            db.commit()

    def get_client_preferences(self, client_id: str) -> ClientPreferences | None:
        with self._db() as db:
            row = db.execute(
                text("SELECT preferences FROM client_preferences WHERE client_id=CAST(:client_id AS uuid)"),
                {"client_id": client_id},
            ).mappings().first()
        if not row:
            return None
        raw = row["preferences"]
        return build_preferences(json.loads(raw) if isinstance(raw, str) else dict(raw))
