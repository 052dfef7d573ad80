from datetime import datetime

from pydantic import BaseModel

from .domain import AssignmentEndReason, Initiator, SessionType


class PreferencesInput(BaseModel):
    mood: int | None = None
    topics: list[str] | None = None
    communication_style: str | None = None
    preferred_session_types: list[str] | None = None
    preferred_times: list[str] | None = None
    personality_preference: str | None = None
    urgency: str | None = None
    timezone: str | None = None


class MatchRequest(BaseModel):
    client_id: str | None = None
    preferences: PreferencesInput
    session_type: str | None = None


class AssignRequest(BaseModel):
    client_id: str
    supporter_id: str


class EndAssignmentRequest(BaseModel):
    client_id: str
    supporter_id: str
    reason: AssignmentEndReason = AssignmentEndReason.CLIENT_REQUESTED


class ReassignRequest(BaseModel):
    client_id: str
    current_supporter_id: str | None = None
    preferences: PreferencesInput | None = None


class BookSessionRequest(BaseModel):
    client_id: str
    supporter_id: str
    session_type: SessionType
    scheduled_at: datetime


class CancelSessionRequest(BaseModel):
    initiator: Initiator
    actor_id: str | None = None


class CreateRescheduleRequest(BaseModel):
    supporter_id: str
    proposed_scheduled_at: datetime
    reason: str | None = None
    supporter_name: str | None = None


class RescheduleResponseRequest(BaseModel):
    client_id: str


class SweepRequest(BaseModel):
    client_id: str | None = None
