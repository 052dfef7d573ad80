from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Union


class SessionType(str, Enum):
    CHAT = "chat"
    PHONE = "phone"
    VIDEO = "video"


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class RescheduleStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    AUTO_CANCELLED = "auto_cancelled"


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class AssignmentEndReason(str, Enum):
    CLIENT_REQUESTED = "client_requested"
    SUPPORTER_REQUESTED = "supporter_requested"
    ADMIN = "admin"
    COMPLETED = "completed"


class Initiator(str, Enum):
    CLIENT = "client"
    SUPPORTER = "supporter"


class CommunicationStyle(str, Enum):
    DIRECT = "direct"
    EMPATHETIC = "empathetic"
    BALANCED = "balanced"
    EXPLORATORY = "exploratory"


class PersonalityPreference(str, Enum):
    WARM = "warm"
    MOTIVATING = "motivating"
    CALM = "calm"
    ANALYTICAL = "analytical"


class Urgency(str, Enum):
    SOON = "soon"
    MODERATE = "moderate"
    EXPLORING = "exploring"


class DayPart(str, Enum):
    EARLY_MORNING = "early_morning"
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"
    WEEKENDS = "weekends"


class Weekday(IntEnum):
    # Values line up with datetime.weekday().
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def parse(cls, value: Any) -> "Weekday":
        if isinstance(value, Weekday):
            return value
        if isinstance(value, int):
            return cls(value)
        return cls[str(value).strip().upper()]

    @property
    def is_weekend(self) -> bool:
        return self in (Weekday.SATURDAY, Weekday.SUNDAY)


@dataclass(frozen=True)
class TimeRange:
    """Half-open window [start_minute, end_minute) measured from local midnight."""

    start_minute: int
    end_minute: int

    @property
    def start_hour(self) -> int:
        return self.start_minute // 60

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start_minute < other.end_minute and self.end_minute > other.start_minute

    def contains(self, other: "TimeRange") -> bool:
        return self.start_minute <= other.start_minute and other.end_minute <= self.end_minute


Availability = dict[Weekday, tuple[TimeRange, ...]]


@dataclass(frozen=True)
class ClientPreferences:
    mood: int
    topics: frozenset[str]
    communication_style: CommunicationStyle
    preferred_session_types: frozenset[SessionType]
    preferred_times: frozenset[DayPart]
    personality_preference: PersonalityPreference
    urgency: Urgency
    timezone: str


@dataclass(frozen=True)
class EligibleSupporter:
    """A supporter who is verified, accepting clients and fully onboarded."""

    id: str
    specialties: tuple[str, ...]
    session_types: frozenset[SessionType]
    availability: Availability
    approach: str
    is_available: bool
    full_name: str = ""


@dataclass(frozen=True)
class PendingSupporter:
    """A supporter who cannot be matched yet; `missing` names the unmet requirements."""

    id: str
    missing: tuple[str, ...]


SupporterCandidate = Union[EligibleSupporter, PendingSupporter]


@dataclass(frozen=True)
class MatchResult:
    candidate_id: str
    compatibility_score: int
    match_reasons: tuple[str, ...]
    breakdown: dict[str, float] = field(default_factory=dict, compare=False)


@dataclass
class ClientAssignment:
    id: str
    client_id: str
    supporter_id: str
    status: AssignmentStatus
    started_at: datetime
    ended_at: datetime | None = None
    end_reason: AssignmentEndReason | None = None


@dataclass
class Session:
    id: str
    client_id: str
    supporter_id: str
    session_type: SessionType
    scheduled_at: datetime
    duration_minutes: int
    status: SessionStatus


@dataclass
class RescheduleRequest:
    id: str
    session_id: str
    supporter_id: str
    client_id: str
    original_scheduled_at: datetime
    proposed_scheduled_at: datetime
    status: RescheduleStatus
    response_deadline: datetime
    reason: str | None = None
    responded_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class RefundDecision:
    percentage: int
    amount: int
    reason: str


@dataclass
class SweepResult:
    processed_count: int = 0
    cancelled_session_ids: list[str] = field(default_factory=list)
    refunds: dict[str, RefundDecision] = field(default_factory=dict)
