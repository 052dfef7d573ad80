from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from ..config import MIN_MATCH_SCORE
from ..domain import (
    ClientPreferences,
    CommunicationStyle,
    DayPart,
    EligibleSupporter,
    MatchResult,
    PendingSupporter,
    PersonalityPreference,
    SessionType,
    SupporterCandidate,
    Urgency,
)
from ..errors import ValidationError
from .availability import matches_day_part, parse_availability

logger = logging.getLogger(__name__)

SPECIALTY_W = 40.0
SESSION_TYPE_W = 20.0
TIME_W = 20.0
APPROACH_W = 15.0
LIVE_AVAILABILITY_BONUS = 5.0

FLEXIBLE_TIME_SCORE = 10.0
NEUTRAL_APPROACH_SCORE = 5.0
KEYWORD_HIT_SCORE = 5.0
DETAILED_APPROACH_SCORE = 5.0
DETAILED_APPROACH_MIN_CHARS = 50

MAX_REASONS = 3
FALLBACK_REASON = "Available to support you"

# Quiz topic id -> specialty labels supporters use on their profiles.
TOPIC_TO_SPECIALTIES: dict[str, tuple[str, ...]] = {
    "anxiety": ("Anxiety",),
    "stress": ("Stress",),
    "depression": ("Depression",),
    "relationships": ("Relationships",),
    "loneliness": ("Loneliness",),
    "work_career": ("Work-Life Balance", "Career"),
    "academic": ("Academic Pressure",),
    "self_esteem": ("Self-Esteem",),
    "family": ("Family Issues", "Family"),
    "grief": ("Grief/Loss", "Grief"),
    "transitions": ("Life Transitions", "Transitions"),
    "identity": ("LGBTQ+", "Identity", "Coming Out"),
}

STYLE_KEYWORDS: dict[CommunicationStyle, tuple[str, ...]] = {
    CommunicationStyle.DIRECT: ("practical", "actionable", "direct", "solution", "goal"),
    CommunicationStyle.EMPATHETIC: ("empathy", "listen", "understand", "support", "validate", "safe"),
    CommunicationStyle.BALANCED: ("balance", "both", "combine", "flexible", "adapt"),
    CommunicationStyle.EXPLORATORY: ("explore", "reflect", "question", "understand", "insight", "discover"),
}

# Stems on purpose: "motivat" hits motivate/motivating/motivation.
PERSONALITY_KEYWORDS: dict[PersonalityPreference, tuple[str, ...]] = {
    PersonalityPreference.WARM: ("warm", "caring", "nurturing", "gentle", "compassion", "comfort"),
    PersonalityPreference.MOTIVATING: ("motivat", "energy", "uplift", "encourage", "action", "positive"),
    PersonalityPreference.CALM: ("calm", "peace", "steady", "ground", "reassur", "relax"),
    PersonalityPreference.ANALYTICAL: ("analytic", "logic", "thought", "method", "insight", "understand"),
}

DEFAULT_PREFERENCES: dict[str, Any] = {
    "mood": 3,
    "topics": [],
    "communication_style": CommunicationStyle.BALANCED.value,
    "preferred_session_types": [t.value for t in SessionType],
    "preferred_times": [DayPart.MORNING.value, DayPart.AFTERNOON.value, DayPart.EVENING.value],
    "personality_preference": PersonalityPreference.WARM.value,
    "urgency": Urgency.MODERATE.value,
    "timezone": "America/New_York",
}

_REQUIRED_PREFERENCE_FIELDS = tuple(DEFAULT_PREFERENCES.keys())


def build_preferences(payload: dict[str, Any]) -> ClientPreferences:
    missing = [k for k in _REQUIRED_PREFERENCE_FIELDS if payload.get(k) is None]
    if missing:
        raise ValidationError(f"missing preference fields: {', '.join(missing)}")
    try:
        mood = int(payload["mood"])
        prefs = ClientPreferences(
            mood=mood,
            topics=frozenset(str(t).strip().lower() for t in payload["topics"] if str(t).strip()),
            communication_style=CommunicationStyle(payload["communication_style"]),
            preferred_session_types=frozenset(SessionType(t) for t in payload["preferred_session_types"]),
            preferred_times=frozenset(DayPart(t) for t in payload["preferred_times"]),
            personality_preference=PersonalityPreference(payload["personality_preference"]),
            urgency=Urgency(payload["urgency"]),
            timezone=str(payload["timezone"]),
        )
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"invalid preferences: {exc}") from exc
    if not 1 <= mood <= 5:
        raise ValidationError("mood must be 1-5")
    return prefs


def preferences_with_defaults(partial: dict[str, Any] | None) -> ClientPreferences:
    merged = dict(DEFAULT_PREFERENCES)
    merged.update({k: v for k, v in (partial or {}).items() if v is not None})
    return build_preferences(merged)


def preferences_to_payload(prefs: ClientPreferences) -> dict[str, Any]:
    return {
        "mood": prefs.mood,
        "topics": sorted(prefs.topics),
        "communication_style": prefs.communication_style.value,
        "preferred_session_types": sorted(t.value for t in prefs.preferred_session_types),
        "preferred_times": sorted(t.value for t in prefs.preferred_times),
        "personality_preference": prefs.personality_preference.value,
        "urgency": prefs.urgency.value,
        "timezone": prefs.timezone,
    }


def candidate_from_row(row: dict[str, Any], *, require_onboarding: bool = True) -> SupporterCandidate:
    """Turn a raw supporter row into either an eligible candidate or a pending one."""
    supporter_id = str(row["id"])
    missing: list[str] = []
    if not row.get("is_verified"):
        missing.append("verification")
    if not row.get("accepting_clients"):
        missing.append("accepting_clients")
    if require_onboarding and not row.get("onboarding_complete"):
        missing.append("onboarding")
    if missing:
        return PendingSupporter(id=supporter_id, missing=tuple(missing))

    raw_types = row.get("session_types") or [t.value for t in SessionType]
    session_types = frozenset(SessionType(t) for t in raw_types if t in {s.value for s in SessionType})
    return EligibleSupporter(
        id=supporter_id,
        full_name=str(row.get("full_name") or ""),
        specialties=tuple(str(s) for s in (row.get("specialties") or [])),
        session_types=session_types,
        availability=parse_availability(row.get("availability")),
        approach=str(row.get("approach") or ""),
        is_available=bool(row.get("is_available")),
    )


def specialty_score(topics: Iterable[str], specialties: Iterable[str]) -> tuple[float, list[str]]:
    topics = list(topics)
    if not topics:
        return 0.0, []
    offered = {s.lower() for s in specialties}
    reasons: list[str] = []
    matched = 0
    for topic in topics:
        for label in TOPIC_TO_SPECIALTIES.get(topic.lower(), (topic,)):
            if label.lower() in offered:
                matched += 1
                reasons.append(f"Specializes in {label}")
                break
    return matched / len(topics) * SPECIALTY_W, reasons


def session_type_score(preferred: frozenset[SessionType], offered: frozenset[SessionType]) -> tuple[float, bool]:
    if not preferred:
        return 0.0, False
    overlap = len(preferred & offered)
    return overlap / len(preferred) * SESSION_TYPE_W, overlap == len(preferred)


def time_score(preferred_times: frozenset[DayPart], candidate: EligibleSupporter) -> float:
    if not preferred_times:
        return FLEXIBLE_TIME_SCORE
    matched = sum(1 for part in preferred_times if matches_day_part(candidate.availability, part))
    return min(TIME_W, matched / len(preferred_times) * TIME_W)


def approach_score(style: CommunicationStyle, personality: PersonalityPreference, approach: str) -> float:
    if not approach:
        return NEUTRAL_APPROACH_SCORE
    text = approach.lower()
    score = 0.0
    if any(k in text for k in STYLE_KEYWORDS.get(style, ())):
        score += KEYWORD_HIT_SCORE
    if any(k in text for k in PERSONALITY_KEYWORDS.get(personality, ())):
        score += KEYWORD_HIT_SCORE
    if len(approach) > DETAILED_APPROACH_MIN_CHARS:
        score += DETAILED_APPROACH_SCORE
    return min(APPROACH_W, score)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_candidate(prefs: ClientPreferences, candidate: EligibleSupporter) -> MatchResult:
    # Topics are iterated sorted so reason order does not depend on set ordering.
    specialty, reasons = specialty_score(sorted(prefs.topics), candidate.specialties)

    session_types, all_types = session_type_score(prefs.preferred_session_types, candidate.session_types)
    if all_types:
        reasons.append("Offers all your preferred session types")

    timing = time_score(prefs.preferred_times, candidate)
    if timing >= 15:
        reasons.append("Available when you need")

    approach = approach_score(prefs.communication_style, prefs.personality_preference, candidate.approach)
    if approach >= 10:
        reasons.append("Communication style match")

    live = 0.0
    if candidate.is_available:
        live = LIVE_AVAILABILITY_BONUS
        if prefs.urgency == Urgency.SOON:
            reasons.append("Available now")

    breakdown = {
        "specialty": round(specialty, 4),
        "session_type": round(session_types, 4),
        "availability": round(timing, 4),
        "approach": round(approach, 4),
        "live_availability": live,
    }
    total = specialty + session_types + timing + approach + live
    return MatchResult(
        candidate_id=candidate.id,
        compatibility_score=_round_half_up(total),
        match_reasons=tuple(reasons[:MAX_REASONS]) if reasons else (FALLBACK_REASON,),
        breakdown=breakdown,
    )


def match(
    prefs: ClientPreferences,
    candidates: Iterable[SupporterCandidate],
    min_score: int = MIN_MATCH_SCORE,
    exclude_ids: Iterable[str] = (),
) -> list[MatchResult]:
    """Rank eligible candidates for `prefs`, best first.

    Scores under `min_score` are dropped unless that would leave nothing, in
    which case every scored candidate is returned. Equal scores keep input
    order. No eligible candidates gives an empty list.
    """
    excluded = set(exclude_ids)
    scored = [
        score_candidate(prefs, c)
        for c in candidates
        if isinstance(c, EligibleSupporter) and c.id not in excluded
    ]
    scored.sort(key=lambda r: r.compatibility_score, reverse=True)
    logger.debug("[MATCH] scored %d candidates: %s", len(scored), [(r.candidate_id, r.compatibility_score) for r in scored])

    strong = [r for r in scored if r.compatibility_score >= min_score]
    return strong if strong else scored


def best_match(prefs: ClientPreferences, candidates: Iterable[SupporterCandidate], **kwargs: Any) -> MatchResult | None:
    results = match(prefs, candidates, **kwargs)
    return results[0] if results else None
