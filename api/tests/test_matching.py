import pytest

from conftest import supporter_row
from peer_support.domain import DayPart, EligibleSupporter, PendingSupporter, SessionType
from peer_support.errors import ValidationError
from peer_support.services.matching import (
    DEFAULT_PREFERENCES,
    FALLBACK_REASON,
    _round_half_up,
    approach_score,
    best_match,
    build_preferences,
    candidate_from_row,
    match,
    preferences_with_defaults,
    score_candidate,
    session_type_score,
    specialty_score,
    time_score,
)


def _prefs(**overrides):
    payload = dict(DEFAULT_PREFERENCES)
    payload["topics"] = ["anxiety"]
    payload.update(overrides)
    return build_preferences(payload)


def _candidate(**overrides) -> EligibleSupporter:
    c = candidate_from_row(supporter_row(**overrides))
    assert isinstance(c, EligibleSupporter)
    return c


def test_single_topic_full_specialty_match():
    score, reasons = specialty_score(["anxiety"], ["Anxiety"])
    assert score == 40
    assert reasons == ["Specializes in Anxiety"]


def test_topic_maps_to_alternate_specialty_label():
    score, reasons = specialty_score(["work_career"], ["Career"])
    assert score == 40
    assert reasons == ["Specializes in Career"]


def test_no_topics_means_no_specialty_points():
    assert specialty_score([], ["Anxiety"]) == (0.0, [])
    result = score_candidate(_prefs(topics=[]), _candidate())
    assert result.breakdown["specialty"] == 0


def test_partial_specialty_overlap_is_proportional():
    score, _ = specialty_score(["anxiety", "grief"], ["Anxiety"])
    assert score == 20


def test_session_type_overlap():
    offered = frozenset({SessionType.CHAT})
    assert session_type_score(frozenset({SessionType.CHAT, SessionType.VIDEO}), offered) == (10.0, False)
    assert session_type_score(frozenset({SessionType.CHAT}), offered) == (20.0, True)


def test_no_time_preference_gets_flexible_score():
    assert time_score(frozenset(), _candidate()) == 10


def test_time_score_counts_each_day_part_once():
    candidate = _candidate(availability={"monday": ["09:00", "10:00", "11:00"]})
    assert time_score(frozenset({DayPart.MORNING, DayPart.EVENING}), candidate) == 10
    assert time_score(frozenset({DayPart.MORNING}), candidate) == 20


def test_weekend_preference_needs_a_weekend_slot():
    weekday_only = _candidate(availability={"Monday": ["9:00-17:00"]})
    with_saturday = _candidate()
    assert time_score(frozenset({DayPart.WEEKENDS}), weekday_only) == 0
    assert time_score(frozenset({DayPart.WEEKENDS}), with_saturday) == 20


def test_approach_score():
    prefs = _prefs(communication_style="empathetic", personality_preference="warm")
    assert approach_score(prefs.communication_style, prefs.personality_preference, "") == 5
    assert approach_score(prefs.communication_style, prefs.personality_preference, "warm") == 5
    assert approach_score(prefs.communication_style, prefs.personality_preference, _candidate().approach) == 15


def test_perfect_candidate_scores_100_with_three_reasons():
    prefs = _prefs(
        preferred_times=["morning"],
        communication_style="empathetic",
        personality_preference="warm",
        urgency="soon",
    )
    result = score_candidate(prefs, _candidate())
    assert result.compatibility_score == 100
    assert result.match_reasons == (
        "Specializes in Anxiety",
        "Offers all your preferred session types",
        "Available when you need",
    )


def test_weak_candidate_gets_fallback_reason():
    prefs = _prefs(preferred_session_types=["video"], preferred_times=["evening"])
    candidate = _candidate(specialties=["Grief"], session_types=["chat"], approach="", is_available=False)
    result = score_candidate(prefs, candidate)
    assert result.compatibility_score == 5
    assert result.match_reasons == (FALLBACK_REASON,)


def test_scores_are_bounded():
    prefs = _prefs(topics=["anxiety", "grief", "identity"], preferred_times=["morning", "weekends", "night"])
    for row in (
        supporter_row(),
        supporter_row(specialties=[], session_types=["chat"], approach="", is_available=False, availability={}),
        supporter_row(specialties=["Grief", "LGBTQ+", "Anxiety"], availability={"sunday": ["21:00-23:00"]}),
    ):
        result = score_candidate(prefs, candidate_from_row(row))
        assert 0 <= result.compatibility_score <= 100
        assert 1 <= len(result.match_reasons) <= 3


def test_results_sorted_best_first():
    strong = _candidate(id="strong")
    medium = _candidate(id="medium", specialties=["Stress"])
    weak = _candidate(id="weak", specialties=[], approach="", is_available=False, availability={})
    results = match(_prefs(), [weak, strong, medium], min_score=0)
    assert [r.candidate_id for r in results] == ["strong", "medium", "weak"]
    scores = [r.compatibility_score for r in results]
    assert scores == sorted(scores, reverse=True)


def test_ties_keep_input_order():
    first = _candidate(id="first")
    second = _candidate(id="second")
    assert [r.candidate_id for r in match(_prefs(), [first, second])] == ["first", "second"]
    assert [r.candidate_id for r in match(_prefs(), [second, first])] == ["second", "first"]


def test_below_threshold_falls_back_to_everyone():
    a = _candidate(id="a")
    b = _candidate(id="b", specialties=[])
    results = match(_prefs(), [a, b], min_score=1000)
    assert {r.candidate_id for r in results} == {"a", "b"}


def test_threshold_filters_when_something_clears_it():
    strong = _candidate(id="strong")
    weak = _candidate(id="weak", specialties=[], session_types=["chat"], approach="", is_available=False, availability={})
    results = match(_prefs(preferred_session_types=["video"]), [strong, weak], min_score=15)
    assert [r.candidate_id for r in results] == ["strong"]


def test_pending_and_excluded_candidates_never_returned():
    pending = candidate_from_row(supporter_row(id="pending", is_verified=False))
    assert isinstance(pending, PendingSupporter)
    ok = _candidate(id="ok")
    old = _candidate(id="old")
    results = match(_prefs(), [pending, old, ok], exclude_ids=["old"])
    assert [r.candidate_id for r in results] == ["ok"]
    assert match(_prefs(), [pending]) == []
    assert best_match(_prefs(), []) is None


def test_candidate_from_row_reports_missing_requirements():
    pending = candidate_from_row(supporter_row(id="p", is_verified=False, accepting_clients=False, onboarding_complete=False))
    assert pending == PendingSupporter(id="p", missing=("verification", "accepting_clients", "onboarding"))
    relaxed = candidate_from_row(supporter_row(onboarding_complete=False), require_onboarding=False)
    assert isinstance(relaxed, EligibleSupporter)


def test_candidate_without_session_types_offers_all():
    candidate = _candidate(session_types=None)
    assert candidate.session_types == frozenset(SessionType)


def test_round_half_up():
    assert _round_half_up(12.5) == 13
    assert _round_half_up(12.49) == 12


def test_build_preferences_validation():
    with pytest.raises(ValidationError):
        build_preferences({"mood": 3})
    with pytest.raises(ValidationError):
        _prefs(mood=6)
    with pytest.raises(ValidationError):
        _prefs(communication_style="shouty")


def test_preferences_with_defaults_fills_gaps():
    prefs = preferences_with_defaults({"topics": ["grief"]})
    assert prefs.topics == frozenset({"grief"})
    assert prefs.preferred_session_types == frozenset(SessionType)
    assert preferences_with_defaults(None).mood == 3
