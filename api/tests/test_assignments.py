import pytest

from conftest import supporter_row
from peer_support.domain import AssignmentEndReason, AssignmentStatus
from peer_support.errors import NotFoundError, ValidationError
from peer_support.services import notifications
from peer_support.services.assignments import assign_supporter, end_assignment, request_reassignment
from peer_support.services.matching import candidate_from_row, preferences_with_defaults


def _add(store, **overrides):
    return store.add_supporter(candidate_from_row(supporter_row(**overrides)))


def test_assign_then_reject_second_active(store, clock):
    assignment = assign_supporter(store, clock, "client-1", "sup-1")
    assert assignment.status == AssignmentStatus.ACTIVE
    assert assignment.started_at == clock.now()
    with pytest.raises(ValidationError) as exc:
        assign_supporter(store, clock, "client-1", "sup-2")
    assert exc.value.code == "assignment_exists"


def test_end_assignment(store, clock):
    assign_supporter(store, clock, "client-1", "sup-1")
    end_assignment(store, clock, "client-1", "sup-1", "supporter_requested")
    assert store.get_active_assignment("client-1") is None
    [ended] = store.assignments.values()
    assert ended.end_reason == AssignmentEndReason.SUPPORTER_REQUESTED
    with pytest.raises(NotFoundError):
        end_assignment(store, clock, "client-1", "sup-1")


def test_reassignment_never_offers_previous_supporter(store, notifier, clock):
    _add(store, id="old")
    _add(store, id="other", specialties=["Grief"])
    assign_supporter(store, clock, "client-1", "old")

    assignment, chosen = request_reassignment(
        store, notifier, clock, "client-1", {"topics": ["anxiety"]}, current_supporter_id="old"
    )

    assert chosen.candidate_id == "other"
    assert assignment.supporter_id == "other"
    assert store.get_active_assignment("client-1").supporter_id == "other"
    assert notifier.to("old") == [(notifications.ASSIGNMENT_ENDED, {"client_id": "client-1"})]
    assert store.get_client_preferences("client-1").topics == frozenset({"anxiety"})


def test_reassignment_reuses_saved_preferences(store, notifier, clock):
    _add(store, id="griever", specialties=["Grief"])
    _add(store, id="anxious", specialties=["Anxiety"])
    store.save_client_preferences("client-1", preferences_with_defaults({"topics": ["grief"]}))

    _, chosen = request_reassignment(store, notifier, clock, "client-1")

    assert chosen.candidate_id == "griever"


def test_reassignment_without_candidates_changes_nothing(store, notifier, clock):
    _add(store, id="old")
    _add(store, id="pending", is_verified=False)
    assign_supporter(store, clock, "client-1", "old")

    with pytest.raises(ValidationError) as exc:
        request_reassignment(store, notifier, clock, "client-1", current_supporter_id="old")

    assert exc.value.code == "no_eligible_candidates"
    assert store.get_active_assignment("client-1").supporter_id == "old"
    assert notifier.sent == []
