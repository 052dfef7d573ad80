from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_clock, get_notifier, get_store
from ..http_helpers import match_to_dict, record_to_dict
from ..schemas import AssignRequest, EndAssignmentRequest, MatchRequest, ReassignRequest
from ..services.assignments import assign_supporter, end_assignment, request_reassignment
from ..services.matching import build_preferences, match
from ..store import Clock, Notifier, Store

router = APIRouter()


@router.post("/matches")
def post_matches(body: MatchRequest, store: Store = Depends(get_store)) -> dict[str, Any]:
    prefs = build_preferences(body.preferences.model_dump(exclude_none=True))
    results = match(prefs, store.list_eligible_supporters({"session_type": body.session_type}))
    if body.client_id:
        store.save_client_preferences(body.client_id, prefs)
    return {"matches": [match_to_dict(r) for r in results]}


@router.post("/assignments")
def post_assignment(body: AssignRequest, store: Store = Depends(get_store), clock: Clock = Depends(get_clock)) -> dict[str, Any]:
    assignment = assign_supporter(store, clock, body.client_id, body.supporter_id)
    return {"assignment": record_to_dict(assignment)}


@router.post("/assignments/end")
def post_end_assignment(
    body: EndAssignmentRequest, store: Store = Depends(get_store), clock: Clock = Depends(get_clock)
) -> dict[str, Any]:
    end_assignment(store, clock, body.client_id, body.supporter_id, body.reason)
    return {"status": "ended"}


@router.post("/assignments/reassign")
def post_reassign(
    body: ReassignRequest,
    store: Store = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    assignment, chosen = request_reassignment(
        store,
        notifier,
        clock,
        body.client_id,
        body.preferences.model_dump(exclude_none=True) if body.preferences else None,
        current_supporter_id=body.current_supporter_id,
    )
    return {"assignment": record_to_dict(assignment), "match": match_to_dict(chosen)}


@router.get("/assignments/{client_id}")
def get_assignment(client_id: str, store: Store = Depends(get_store)) -> dict[str, Any]:
    assignment = store.get_active_assignment(client_id)
    if assignment is None:
        raise HTTPException(status_code=404, detail="No active assignment")
    return {"assignment": record_to_dict(assignment)}
