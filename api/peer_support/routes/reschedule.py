from typing import Any

from fastapi import APIRouter, Depends

from ..deps import get_clock, get_notifier, get_store
from ..http_helpers import record_to_dict
from ..schemas import CreateRescheduleRequest, RescheduleResponseRequest
from ..services.reschedule import accept_reschedule, create_reschedule_request, decline_reschedule, time_until_deadline
from ..services.sweep import sweep_expired
from ..store import Clock, Notifier, Store

router = APIRouter()


@router.post("/sessions/{session_id}/reschedule")
def post_reschedule(
    session_id: str,
    body: CreateRescheduleRequest,
    store: Store = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    request = create_reschedule_request(
        store,
        notifier,
        clock,
        session_id=session_id,
        supporter_id=body.supporter_id,
        proposed_scheduled_at=body.proposed_scheduled_at,
        reason=body.reason,
        supporter_name=body.supporter_name,
    )
    return {"request": record_to_dict(request)}


@router.post("/reschedule/{request_id}/accept")
def post_accept(
    request_id: str,
    body: RescheduleResponseRequest,
    store: Store = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    request, session = accept_reschedule(store, notifier, clock, request_id, client_id=body.client_id)
    return {"request": record_to_dict(request), "session": record_to_dict(session)}


@router.post("/reschedule/{request_id}/decline")
def post_decline(
    request_id: str,
    body: RescheduleResponseRequest,
    store: Store = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    request = decline_reschedule(store, notifier, clock, request_id, client_id=body.client_id)
    return {"request": record_to_dict(request)}


@router.get("/clients/{client_id}/reschedule-requests")
def get_client_requests(
    client_id: str,
    store: Store = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    # Resolve anything this client let lapse before listing what is still open.
    swept = sweep_expired(store, notifier, clock, scope_client_id=client_id)
    now = clock.now()
    requests = []
    for r in store.list_pending_reschedules(client_id):
        item = record_to_dict(r)
        item["time_remaining"] = time_until_deadline(r.response_deadline, now)
        requests.append(item)
    return {"requests": requests, "auto_cancelled_session_ids": swept.cancelled_session_ids}
