from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_clock, get_notifier, get_store
from ..domain import Initiator, SessionType
from ..http_helpers import record_to_dict
from ..schemas import BookSessionRequest, CancelSessionRequest
from ..services.sessions import (
    book_session,
    cancel_session,
    complete_session,
    mark_no_show,
    refund_quote,
    start_session,
    supporter_slots,
)
from ..store import Clock, Notifier, Store

router = APIRouter()


@router.post("/sessions")
def post_session(
    body: BookSessionRequest,
    store: Store = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    session = book_session(
        store,
        notifier,
        clock,
        client_id=body.client_id,
        supporter_id=body.supporter_id,
        session_type=body.session_type,
        scheduled_at=body.scheduled_at,
    )
    return {"session": record_to_dict(session)}


@router.get("/sessions/{session_id}")
def get_session(session_id: str, store: Store = Depends(get_store)) -> dict[str, Any]:
    session = store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    pending = store.get_pending_reschedule(session_id)
    return {"session": record_to_dict(session), "pending_reschedule": record_to_dict(pending) if pending else None}


@router.post("/sessions/{session_id}/start")
def post_start(session_id: str, store: Store = Depends(get_store)) -> dict[str, Any]:
    return {"session": record_to_dict(start_session(store, session_id))}


@router.post("/sessions/{session_id}/complete")
def post_complete(session_id: str, store: Store = Depends(get_store)) -> dict[str, Any]:
    return {"session": record_to_dict(complete_session(store, session_id))}


@router.post("/sessions/{session_id}/no-show")
def post_no_show(session_id: str, store: Store = Depends(get_store)) -> dict[str, Any]:
    return {"session": record_to_dict(mark_no_show(store, session_id))}


@router.post("/sessions/{session_id}/cancel")
def post_cancel(
    session_id: str,
    body: CancelSessionRequest,
    store: Store = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    session, refund = cancel_session(store, notifier, clock, session_id, body.initiator, actor_id=body.actor_id)
    return {"session": record_to_dict(session), "refund": record_to_dict(refund)}


@router.get("/sessions/{session_id}/refund-quote")
def get_refund_quote(
    session_id: str, initiator: Initiator = Initiator.CLIENT, store: Store = Depends(get_store), clock: Clock = Depends(get_clock)
) -> dict[str, Any]:
    return {"refund": record_to_dict(refund_quote(store, clock, session_id, initiator))}


@router.get("/participants/{participant_id}/sessions")
def get_participant_sessions(
    participant_id: str, upcoming: bool = True, store: Store = Depends(get_store), clock: Clock = Depends(get_clock)
) -> dict[str, Any]:
    rows = store.list_sessions(participant_id, upcoming=upcoming, now=clock.now())
    return {"sessions": [record_to_dict(s) for s in rows]}


@router.get("/supporters/{supporter_id}/slots")
def get_slots(
    supporter_id: str,
    day: date,
    session_type: SessionType = SessionType.VIDEO,
    store: Store = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    return {"day": day.isoformat(), "slots": supporter_slots(store, clock, supporter_id, day, session_type)}
