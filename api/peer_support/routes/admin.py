from typing import Any

from fastapi import APIRouter, Depends

from ..deps import get_clock, get_notifier, get_store, require_admin
from ..http_helpers import record_to_dict
from ..schemas import SweepRequest
from ..services.sweep import sweep_expired
from ..store import Clock, Notifier, Store

router = APIRouter()


@router.post("/sweep", dependencies=[Depends(require_admin)])
def post_sweep(
    body: SweepRequest,
    store: Store = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    result = sweep_expired(store, notifier, clock, scope_client_id=body.client_id)
    return {
        "processed_count": result.processed_count,
        "cancelled_session_ids": result.cancelled_session_ids,
        "refunds": {sid: record_to_dict(r) for sid, r in result.refunds.items()},
    }
