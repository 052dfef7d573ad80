from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Any

from fastapi.responses import JSONResponse

from .domain import ClientAssignment, MatchResult, RefundDecision, RescheduleRequest, Session
from .errors import CollaboratorUnavailable, DomainError, NotFoundError, PreconditionFailed, ValidationError


def status_code_for(exc: DomainError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, PreconditionFailed):
        return 409
    if isinstance(exc, CollaboratorUnavailable):
        return 503
    return 500


def error_detail(exc: DomainError) -> dict[str, Any]:
    detail: dict[str, Any] = {"message": exc.message}
    if exc.code:
        detail["code"] = exc.code
    return detail


def domain_error_response(exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=status_code_for(exc), content={"detail": error_detail(exc)})


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(_plain(k)): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return value


def record_to_dict(record: Session | RescheduleRequest | ClientAssignment | RefundDecision) -> dict[str, Any]:
    return _plain(asdict(record))


def match_to_dict(result: MatchResult) -> dict[str, Any]:
    return {
        "candidate_id": result.candidate_id,
        "compatibility_score": result.compatibility_score,
        "match_reasons": list(result.match_reasons),
        "breakdown": dict(result.breakdown),
    }
