from fastapi import Header, HTTPException

from .config import ADMIN_TOKEN
from .database import SessionLocal
from .repo import SqlStore
from .services.notifications import OutboxNotifier
from .store import Clock, Notifier, Store, SystemClock

_store = SqlStore(SessionLocal)
_notifier = OutboxNotifier(SessionLocal)
_clock = SystemClock()


def get_store() -> Store:
    return _store


def get_notifier() -> Notifier:
    return _notifier


def get_clock() -> Clock:
    return _clock


def validate_admin_token(token: str | None, admin_token: str | None) -> None:
    if not admin_token or not token or token != admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    validate_admin_token(x_admin_token, ADMIN_TOKEN)
