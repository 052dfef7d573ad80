import logging
import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from .config import DB_CONNECT_ATTEMPTS, DB_CONNECT_DELAY_SECONDS, MIGRATIONS_DIR, SWEEP_ENABLED, SWEEP_INTERVAL_SECONDS
from .database import SessionLocal
from .deps import get_clock, get_notifier, get_store
from .errors import CollaboratorUnavailable, DomainError
from .http_helpers import domain_error_response
from .routes import include_modular_routers
from .services.sweep import SweepWorker

logger = logging.getLogger(__name__)

app = FastAPI(title="Peer Support API")
include_modular_routers(app)

ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_sweeper: SweepWorker | None = None


@app.exception_handler(DomainError)
async def handle_domain_error(request: Request, exc: DomainError):
    return domain_error_response(exc)


PACKAGE_MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def run_migrations(migrations_dir: Path | None = None) -> list[str]:
    """Apply every .sql file in name order; the schema files are idempotent."""
    migrations_dir = Path(migrations_dir or MIGRATIONS_DIR or PACKAGE_MIGRATIONS_DIR)
    if not migrations_dir.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {migrations_dir}")

    files = sorted(p for p in migrations_dir.glob("*.sql") if p.is_file())
    with SessionLocal() as db:
        for path in files:
            logger.info("[DB] applying migration %s", path.name)
            db.execute(text(path.read_text(encoding="utf-8")))
        db.commit()
    return [p.name for p in files]


def wait_for_db(max_attempts: int = DB_CONNECT_ATTEMPTS, delay_seconds: float = DB_CONNECT_DELAY_SECONDS) -> None:
    for attempt in range(1, max_attempts + 1):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
            return
        except OperationalError as exc:
            logger.warning("[DB] not ready (attempt %d/%d): %s", attempt, max_attempts, exc.orig or exc)
            if attempt < max_attempts:
                time.sleep(delay_seconds)
    raise CollaboratorUnavailable(f"database unreachable after {max_attempts} attempts")


@app.on_event("startup")
def on_startup() -> None:
    global _sweeper
    wait_for_db()
    run_migrations()
    if SWEEP_ENABLED:
        _sweeper = SweepWorker(get_store(), get_notifier(), get_clock(), interval=SWEEP_INTERVAL_SECONDS)
        _sweeper.start()
    else:
        logger.info("[SWEEP] background sweep disabled")


@app.on_event("shutdown")
def on_shutdown() -> None:
    global _sweeper
    if _sweeper is not None:
        _sweeper.stop()
        _sweeper = None


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
