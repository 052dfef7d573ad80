import json
import os
from typing import Any

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/peer_support")
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/New_York")
MIGRATIONS_DIR = os.getenv("MIGRATIONS_DIR", "").strip()
DB_CONNECT_ATTEMPTS = int(os.getenv("DB_CONNECT_ATTEMPTS", "20"))
DB_CONNECT_DELAY_SECONDS = float(os.getenv("DB_CONNECT_DELAY_SECONDS", "1.5"))

RESCHEDULE_RESPONSE_WINDOW_HOURS = int(os.getenv("RESCHEDULE_RESPONSE_WINDOW_HOURS", "3"))

FULL_REFUND_HOURS = int(os.getenv("FULL_REFUND_HOURS", "24"))
NO_REFUND_HOURS = int(os.getenv("NO_REFUND_HOURS", "2"))
PARTIAL_REFUND_PERCENTAGE = int(os.getenv("PARTIAL_REFUND_PERCENTAGE", "50"))

MIN_MATCH_SCORE = int(os.getenv("MIN_MATCH_SCORE", "15"))

SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
SWEEP_ENABLED = os.getenv("SWEEP_ENABLED", "true").lower() == "true"

SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "30"))

# Prices are in cents.
SESSION_PRICING_CENTS: dict[str, int] = {
    "chat": int(os.getenv("PRICE_CHAT_CENTS", "700")),
    "phone": int(os.getenv("PRICE_PHONE_CENTS", "1500")),
    "video": int(os.getenv("PRICE_VIDEO_CENTS", "2000")),
}

if os.getenv("SESSION_PRICING_JSON"):
    try:
        _overrides: dict[str, Any] = json.loads(os.getenv("SESSION_PRICING_JSON", "{}"))
        SESSION_PRICING_CENTS.update({k: int(v) for k, v in _overrides.items()})
    except (json.JSONDecodeError, TypeError, ValueError):
        pass

SESSION_DURATIONS_MINUTES: dict[str, int] = {
    "chat": int(os.getenv("DURATION_CHAT_MINUTES", "25")),
    "phone": int(os.getenv("DURATION_PHONE_MINUTES", "45")),
    "video": int(os.getenv("DURATION_VIDEO_MINUTES", "45")),
}
