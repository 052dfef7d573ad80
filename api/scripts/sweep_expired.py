import argparse
import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from peer_support.database import SessionLocal
from peer_support.repo import SqlStore
from peer_support.services.notifications import LoggingNotifier, OutboxNotifier
from peer_support.services.sweep import sweep_expired
from peer_support.store import SystemClock


def main() -> None:
    parser = argparse.ArgumentParser(description="Auto-cancel sessions with expired reschedule requests")
    parser.add_argument("--client-id", type=str, default="")
    parser.add_argument("--dry-notify", action="store_true", help="log notifications instead of queueing them")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    notifier = LoggingNotifier() if args.dry_notify else OutboxNotifier(SessionLocal)
    result = sweep_expired(SqlStore(SessionLocal), notifier, SystemClock(), scope_client_id=args.client_id or None)

    print(f"Processed {result.processed_count} expired reschedule request(s)")
    for session_id in result.cancelled_session_ids:
        refund = result.refunds[session_id]
        print(f"  cancelled {session_id}: {refund.percentage}% refund ({refund.amount} cents)")


if __name__ == "__main__":
    main()
