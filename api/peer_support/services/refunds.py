from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from ..config import FULL_REFUND_HOURS, NO_REFUND_HOURS, PARTIAL_REFUND_PERCENTAGE, SESSION_PRICING_CENTS
from ..domain import Initiator, RefundDecision, SessionType
from ..errors import ValidationError


def hours_until(scheduled_at: datetime, now: datetime) -> float:
    return (scheduled_at - now).total_seconds() / 3600.0


def refund_amount(price_cents: int, percentage: int) -> int:
    amount = (Decimal(price_cents) * Decimal(percentage) / Decimal(100)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(amount)


def calculate_refund(price_cents: int, scheduled_at: datetime, initiator: Initiator, now: datetime) -> RefundDecision:
    """Refund owed when a session is cancelled at `now`.

    Supporter-initiated cancellations are always refunded in full. For the
    client the tier depends on the hours left before the session: more than
    FULL_REFUND_HOURS is a full refund, NO_REFUND_HOURS up to FULL_REFUND_HOURS
    (both inclusive) is partial, anything later is non-refundable.

    Evaluate this when the cancellation happens; the answer changes with `now`.
    """
    if price_cents < 0:
        raise ValidationError("price must not be negative")
    initiator = Initiator(initiator)

    if initiator == Initiator.SUPPORTER:
        return RefundDecision(percentage=100, amount=price_cents, reason="Full refund - cancelled by supporter")

    remaining = hours_until(scheduled_at, now)
    if remaining > FULL_REFUND_HOURS:
        return RefundDecision(
            percentage=100,
            amount=price_cents,
            reason=f"Full refund - cancelled more than {FULL_REFUND_HOURS} hours before session",
        )
    if remaining >= NO_REFUND_HOURS:
        return RefundDecision(
            percentage=PARTIAL_REFUND_PERCENTAGE,
            amount=refund_amount(price_cents, PARTIAL_REFUND_PERCENTAGE),
            reason=f"Partial refund - cancelled within {FULL_REFUND_HOURS} hours of session",
        )
    return RefundDecision(
        percentage=0,
        amount=0,
        reason=f"No refund - cancelled within {NO_REFUND_HOURS} hours of session",
    )


def session_price(session_type: SessionType | str) -> int:
    key = SessionType(session_type).value
    return SESSION_PRICING_CENTS[key]


def format_currency(amount_cents: int) -> str:
    return f"${amount_cents / 100:.2f}"
