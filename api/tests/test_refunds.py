from datetime import datetime, timedelta, timezone

import pytest

from peer_support.errors import ValidationError
from peer_support.services.refunds import calculate_refund, format_currency, refund_amount, session_price

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
PRICE = 2000


def _at(hours: float) -> datetime:
    return NOW + timedelta(hours=hours)


def test_client_cancel_more_than_a_day_out_is_full_refund():
    decision = calculate_refund(PRICE, _at(30), "client", NOW)
    assert (decision.percentage, decision.amount) == (100, 2000)
    assert format_currency(decision.amount) == "$20.00"


def test_client_cancel_same_day_is_half_refund():
    decision = calculate_refund(PRICE, _at(10), "client", NOW)
    assert (decision.percentage, decision.amount) == (50, 1000)
    assert format_currency(decision.amount) == "$10.00"
    assert decision.reason.startswith("Partial refund")


def test_client_cancel_last_minute_is_not_refunded():
    decision = calculate_refund(PRICE, _at(1), "client", NOW)
    assert (decision.percentage, decision.amount) == (0, 0)
    assert format_currency(decision.amount) == "$0.00"


def test_supporter_cancel_is_always_full_refund():
    for hours in (30, 10, 1, -1):
        decision = calculate_refund(PRICE, _at(hours), "supporter", NOW)
        assert (decision.percentage, decision.amount) == (100, 2000)
        assert decision.reason == "Full refund - cancelled by supporter"


def test_tier_boundaries_are_inclusive_on_the_partial_side():
    assert calculate_refund(PRICE, _at(24), "client", NOW).percentage == 50
    assert calculate_refund(PRICE, _at(24) + timedelta(seconds=1), "client", NOW).percentage == 100
    assert calculate_refund(PRICE, _at(2), "client", NOW).percentage == 50
    assert calculate_refund(PRICE, _at(2) - timedelta(seconds=1), "client", NOW).percentage == 0


def test_session_already_started_gets_nothing_for_client():
    assert calculate_refund(PRICE, _at(-3), "client", NOW).percentage == 0


def test_refund_never_grows_as_session_approaches():
    previous = 101
    for hours in (48, 25, 24, 12, 2, 1.5, 0, -1):
        pct = calculate_refund(PRICE, _at(hours), "client", NOW).percentage
        assert pct <= previous
        previous = pct


def test_amount_stays_within_price():
    for price in (0, 1, 699, 700, 1500, 2000):
        for hours in (30, 10, 1):
            decision = calculate_refund(price, _at(hours), "client", NOW)
            assert 0 <= decision.amount <= price


def test_half_cent_rounds_up():
    assert refund_amount(701, 50) == 351
    assert refund_amount(699, 50) == 350
    assert calculate_refund(701, _at(10), "client", NOW).amount == 351


def test_negative_price_is_rejected():
    with pytest.raises(ValidationError):
        calculate_refund(-1, _at(30), "client", NOW)


def test_unknown_initiator_is_rejected():
    with pytest.raises(ValueError):
        calculate_refund(PRICE, _at(30), "admin", NOW)


def test_session_price_table():
    assert session_price("chat") == 700
    assert session_price("phone") == 1500
    assert session_price("video") == 2000
