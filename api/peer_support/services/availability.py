from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from ..config import DEFAULT_TIMEZONE, SLOT_STEP_MINUTES
from ..domain import Availability, DayPart, TimeRange, Weekday

logger = logging.getLogger(__name__)

# Hour windows, end exclusive.
DAY_PART_HOURS: dict[DayPart, tuple[int, int]] = {
    DayPart.EARLY_MORNING: (6, 9),
    DayPart.MORNING: (9, 12),
    DayPart.AFTERNOON: (12, 17),
    DayPart.EVENING: (17, 21),
    DayPart.NIGHT: (21, 24),
}


def _parse_clock(value: str) -> int:
    hours, _, minutes = value.strip().partition(":")
    h = int(hours)
    m = int(minutes or 0)
    if not (0 <= h <= 24 and 0 <= m < 60) or (h == 24 and m):
        raise ValueError(f"invalid clock time: {value!r}")
    return h * 60 + m


def parse_time_range(value: str) -> TimeRange:
    """Parse "09:00" (a one-hour slot) or "9:00-17:00" / "09:00 - 17:00"."""
    compact = "".join(str(value).split())
    if "-" in compact:
        start_raw, _, end_raw = compact.partition("-")
        start, end = _parse_clock(start_raw), _parse_clock(end_raw)
    else:
        start = _parse_clock(compact)
        end = min(start + 60, 24 * 60)
    if end <= start:
        raise ValueError(f"empty time range: {value!r}")
    return TimeRange(start_minute=start, end_minute=end)


def parse_availability(raw: dict[str, Any] | None) -> Availability:
    """Normalize a stored weekday → slots mapping into a Weekday-keyed one.

    Day names are matched case-insensitively; malformed entries are dropped.
    """
    out: dict[Weekday, list[TimeRange]] = {}
    for key, slots in (raw or {}).items():
        try:
            day = Weekday.parse(key)
        except (KeyError, ValueError):
            logger.debug("[AVAILABILITY] ignoring unknown day key %r", key)
            continue
        if not isinstance(slots, (list, tuple)):
            continue
        for slot in slots:
            try:
                out.setdefault(day, []).append(parse_time_range(slot))
            except (TypeError, ValueError):
                logger.debug("[AVAILABILITY] ignoring malformed slot %r on %s", slot, day.name.lower())
    return {day: tuple(sorted(ranges, key=lambda r: r.start_minute)) for day, ranges in out.items() if ranges}


def format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def has_weekend_slot(availability: Availability) -> bool:
    return any(day.is_weekend and ranges for day, ranges in availability.items())


def matches_day_part(availability: Availability, part: DayPart) -> bool:
    if part == DayPart.WEEKENDS:
        return has_weekend_slot(availability)
    start, end = DAY_PART_HOURS[part]
    return any(start <= r.start_hour < end for ranges in availability.values() for r in ranges)


def is_day_available(day: date, availability: Availability) -> bool:
    return bool(availability.get(Weekday(day.weekday())))


def is_slot_available(slot: TimeRange, booked: Iterable[TimeRange]) -> bool:
    return not any(slot.overlaps(b) for b in booked)


def slot_fits_availability(day: date, slot: TimeRange, availability: Availability) -> bool:
    return any(r.contains(slot) for r in availability.get(Weekday(day.weekday()), ()))


def to_local(moment: datetime, tz: str = DEFAULT_TIMEZONE) -> datetime:
    return moment.astimezone(ZoneInfo(tz))


def local_slot(moment: datetime, duration_minutes: int, tz: str = DEFAULT_TIMEZONE) -> tuple[date, TimeRange]:
    local = to_local(moment, tz)
    start = local.hour * 60 + local.minute
    return local.date(), TimeRange(start_minute=start, end_minute=start + duration_minutes)


def _display(minute_of_day: int) -> str:
    hour, minute = divmod(minute_of_day, 60)
    shown = hour % 12 or 12
    suffix = "PM" if hour >= 12 else "AM"
    return f"{shown}:{minute:02d} {suffix}"


def available_time_slots(
    day: date,
    availability: Availability,
    booked: Iterable[TimeRange],
    duration_minutes: int,
    now: datetime | None = None,
    step_minutes: int = SLOT_STEP_MINUTES,
) -> list[dict[str, str]]:
    """Bookable start times on `day`.

    A slot must fit entirely inside one availability window, must not overlap
    a booked session, and must start after `now` when `day` is today. `now`
    must already be in the supporter's local time.
    """
    booked = list(booked)
    cutoff = None
    if now is not None and now.date() == day:
        cutoff = now.hour * 60 + now.minute

    slots: list[dict[str, str]] = []
    for window in availability.get(Weekday(day.weekday()), ()):
        start = window.start_minute
        while start + duration_minutes <= window.end_minute:
            candidate = TimeRange(start_minute=start, end_minute=start + duration_minutes)
            if (cutoff is None or start > cutoff) and is_slot_available(candidate, booked):
                slots.append(
                    {
                        "startTime": format_minutes(candidate.start_minute),
                        "endTime": format_minutes(candidate.end_minute),
                        "display": _display(candidate.start_minute),
                    }
                )
            start += step_minutes
    return slots
