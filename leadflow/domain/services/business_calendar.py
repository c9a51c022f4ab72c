"""
Business Calendar
Date arithmetic for due dates: calendar days, business days (Mon-Fri) and day boundaries
"""
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, FrozenSet

import pytz

# Saturday and Sunday (date.weekday())
WEEKEND_DAYS = (5, 6)

# Optional fixed-date holidays in MM-DD form; opt-in per call
STATIC_HOLIDAYS: FrozenSet[str] = frozenset({"01-01", "05-01", "10-03", "12-25", "12-26"})


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def is_business_day(day: date, holidays: Iterable[str] = ()) -> bool:
    """Mon-Fri and not listed in `holidays` (MM-DD strings)."""
    day = _as_date(day)
    if day.weekday() in WEEKEND_DAYS:
        return False
    return day.strftime("%m-%d") not in set(holidays)


def add_calendar_days(day: date, days: int) -> date:
    """Plain date addition, time of day dropped."""
    return _as_date(day) + timedelta(days=days)


def add_business_days(day: date, days: int, holidays: Iterable[str] = ()) -> date:
    """
    Walk one calendar day at a time, counting only business days.

    A negative count walks backwards. Zero rolls a weekend or holiday
    forward to the next business day and leaves a business day unchanged.
    """
    holidays = frozenset(holidays)
    result = _as_date(day)

    if days == 0:
        while not is_business_day(result, holidays):
            result += timedelta(days=1)
        return result

    step = timedelta(days=1 if days > 0 else -1)
    remaining = abs(days)
    while remaining > 0:
        result += step
        if is_business_day(result, holidays):
            remaining -= 1
    return result


def next_business_day(day: date, holidays: Iterable[str] = ()) -> date:
    return add_business_days(day, 1, holidays)


def previous_business_day(day: date, holidays: Iterable[str] = ()) -> date:
    return add_business_days(day, -1, holidays)


def days_between(start: date, end: date) -> int:
    """Whole calendar days from start to end (negative if end is earlier)."""
    return (_as_date(end) - _as_date(start)).days


def is_same_day(a, b) -> bool:
    return _as_date(a) == _as_date(b)


def get_timezone(name: Optional[str]):
    """pytz zone by name, UTC for unknown names."""
    if not name:
        return pytz.UTC
    try:
        return pytz.timezone(name)
    except pytz.exceptions.UnknownTimeZoneError:
        return pytz.UTC


def ensure_aware(moment: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken as UTC; None passes through."""
    if moment is None or moment.tzinfo is not None:
        return moment
    return pytz.UTC.localize(moment)


def to_local(moment: datetime, tz) -> datetime:
    """Convert to `tz`; naive datetimes are taken as UTC."""
    return ensure_aware(moment).astimezone(tz)


def local_today(now: datetime, tz) -> date:
    return to_local(now, tz).date()


def start_of_day(day: date, tz) -> datetime:
    """00:00 local time on `day` as an aware datetime."""
    return tz.localize(datetime.combine(_as_date(day), time(0, 0)))


def end_of_day(day: date, tz) -> datetime:
    return tz.localize(datetime.combine(_as_date(day), time(23, 59, 59, 999999)))


def at_local_time(day: date, hour: int, minute: int, tz) -> datetime:
    return tz.localize(datetime.combine(_as_date(day), time(hour, minute)))


def format_duration_hours(hours: float) -> str:
    """Short human-readable duration: '5 h', '2 days', '1d 6h'."""
    if hours < 24:
        return f"{round(hours)} h"
    days = int(hours // 24)
    rest = hours % 24
    if rest == 0:
        return f"{days} day{'s' if days > 1 else ''}"
    return f"{days}d {round(rest)}h"
