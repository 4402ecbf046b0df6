"""
Calendar Utilities

Due-day clamping, month keys ("YYYY-MM") and month arithmetic used by the
interest-cycle scheduler. Nothing here reads the wall clock except
``utc_now``, which managers receive as an injectable clock.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Tuple
import calendar
import math
import re


MIN_DUE_DAY = 1
MAX_DUE_DAY = 30

ISO_DAY = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock"""
    return datetime.now(timezone.utc)


def clamp_due_day(day) -> int:
    """
    Coerce any input into a due day between 1 and 30.

    Fractions are truncated toward zero; anything non-numeric or
    non-finite becomes 1.
    """
    if isinstance(day, bool):
        return MIN_DUE_DAY
    try:
        value = float(Decimal(str(day).strip()))
    except (InvalidOperation, ValueError, TypeError):
        return MIN_DUE_DAY
    if not math.isfinite(value):
        return MIN_DUE_DAY
    return min(MAX_DUE_DAY, max(MIN_DUE_DAY, math.trunc(value)))


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def resolve_due_date(due_day, year: int, month: int) -> date:
    """Due date for ``due_day`` in the given month, capped at the month's last day"""
    day = min(clamp_due_day(due_day), days_in_month(year, month))
    return date(year, month, day)


def add_months(year: int, month: int, months: int) -> Tuple[int, int]:
    """Shift a (year, month) pair by a number of months"""
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def month_key(value: date) -> str:
    """Month identifier for a date, e.g. ``2024-02``"""
    return f"{value.year:04d}-{value.month:02d}"


def month_key_for(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def parse_month_key(key: str) -> Tuple[int, int]:
    """Inverse of ``month_key``"""
    try:
        year_part, month_part = key.split("-")
        year, month = int(year_part), int(month_part)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid month key: {key!r}")
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month key: {key!r}")
    return year, month


def month_index(value: date) -> int:
    """Months since year 0, for ordering months without string comparison"""
    return value.year * 12 + value.month - 1


def to_date(value) -> date:
    """Reduce a datetime to its calendar date; dates pass through"""
    if isinstance(value, datetime):
        return value.date()
    return value


def start_of_day_utc(value: date) -> datetime:
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def parse_iso_day(text: str) -> date:
    """
    Parse a strict ``YYYY-MM-DD`` string.

    Raises:
        ValueError: any other shape, or an impossible calendar day
    """
    text = text.strip()
    if not ISO_DAY.match(text):
        raise ValueError(f"Not a YYYY-MM-DD date: {text!r}")
    return date.fromisoformat(text)


def parse_iso_timestamp(text: str) -> datetime:
    """Parse an ISO date or datetime; a trailing ``Z`` means UTC"""
    text = text.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    if ISO_DAY.match(text):
        return datetime.combine(date.fromisoformat(text), datetime.min.time(), tzinfo=timezone.utc)
    return datetime.fromisoformat(text)
