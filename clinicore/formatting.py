"""
Date, age and currency helpers shared by every printable document.

All output uses one fixed convention (en-US month names, 12-hour clock, the
institution's currency label) so the same input always prints the same way.
Values that are missing or cannot be parsed format to the placeholder string.
"""

import calendar
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from clinicore.config import CURRENCY_LABEL, MISSING_FIELD_PLACEHOLDER


# ── Parsing ──────────────────────────────────────────────────────────

def to_datetime(value) -> Optional[datetime]:
    """Coerce a datetime, date or ISO-8601 string to a datetime (or None)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def to_date(value) -> Optional[date]:
    """Coerce a datetime, date or ISO-8601 string to a calendar date (or None)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    dt = to_datetime(value)
    return dt.date() if dt else None


def to_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


# ── Age ──────────────────────────────────────────────────────────────

def compute_age(date_of_birth, as_of=None) -> int:
    """
    Age in completed years.
    Subtract the birth year from the reference year, then take one off when the
    reference month/day falls before the birthday.
    """
    dob = to_date(date_of_birth)
    if dob is None:
        raise ValueError(f"Invalid date of birth: {date_of_birth!r}")
    ref = to_date(as_of) if as_of is not None else date.today()
    if ref is None:
        raise ValueError(f"Invalid reference date: {as_of!r}")

    age = ref.year - dob.year
    if (ref.month, ref.day) < (dob.month, dob.day):
        age -= 1
    return age


def _add_months(d: date, months: int) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def compute_age_parts(date_of_birth, as_of=None) -> Tuple[int, int, int]:
    """Age as (years, months, days); days count from the last monthly anniversary."""
    dob = to_date(date_of_birth)
    if dob is None:
        raise ValueError(f"Invalid date of birth: {date_of_birth!r}")
    ref = to_date(as_of) if as_of is not None else date.today()
    if ref is None:
        raise ValueError(f"Invalid reference date: {as_of!r}")

    years = compute_age(dob, ref)
    months = (ref.year - dob.year) * 12 + (ref.month - dob.month) - years * 12
    if ref.day < dob.day:
        months -= 1
    anchor = _add_months(dob, years * 12 + months)
    return years, months, (ref - anchor).days


# ── Display formats ──────────────────────────────────────────────────

def format_date(value) -> str:
    """``Jun 5, 2024``"""
    d = to_date(value)
    if d is None:
        return MISSING_FIELD_PLACEHOLDER
    return f"{d:%b} {d.day}, {d.year}"


def format_long_date(value) -> str:
    """``Wednesday, June 5, 2024`` (bill print date)."""
    d = to_date(value)
    if d is None:
        return MISSING_FIELD_PLACEHOLDER
    return f"{d:%A}, {d:%B} {d.day}, {d.year}"


def format_time(value) -> str:
    """``02:30 PM``"""
    dt = to_datetime(value)
    if dt is None:
        return MISSING_FIELD_PLACEHOLDER
    return dt.strftime("%I:%M %p")


def format_date_time(value) -> str:
    """``Jun 5, 2024, 02:30 PM``"""
    dt = to_datetime(value)
    if dt is None:
        return MISSING_FIELD_PLACEHOLDER
    return f"{format_date(dt)}, {format_time(dt)}"


def format_amount(amount) -> str:
    """Thousands separator and two decimals, no currency label."""
    value = to_decimal(amount)
    if value is None:
        return MISSING_FIELD_PLACEHOLDER
    return f"{value:,.2f}"


def format_currency(amount) -> str:
    """``Ksh 2,000.00``"""
    text = format_amount(amount)
    if not text:
        return MISSING_FIELD_PLACEHOLDER
    return f"{CURRENCY_LABEL} {text}"


def format_iso_date(value) -> str:
    d = to_date(value)
    return d.isoformat() if d else MISSING_FIELD_PLACEHOLDER
