"""Date handling and overdue fine computation.

Dates are plain calendar dates. Day counts are ``(later - earlier).days``,
so clock time, timezones and DST never shift the result.
"""
import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

from circulation.exceptions import InvalidDateError

ISO_FORMAT = "%Y-%m-%d"
LEGACY_FORMAT = "%d/%m/%Y"

DEFAULT_GRACE_PERIOD_DAYS = 14
DEFAULT_FINE_PER_DAY = 2.0

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_LEGACY_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")

DateLike = Union[date, str]


def today() -> date:
    """Current local date. Tests monkeypatch this."""
    return date.today()


def parse_date(value: DateLike) -> date:
    """Parse an ISO ``YYYY-MM-DD`` or legacy ``DD/MM/YYYY`` date.

    ``date`` instances pass through (``datetime`` is truncated to its date).
    Anything that is not a real calendar date raises InvalidDateError.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDateError(value, "expected a date or a date string")

    text = value.strip()
    if _ISO_RE.match(text):
        fmt = ISO_FORMAT
    elif _LEGACY_RE.match(text):
        fmt = LEGACY_FORMAT
    else:
        raise InvalidDateError(value)
    try:
        parsed = datetime.strptime(text, fmt).date()
    except ValueError as e:
        raise InvalidDateError(value, "not a valid calendar date") from e
    if parsed.year < 1900:
        raise InvalidDateError(value, "year must be 1900 or later")
    return parsed


def format_date(value: Optional[date]) -> Optional[str]:
    return value.strftime(ISO_FORMAT) if value else None


def days_between(start: DateLike, end: DateLike) -> int:
    """Whole calendar days from ``start`` to ``end`` (negative if end is earlier)."""
    return (parse_date(end) - parse_date(start)).days


def due_date(borrow_date: DateLike, grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS) -> date:
    return parse_date(borrow_date) + timedelta(days=grace_period_days)


def overdue_days(borrow_date: DateLike, return_date: DateLike,
                 grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS) -> int:
    return max(0, days_between(borrow_date, return_date) - grace_period_days)


def calculate_fine(borrow_date: DateLike, return_date: DateLike,
                   grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS,
                   rate_per_day: float = DEFAULT_FINE_PER_DAY) -> float:
    """Fine owed for a loan: ``max(0, days - grace) * rate``.

    Pure function. ``calculate_fine("01/01/2025", "20/01/2025")`` is 10.0.
    """
    if grace_period_days < 0:
        raise ValueError("Grace period cannot be negative.")
    if rate_per_day < 0:
        raise ValueError("Fine rate cannot be negative.")
    return round(overdue_days(borrow_date, return_date, grace_period_days) * float(rate_per_day), 2)
