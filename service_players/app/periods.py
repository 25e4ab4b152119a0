"""
Rating period helpers.

A rating period is a calendar month in UTC, represented by the ``date`` of its
first day. Periods are the second half of every cache key and drive the
expiry policy, so every date entering the service passes through
``normalize`` first.
"""

from __future__ import annotations

import calendar
from datetime import MAXYEAR, MINYEAR, date, datetime, timezone
from typing import List, Optional, Union

from shared.errors import InvalidInputError

DateLike = Union[date, datetime]

_DATE_FORMATS = ("%Y-%m-%d", "%Y-%m")


def normalize(value: DateLike) -> date:
    """Return the first day of ``value``'s month in UTC.

    Aware datetimes are converted to UTC first; naive datetimes are taken to
    already be UTC.
    """
    if isinstance(value, datetime) and value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return date(value.year, value.month, 1)


def next_period(period: date) -> date:
    """First day of the month after ``period``.

    Raises ``InvalidInputError`` past the last representable month.
    """
    if period.month == 12:
        return _period(period.year + 1, 1)
    return _period(period.year, period.month + 1)


def expand(start: DateLike, end: DateLike) -> List[date]:
    """Every period from ``normalize(start)`` to ``normalize(end)``, ascending.

    Returns an empty list when ``start`` falls in a later month than ``end``.
    """
    current = normalize(start)
    last = normalize(end)
    periods: List[date] = []
    while current <= last:
        periods.append(current)
        if current == last:
            break
        current = next_period(current)
    return periods


def months_between(start: DateLike, end: DateLike) -> int:
    """Number of periods ``expand(start, end)`` would produce."""
    first = normalize(start)
    last = normalize(end)
    return max(0, (last.year - first.year) * 12 + (last.month - first.month) + 1)


def shift_months(value: DateLike, months: int) -> date:
    """Move ``value`` by ``months`` calendar months, clamping the day.

    Raises ``InvalidInputError`` when the result leaves the supported years.
    """
    base = value.date() if isinstance(value, datetime) else value
    index = base.year * 12 + (base.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    first = _period(year, month)
    return first.replace(day=min(base.day, calendar.monthrange(year, month)[1]))


def _period(year: int, month: int) -> date:
    if not MINYEAR <= year <= MAXYEAR:
        raise InvalidInputError(
            f"date out of range: year {year}",
            details={"min_year": MINYEAR, "max_year": MAXYEAR},
        )
    return date(year, month, 1)


def format_date(value: DateLike) -> str:
    """ISO ``YYYY-MM-DD`` string as the upstream API expects it."""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def parse_date(text: Optional[str], default: date) -> date:
    """Parse a ``YYYY-MM-DD`` or ``YYYY-MM`` string.

    Empty input yields ``default``. Anything else that does not parse raises
    ``InvalidInputError``.
    """
    if text is None or not text.strip():
        return default

    candidate = text.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue

    raise InvalidInputError(
        f"invalid date: {candidate!r}",
        details={"expected": "YYYY-MM-DD or YYYY-MM"},
    )


def today_utc() -> date:
    return datetime.now(timezone.utc).date()
