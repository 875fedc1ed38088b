"""Calendar arithmetic on plain ``date`` values.

Every date handled by the scheduler is a calendar day with no time-of-day and
no timezone. Strings are parsed from explicit year/month/day components and
datetimes are truncated with ``.date()`` (never converted between zones), so
"today" and a phase's range always share the same day boundaries.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any

from dtps_planner.domain.errors import InvalidDate, InvalidRange

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def add_days(day: date, n: int) -> date:
    """Return ``day`` shifted by ``n`` days (``n`` may be negative)."""

    return day + timedelta(days=n)


def inclusive_day_count(start: date, end: date) -> int:
    """Number of calendar days in ``[start, end]``."""

    if end < start:
        raise InvalidRange(start, end)
    return (end - start).days + 1


def parse_iso_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string into a ``date``."""

    match = _ISO_DATE.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise InvalidDate(value, "expected a YYYY-MM-DD date")
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise InvalidDate(value, str(exc)) from exc


def coerce_date(value: Any) -> date:
    """Accept ``date``, ``datetime`` or ISO strings and return a calendar date."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_iso_date(value[:10])
    raise InvalidDate(value, "unsupported date value")


def date_range(start: date, end: date) -> list[date]:
    """Every date in ``[start, end]`` in ascending order."""

    return [add_days(start, offset) for offset in range(inclusive_day_count(start, end))]
