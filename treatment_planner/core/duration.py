from __future__ import annotations

import math
from datetime import date
from typing import Any, Mapping, Optional

from treatment_planner.core.model import Duration


# Flat conversion, not calendar-accurate: a month is always 30 days.
DEFAULT_UNIT_DAYS: dict[str, int] = {
    "day": 1,
    "days": 1,
    "jour": 1,
    "jours": 1,
    "week": 7,
    "weeks": 7,
    "semaine": 7,
    "semaines": 7,
    "month": 30,
    "months": 30,
    "mois": 30,
}

DEFAULT_DURATION_DAYS = 1


def unit_days(unit: str, units: Optional[Mapping[str, int]] = None) -> int:
    key = unit.strip().lower()
    if units and key in units:
        return units[key]
    return DEFAULT_UNIT_DAYS.get(key, 1)


def to_days(duration: Any, units: Optional[Mapping[str, int]] = None) -> int:
    """Convert a relative duration to whole days.

    Accepts a Duration (or anything with `value`/`unit` attributes). A missing
    duration, a missing unit, or a value that is not a positive number counts
    as one day. Unknown units count as days. The result is rounded to whole
    days and never drops below one.
    """
    if duration is None:
        return DEFAULT_DURATION_DAYS
    value = getattr(duration, "value", None)
    unit = getattr(duration, "unit", None)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
        return DEFAULT_DURATION_DAYS
    if not isinstance(unit, str) or not unit.strip():
        return DEFAULT_DURATION_DAYS
    return max(DEFAULT_DURATION_DAYS, int(round(value * unit_days(unit, units))))


def offset_days(offset: Any, units: Optional[Mapping[str, int]] = None) -> int:
    """Days of an edge offset; an absent or non-positive offset is 0."""
    if offset is None:
        return 0
    value = getattr(offset, "value", None)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
        return 0
    return to_days(offset, units)


def duration_from_dates(start: date, end: date) -> Duration:
    """Infer a relative duration from an absolute span.

    Up to a week stays in days, up to 30 days is rounded up to weeks, anything
    longer is rounded up to months.
    """
    span = abs((end - start).days)
    if span <= 1:
        return Duration(value=1, unit="day")
    if span <= 7:
        return Duration(value=span, unit="days")
    if span <= 30:
        weeks = math.ceil(span / 7)
        return Duration(value=weeks, unit="week" if weeks == 1 else "weeks")
    months = math.ceil(span / 30)
    return Duration(value=months, unit="month" if months == 1 else "months")
