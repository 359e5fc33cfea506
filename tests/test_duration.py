from datetime import date

from treatment_planner.core.duration import duration_from_dates, offset_days, to_days
from treatment_planner.core.model import Duration


def test_to_days_units():
    assert to_days(Duration(1, "day")) == 1
    assert to_days(Duration(3, "days")) == 3
    assert to_days(Duration(2, "weeks")) == 14
    assert to_days(Duration(1, "month")) == 30
    assert to_days(Duration(2, "Semaines")) == 14
    assert to_days(Duration(1, "mois")) == 30


def test_to_days_unknown_unit_counts_as_days():
    assert to_days(Duration(4, "fortnight")) == 4


def test_to_days_missing_or_invalid_defaults_to_one_day():
    assert to_days(None) == 1
    assert to_days(Duration(0, "weeks")) == 1
    assert to_days(Duration(-3, "days")) == 1
    assert to_days(Duration(2, "")) == 1
    assert to_days(Duration("two", "days")) == 1  # type: ignore[arg-type]


def test_to_days_extra_units():
    assert to_days(Duration(1, "quinzaine"), {"quinzaine": 14}) == 14


def test_offset_days_absent_is_zero():
    assert offset_days(None) == 0
    assert offset_days(Duration(0, "days")) == 0
    assert offset_days(Duration(1, "week")) == 7


def test_duration_from_dates():
    start = date(2025, 1, 1)
    assert duration_from_dates(start, date(2025, 1, 2)) == Duration(1, "day")
    assert duration_from_dates(start, date(2025, 1, 6)) == Duration(5, "days")
    assert duration_from_dates(start, date(2025, 1, 15)) == Duration(2, "weeks")
    assert duration_from_dates(start, date(2025, 3, 2)) == Duration(2, "months")


def test_to_days_fraction_never_rounds_to_zero():
    assert to_days(Duration(0.4, "day")) == 1
    assert to_days(Duration(0.5, "day")) == 1
    assert to_days(Duration(1.5, "weeks")) == 10
