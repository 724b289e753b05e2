from datetime import date

import pytest

from periods import add_months, days_in_month, month_bounds, parse_month, rolling_months


def test_month_bounds_handles_leap_years_and_december() -> None:
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(2025, 2) == (date(2025, 2, 1), date(2025, 2, 28))
    assert month_bounds(2025, 12) == (date(2025, 12, 1), date(2025, 12, 31))
    assert days_in_month(2025, 4) == 30


def test_add_months_crosses_year_boundaries() -> None:
    assert add_months(date(2025, 1, 31), -1) == date(2024, 12, 1)
    assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 1)


def test_rolling_months_are_oldest_first_and_end_with_today() -> None:
    periods = rolling_months(6, today=date(2025, 3, 15))
    assert [p.slug for p in periods] == [
        "2024-10",
        "2024-11",
        "2024-12",
        "2025-01",
        "2025-02",
        "2025-03",
    ]
    assert periods[-1].end == date(2025, 3, 31)


def test_parse_month() -> None:
    assert parse_month("") is None
    assert parse_month(None) is None
    period = parse_month("2025-06")
    assert period.start == date(2025, 6, 1)
    assert period.end == date(2025, 6, 30)
    with pytest.raises(ValueError):
        parse_month("2025-13")
    with pytest.raises(ValueError):
        parse_month("June")
