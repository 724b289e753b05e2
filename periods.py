from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    first = date(year, month, 1)
    # Last day is the day before the first of the following month.
    return first, add_months(first, 1) - date.resolution


def days_in_month(year: int, month: int) -> int:
    start, end = month_bounds(year, month)
    return (end - start).days + 1


def month_period(year: int, month: int) -> Period:
    start, end = month_bounds(year, month)
    return Period(f"{year:04d}-{month:02d}", start, end)


def parse_month(value: Optional[str]) -> Optional[Period]:
    """Parse a ``YYYY-MM`` filter value; blank means no filter."""
    if not value or not value.strip():
        return None
    try:
        year_part, month_part = value.strip().split("-")
        year = int(year_part)
        month = int(month_part)
    except ValueError as exc:
        raise ValueError("Month must look like YYYY-MM") from exc
    if not 1 <= month <= 12:
        raise ValueError("Month must look like YYYY-MM")
    return month_period(year, month)


def rolling_months(count: int, *, today: Optional[date] = None) -> list[Period]:
    """The ``count`` calendar months ending with the month of ``today``, oldest first."""
    today = today or local_today()
    anchor = today.replace(day=1)
    periods = []
    for offset in range(count - 1, -1, -1):
        first = add_months(anchor, -offset)
        periods.append(month_period(first.year, first.month))
    return periods
