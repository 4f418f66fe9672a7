"""
Calendar helpers shared by the compliance and salary pipelines
"""

import calendar
from datetime import date, datetime, timezone
from typing import Any, Optional

# Employes returns this for "no date"
PROVIDER_NULL_DATE = "0001-01-01"


def add_months(value: date, months: int) -> date:
    """Shift by calendar months, clamping the day to the target month's length"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def subtract_months(value: date, months: int) -> date:
    return add_months(value, -months)


def parse_date(value: Any) -> Optional[date]:
    """
    Parse provider date values.

    Accepts date, datetime, 'YYYY-MM-DD' and ISO datetime strings.
    Empty strings and the provider's 0001-01-01 sentinel become None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text or text.startswith(PROVIDER_NULL_DATE):
        return None
    return date.fromisoformat(text[:10])


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything in this codebase is UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
