"""
Date helpers shared by ingestion, signals, lift stats and export.
"""
from datetime import date, datetime, timezone
from typing import Optional


def parse_date(value) -> Optional[date]:
    """Parse a date, datetime or ISO string (date or datetime); None if unparseable."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    dt = parse_datetime(value)
    return dt.date() if dt else None


def parse_datetime(value) -> Optional[datetime]:
    """Parse to a timezone-aware UTC datetime; None if unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            try:
                dt = datetime.strptime(text[:10], '%Y-%m-%d')
            except ValueError:
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def month_start(d: date) -> date:
    return date(d.year, d.month, 1)


def shift_months(d: date, months: int) -> date:
    """Move d by whole months, clamping the day to the target month's length."""
    index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    for day in (d.day, 30, 29, 28):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    raise ValueError(f"Cannot shift {d} by {months} months")
