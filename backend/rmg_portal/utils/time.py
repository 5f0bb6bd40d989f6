"""Time Utilities - UTC timestamps, ISO dates and week arithmetic"""
from datetime import date, datetime, timezone, timedelta
from typing import List, Optional, Union
from dateutil import parser as date_parser

DAYS_IN_WEEK = 7


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (MongoDB hands back naive UTC values)"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """Parse ISO 8601 string to a UTC datetime"""
    return ensure_utc(date_parser.isoparse(iso_string))


def parse_date(value: Union[str, date, datetime]) -> date:
    """
    Parse a calendar date

    Accepts `date`/`datetime` objects and strings such as "2024-03-04" or
    "2024-03-04T00:00:00Z". Only the calendar part is kept, so a week start
    never shifts across a timezone boundary.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date_parser.isoparse(str(value).strip()).date()


def to_iso_date(value: Union[str, date, datetime]) -> str:
    """Normalise any accepted date input to "YYYY-MM-DD"."""
    return parse_date(value).isoformat()


def week_dates(week_start: Union[str, date]) -> List[str]:
    """ISO dates of the seven days starting at week_start"""
    start = parse_date(week_start)
    return [(start + timedelta(days=i)).isoformat() for i in range(DAYS_IN_WEEK)]


def inclusive_days(start: Union[str, date], end: Union[str, date]) -> int:
    """Number of calendar days from start to end, both included"""
    return (parse_date(end) - parse_date(start)).days + 1
