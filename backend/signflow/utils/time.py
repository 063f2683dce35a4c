"""Time Utilities - UTC timestamps, day arithmetic and the injectable clock"""
import math
from datetime import datetime, timezone, timedelta
from typing import Optional
from dateutil import parser as date_parser


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


class Clock:
    """Time source for the engine; swap for a fixed clock in tests"""

    def now(self) -> datetime:
        return utc_now()


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (MongoDB returns naive UTC values)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Args:
        dt: Datetime object

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted datetime string

    Returns:
        Datetime object in UTC
    """
    return ensure_utc(date_parser.isoparse(iso_string))


def add_days(dt: datetime, days: int) -> datetime:
    """Add days to datetime"""
    return dt + timedelta(days=days)


def add_hours(dt: datetime, hours: int) -> datetime:
    """Add hours to datetime"""
    return dt + timedelta(hours=hours)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, rounded up (a partial day counts as a day)"""
    delta = ensure_utc(end) - ensure_utc(start)
    return math.ceil(delta.total_seconds() / 86400)


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    """
    Check whether an expiry has been reached

    Args:
        expires_at: Expiry datetime or None (never expires)
        now: Reference time

    Returns:
        True when now is at or past the expiry
    """
    if expires_at is None:
        return False
    return ensure_utc(now) >= ensure_utc(expires_at)
