# app/utils/time_utils.py
"""
Wall-clock helpers for the booking engine.

Rule and appointment times are "HH:MM" strings local to the business time
zone. Internally they are handled as minutes since midnight.
"""
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

import pytz

from app.core.exceptions import ValidationError

_TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])(:[0-5][0-9])?$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MINUTES_PER_DAY = 24 * 60


def utcnow() -> datetime:
    """Current instant as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def parse_hhmm(value: Union[str, time]) -> int:
    """Convert "HH:MM" (or "HH:MM:SS", or a time) to minutes since midnight"""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time value: {value!r}")

    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValidationError(f"Invalid time format '{value}'. Use HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM" """
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_to_time(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValidationError(f"Time {format_minutes(minutes)} falls outside a single day")
    return time(minutes // 60, minutes % 60)


def parse_iso_date(value: Union[str, date]) -> date:
    """Parse a YYYY-MM-DD string into a date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError(f"Invalid date '{value}'. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date '{value}'. Use YYYY-MM-DD")


def day_of_week(target: date) -> int:
    """Weekday index with 0 = Sunday ... 6 = Saturday"""
    return (target.weekday() + 1) % 7


def get_timezone(tz_name: Optional[str]):
    try:
        return pytz.timezone(tz_name or "UTC")
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Unknown time zone '{tz_name}'")


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as SQLite returns them) as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_now(tz_name: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Naive wall-clock datetime in the business time zone"""
    now = as_utc(now or utcnow())
    return now.astimezone(get_timezone(tz_name)).replace(tzinfo=None)


def local_to_utc(target: date, minutes: int, tz_name: Optional[str]) -> datetime:
    """Aware UTC instant for a business-local date and minute of day"""
    naive = datetime.combine(target, time()) + timedelta(minutes=minutes)
    localized = get_timezone(tz_name).localize(naive)
    return localized.astimezone(timezone.utc)
