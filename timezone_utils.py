"""
Timezone utilities for the quest engine.
Quest timestamps are stored in UTC; rule evaluation needs the local time at the user's location.
"""

import datetime
import os
from typing import Optional

import pytz

# Used when the weather provider does not report a UTC offset for the location.
DEFAULT_TZ = pytz.timezone(os.environ.get('QUEST_DEFAULT_TIMEZONE', 'Asia/Kolkata'))


def utc_now() -> datetime.datetime:
    """
    Get the current time as an aware UTC datetime.

    Returns:
        datetime.datetime: Current datetime in UTC
    """
    return datetime.datetime.now(pytz.utc)


def ensure_utc(dt: datetime.datetime) -> datetime.datetime:
    """
    Convert a datetime to UTC, treating naive values as UTC already.

    Args:
        dt: datetime to convert

    Returns:
        datetime.datetime: Aware datetime in UTC
    """
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def from_unix_timestamp(ts: float) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(ts, tz=pytz.utc)


def estimate_utc_offset(lng: float) -> int:
    """
    Approximate a location's UTC offset from its longitude (15 degrees per hour).
    Ignores political timezone borders and DST, so it is only a fallback for readings
    that carry no provider offset.

    Returns:
        int: Offset in seconds east of UTC, a whole number of hours in [-12h, +12h]
    """
    return int(round(lng / 15.0)) * 3600


def get_local_datetime(dt: datetime.datetime, offset_seconds: Optional[int] = None) -> datetime.datetime:
    """
    Get the local wall-clock time for a reading.

    Args:
        dt: The moment of the reading
        offset_seconds: Offset from UTC reported by the provider, or estimated from the longitude

    Returns:
        datetime.datetime: dt expressed in the location's timezone. With no offset at all it falls back to
            DEFAULT_TZ, which is only right for users in that zone
    """
    dt = ensure_utc(dt)
    if offset_seconds is None:
        return dt.astimezone(DEFAULT_TZ)
    return dt.astimezone(datetime.timezone(datetime.timedelta(seconds=offset_seconds)))


def get_local_hour(dt: datetime.datetime, offset_seconds: Optional[int] = None) -> int:
    return get_local_datetime(dt, offset_seconds).hour


__all__ = [
    'DEFAULT_TZ',
    'utc_now',
    'ensure_utc',
    'from_unix_timestamp',
    'estimate_utc_offset',
    'get_local_datetime',
    'get_local_hour',
]
