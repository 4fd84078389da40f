# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Timezone utilities for working in the school's local time
"""
from datetime import date, datetime, time
import pytz
from typing import Optional

import config


def get_local_timezone():
    """Get the configured local timezone"""
    return pytz.timezone(config.LOCAL_TIMEZONE)


def get_local_time() -> datetime:
    """Get current time in the local timezone"""
    return datetime.now(get_local_timezone())


def to_local(dt: datetime) -> Optional[datetime]:
    """Convert a datetime to local time (naive values are assumed to be UTC)"""
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)

    return dt.astimezone(get_local_timezone())


def localize(day: date, time_of_day: time, tz=None) -> datetime:
    """Combine a calendar day and a wall-clock time into an aware local datetime"""
    tz = tz or get_local_timezone()
    return tz.localize(datetime.combine(day, time_of_day))


def local_day_key(dt: Optional[datetime] = None) -> str:
    """Date-only string for the local calendar day of dt (default: now)"""
    dt = to_local(dt) if dt is not None else get_local_time()
    return dt.date().isoformat()


def format_local_time(dt: Optional[datetime], include_timezone: bool = True) -> str:
    """Format datetime in local time for display"""
    if dt is None:
        return "Never"

    local_dt = to_local(dt)
    if include_timezone:
        return local_dt.strftime('%b %d, %Y at %I:%M %p %Z')
    return local_dt.strftime('%b %d, %Y at %I:%M %p')
