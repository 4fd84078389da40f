# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Occurrence Calculator - Resolve the next real start time of a weekly session
"""
import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Optional

import config
from models import WEEKDAYS, DayTimes, RecurringSession
from utils.formatting import is_blank
from utils.timezone import localize, to_local

logger = logging.getLogger(__name__)

_TIME_12H = re.compile(r'(\d{1,2}):(\d{2})\s*(AM|PM)', re.IGNORECASE)
_TIME_24H = re.compile(r'(\d{1,2}):(\d{2})')


def parse_clock(value: Optional[str]) -> Optional[time]:
    """
    Parse "h:mm AM/PM" (any case) or "H:mm" into a wall-clock time.

    Returns None for empty input, unrecognised text, or out-of-range values.
    """
    if not value:
        return None

    match = _TIME_12H.search(value)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        # 0:xx AM is read like 12:xx AM
        if not 0 <= hours <= 12 or minutes > 59:
            return None
        meridiem = match.group(3).upper()
        if meridiem == 'PM' and hours != 12:
            hours += 12
        elif meridiem == 'AM' and hours == 12:
            hours = 0
        return time(hours, minutes)

    match = _TIME_24H.search(value)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            return None
        return time(hours, minutes)

    return None


def parse_time(value: Optional[str], day: date, tz=None) -> Optional[datetime]:
    """Instant on the given local calendar day at the parsed time, seconds zeroed"""
    clock = parse_clock(value)
    if clock is None:
        if value:
            logger.debug(f"Unparseable time string: {value!r}")
        return None
    return localize(day, clock, tz)


def weekday_name(day) -> str:
    """English weekday name of a date or datetime"""
    return WEEKDAYS[day.weekday()]


def effective_times(session: RecurringSession, weekday: str) -> DayTimes:
    """Per-day override for weekday if one exists, else the session-wide start/end"""
    override = session.day_times.get(weekday) if session.day_times else None
    if override is not None:
        return override
    return DayTimes(start_time=session.start_time, end_time=session.end_time)


def effective_venue(session: RecurringSession, weekday: Optional[str]) -> Optional[str]:
    """Per-day venue override for weekday if set, else the session venue"""
    if weekday and session.day_venues:
        venue = session.day_venues.get(weekday)
        if not is_blank(venue):
            return venue
    return session.venue


def next_occurrence(session: RecurringSession, now: datetime) -> Optional[datetime]:
    """
    Soonest start of session that is not more than the recent-start
    tolerance in the past relative to now.

    Days are scanned chronologically from today's local date; the first
    listed weekday whose start time parses and qualifies wins.
    """
    if not session.days:
        return None

    local_now = to_local(now)
    tolerance = timedelta(minutes=config.RECENT_START_TOLERANCE_MIN)

    for offset in range(config.OCCURRENCE_SCAN_DAYS):
        day = local_now.date() + timedelta(days=offset)
        weekday = weekday_name(day)
        if weekday not in session.days:
            continue

        start = parse_time(effective_times(session, weekday).start_time, day)
        if start is None:
            continue

        if start - now >= -tolerance:
            return start

    return None
