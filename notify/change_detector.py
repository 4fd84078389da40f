# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Change Detector - Diff two versions of a session and classify the edit
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import config
from models import ChangeEntry, ChangeSet, DayTimes, EditKind, RecurringSession
from notify.occurrence import next_occurrence
from utils.formatting import is_blank, join_days

logger = logging.getLogger(__name__)

NOT_SET = 'Not set'


def _text(value) -> str:
    return NOT_SET if is_blank(value) else str(value).strip()


def _normalized_days(days: Optional[List[str]]) -> List[str]:
    return sorted(str(d).strip() for d in (days or []))


def describe_times(start_time: Optional[str], end_time: Optional[str],
                   day_times: Optional[Dict[str, DayTimes]]) -> str:
    """Human summary of a schedule's times, per-day when overrides exist"""
    if day_times:
        return ', '.join(
            f"{day}: {_text(times.start_time)} - {_text(times.end_time)}"
            for day, times in day_times.items()
        )
    if not is_blank(start_time) and not is_blank(end_time):
        return f"{start_time} - {end_time}"
    return _text(start_time if not is_blank(start_time) else end_time)


def describe_venue(venue: Optional[str], day_venues: Optional[Dict[str, str]]) -> str:
    if day_venues:
        return ', '.join(f"{day}: {_text(v)}" for day, v in day_venues.items())
    return _text(venue)


def _name_change(old: RecurringSession, new: RecurringSession) -> Optional[ChangeEntry]:
    if old.name == new.name:
        return None
    return ChangeEntry('name', old.name, new.name, f"Course name changed to {_text(new.name)}")


def _venue_change(old: RecurringSession, new: RecurringSession) -> Optional[ChangeEntry]:
    same_venue = old.venue == new.venue
    if same_venue and (old.day_venues or {}) == (new.day_venues or {}):
        return None
    return ChangeEntry(
        'venue',
        {'venue': old.venue, 'day_venues': dict(old.day_venues or {})},
        {'venue': new.venue, 'day_venues': dict(new.day_venues or {})},
        f"Venue changed to {describe_venue(new.venue, new.day_venues)}",
    )


def _days_change(old: RecurringSession, new: RecurringSession) -> Optional[ChangeEntry]:
    if _normalized_days(old.days) == _normalized_days(new.days):
        return None
    return ChangeEntry(
        'days', list(old.days or []), list(new.days or []),
        f"Days changed to {join_days(new.days) or NOT_SET}",
    )


def _times_change(old: RecurringSession, new: RecurringSession) -> Optional[ChangeEntry]:
    old_times = {'start_time': old.start_time, 'end_time': old.end_time, 'day_times': dict(old.day_times or {})}
    new_times = {'start_time': new.start_time, 'end_time': new.end_time, 'day_times': dict(new.day_times or {})}
    if old_times == new_times:
        return None
    return ChangeEntry(
        'times', old_times, new_times,
        f"Time changed to {describe_times(new.start_time, new.end_time, new.day_times)}",
    )


def _credit_hours_change(old: RecurringSession, new: RecurringSession) -> Optional[ChangeEntry]:
    if old.credit_hours == new.credit_hours:
        return None
    return ChangeEntry(
        'credit_hours', old.credit_hours, new.credit_hours,
        f"Credit hours changed to {_text(new.credit_hours)}",
    )


def _code_change(old: RecurringSession, new: RecurringSession) -> Optional[ChangeEntry]:
    if old.code == new.code:
        return None
    return ChangeEntry('code', old.code, new.code, f"Course code changed to {_text(new.code)}")


def _index_change(old: RecurringSession, new: RecurringSession) -> Optional[ChangeEntry]:
    if (old.index_from, old.index_to) == (new.index_from, new.index_to):
        return None
    if not is_blank(new.index_from) and not is_blank(new.index_to):
        summary = f"{new.index_from} - {new.index_to}"
    else:
        summary = _text(new.index_from if not is_blank(new.index_from) else new.index_to)
    return ChangeEntry(
        'index_range',
        {'index_from': old.index_from, 'index_to': old.index_to},
        {'index_from': new.index_from, 'index_to': new.index_to},
        f"Index range changed to {summary}",
    )


def _rep_change(old: RecurringSession, new: RecurringSession) -> Optional[ChangeEntry]:
    if old.rep_name == new.rep_name:
        return None
    return ChangeEntry('rep_name', old.rep_name, new.rep_name, f"Course rep changed to {_text(new.rep_name)}")


# Order matters: the first entry picks the notification title
_FIELD_CHECKS = (
    _name_change,
    _venue_change,
    _days_change,
    _times_change,
    _credit_hours_change,
    _code_change,
    _index_change,
    _rep_change,
)


def is_cancellation(old: RecurringSession, new: RecurringSession) -> bool:
    """Venue cleared, or every weekday removed"""
    venue_cleared = not is_blank(old.venue) and is_blank(new.venue)
    days_removed = bool(old.days) and not new.days
    return venue_cleared or days_removed


def is_within_urgent_window(occurrence: Optional[datetime], saved_at: datetime) -> bool:
    if occurrence is None:
        return False
    delta = occurrence - saved_at
    return timedelta(0) < delta <= timedelta(minutes=config.URGENT_CHANGE_WINDOW_MIN)


def detect_changes(old: RecurringSession, new: RecurringSession, saved_at: datetime,
                   kind: EditKind = EditKind.PERMANENT) -> ChangeSet:
    """
    Compare old and new versions of a session.

    Urgency is judged against the old schedule: an edit is urgent when the
    class students were expecting starts within the urgent window after
    saved_at.
    """
    entries = [entry for entry in (check(old, new) for check in _FIELD_CHECKS) if entry is not None]
    cancelled = is_cancellation(old, new)

    occurrence = next_occurrence(old, saved_at)
    urgent = is_within_urgent_window(occurrence, saved_at) and (bool(entries) or cancelled)

    changes = ChangeSet(entries=entries, is_cancelled=cancelled, is_urgent=urgent, next_occurrence=occurrence)

    if entries:
        logger.info(
            f"Detected {len(entries)} change(s) to session {new.id} ({kind.value} edit): "
            f"{', '.join(changes.fields)}"
            + (" [CANCELLED]" if cancelled else "")
            + (" [URGENT]" if urgent else "")
        )
    return changes
