# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Session Updates - Prepare temporary/permanent edits and notify enrolled students
"""
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import config
from models import (
    NOTIFICATION_TYPE_COURSE_UPDATE, SNAPSHOT_FIELDS,
    ChangeSet, DispatchReport, EditKind, NotificationIntent, RecurringSession
)
from notify.change_detector import detect_changes
from utils.formatting import truncate_sms
from utils.timezone import get_local_time

logger = logging.getLogger(__name__)

# Checked in order against the first change sentence
_TITLE_PREFIXES = (
    ('Time changed', 'Time Changed'),
    ('Venue changed', 'Venue Changed'),
    ('Days changed', 'Days Changed'),
    ('Course name changed', 'Course Name Changed'),
    ('Credit hours changed', 'Credit Hours Changed'),
)


def prepare_edit(current: RecurringSession, updates: Dict[str, Any], kind: EditKind,
                 saved_at: Optional[datetime] = None) -> RecurringSession:
    """
    Build the post-edit session.

    Per-day times and venues also set the session-wide start/end/venue from
    the first listed weekday. A temporary edit keeps an existing snapshot so
    the revert always returns to the last permanent state.
    """
    unknown = set(updates) - set(SNAPSHOT_FIELDS)
    if unknown:
        raise ValueError(f"Cannot edit session field(s): {', '.join(sorted(unknown))}")

    values = dict(updates)
    days = values.get('days', current.days) or []
    first_day = days[0] if days else None

    day_times = values.get('day_times')
    if day_times and first_day in day_times:
        values['start_time'] = day_times[first_day].start_time
        values['end_time'] = day_times[first_day].end_time

    day_venues = values.get('day_venues')
    if day_venues and first_day in day_venues:
        values['venue'] = day_venues[first_day]

    edited = current.with_values(values)

    if kind == EditKind.TEMPORARY:
        saved_at = saved_at or get_local_time()
        snapshot = current.original_values if current.original_values else current.snapshot()
        return replace(
            edited,
            original_values=snapshot,
            temporary_edit_expiry=saved_at + timedelta(hours=config.TEMPORARY_EDIT_HOURS),
        )

    return replace(edited, original_values=None, temporary_edit_expiry=None)


def change_title(changes: ChangeSet) -> str:
    if changes.is_cancelled:
        return 'Class Cancelled'
    if changes.entries:
        first = changes.entries[0].message
        for prefix, title in _TITLE_PREFIXES:
            if first.startswith(prefix):
                return title
    return 'Course Updated'


def _push_sentence(message: str) -> str:
    if message.startswith('Course name changed to '):
        return 'Name changed to ' + message[len('Course name changed to '):]
    return message


def build_change_intent(session: RecurringSession, changes: ChangeSet) -> NotificationIntent:
    """In-app, push and SMS texts for a change; SMS only when the change is urgent"""
    course = session.name

    if changes.entries:
        bullets = '\n'.join(f"• {message}" for message in changes.messages)
        detailed = f"{course} has been updated:\n\n{bullets}"
        push_line = f"{course} has been updated. " + ', '.join(_push_sentence(m) for m in changes.messages)
    else:
        detailed = f"{course} has been updated"
        push_line = detailed

    if changes.is_cancelled:
        sms = f"Hi {{name}}, URGENT: {course} class CANCELLED."
    else:
        sms = f"Hi {{name}}, URGENT: {course} - {', '.join(changes.messages[:2])}."

    return NotificationIntent(
        title=change_title(changes),
        body=f"Hi {{name}}, {detailed}",
        push_body=f"Hi {{name}}, {push_line}",
        sms_body=truncate_sms(sms),
        type=NOTIFICATION_TYPE_COURSE_UPDATE,
        course_id=session.course_id,
        session_id=session.id,
        payload={
            'type': NOTIFICATION_TYPE_COURSE_UPDATE,
            'courseId': session.course_id,
            'courseName': course,
        },
        sms_eligible=changes.is_urgent,
    )


class SessionUpdateNotifier:
    """Runs an edited session through change detection and dispatch"""

    def __init__(self, reader, dispatcher):
        self.reader = reader
        self.dispatcher = dispatcher

    def apply_edit(self, current: RecurringSession, updates: Dict[str, Any], kind: EditKind,
                   saved_at: Optional[datetime] = None) -> Tuple[RecurringSession, ChangeSet, Optional[DispatchReport]]:
        """Prepare the edit and notify students; the caller persists the returned session"""
        saved_at = saved_at or get_local_time()
        edited = prepare_edit(current, updates, kind, saved_at)
        changes, report = self.notify_change(current, edited, saved_at, kind)
        return edited, changes, report

    def notify_change(self, old: RecurringSession, new: RecurringSession, saved_at: datetime,
                      kind: EditKind = EditKind.PERMANENT) -> Tuple[ChangeSet, Optional[DispatchReport]]:
        changes = detect_changes(old, new, saved_at, kind)

        if changes.is_empty and not changes.is_cancelled:
            logger.info(f"No notifiable changes to session {new.id}, nothing to send")
            return changes, None

        if changes.is_urgent and changes.next_occurrence is not None:
            minutes = round((changes.next_occurrence - saved_at).total_seconds() / 60)
            logger.warning(f"⚠️ Last-minute change to {new.name}: class in {minutes} minutes, SMS enabled")

        try:
            recipients = self.reader.find_enrolled_recipients(new.id)
        except Exception as e:
            logger.error(f"❌ Could not load recipients for session {new.id}: {e}")
            return changes, None

        if not recipients:
            logger.info(f"No enrolled students for session {new.id}")
            return changes, None

        report = self.dispatcher.dispatch(build_change_intent(new, changes), recipients)
        logger.info(
            f"Change notification for {new.name}: {report.in_app_written} in-app, "
            f"{report.push_sent} push sent ({report.push_failed} failed), "
            f"{report.sms_sent} SMS sent ({report.sms_failed} failed, {report.sms_limited} over limit)"
        )
        return changes, report
