# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Class Reminders - Decide when a reminder is due and run the reminder tick
"""
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

import config
from models import NOTIFICATION_TYPE_REMINDER, NotificationIntent, RecurringSession, ReminderRecipient
from notify.dedup import DedupLedger
from notify.occurrence import effective_venue, next_occurrence, weekday_name
from utils.formatting import format_clock_time, is_blank
from utils.logger import StructuredLogger
from utils.timezone import get_local_time, to_local

logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)


def is_reminder_due(occurrence: Optional[datetime], lead_minutes: int, now: datetime) -> bool:
    """
    True when now is within the reminder window either side of the
    lead-time threshold, or the class itself starts within the
    imminent-class window.

    The window is two-sided. A pre-threshold-only check
    (0 <= reminder_at - now <= window) never fires for a 09:00 class with a
    15 minute lead when the tick lands at 08:46, one minute after the
    threshold. Accepting up to REMINDER_WINDOW_MIN past the threshold covers
    that tick; the dedup ledger keeps the wider window to one send per day.
    """
    if occurrence is None:
        return False

    reminder_at = occurrence - timedelta(minutes=lead_minutes)
    until_reminder = reminder_at - now
    until_class = occurrence - now
    window = timedelta(minutes=config.REMINDER_WINDOW_MIN)

    within_reminder_window = -window <= until_reminder <= window
    class_imminent = timedelta(0) <= until_class <= timedelta(minutes=config.IMMINENT_CLASS_WINDOW_MIN)
    return within_reminder_window or class_imminent


def sound_payload_value(sound: Optional[str]) -> str:
    """Sound name sent in the data payload: "<pref>.wav" for custom sounds"""
    if not sound or sound == 'default':
        return 'default'
    return sound if sound.endswith('.wav') else f"{sound}.wav"


def build_reminder_intent(session: RecurringSession, recipient: ReminderRecipient,
                          occurrence: datetime, lead_minutes: Optional[int] = None) -> NotificationIntent:
    """Reminder text for one recipient; venue follows the occurrence's weekday"""
    lead_minutes = lead_minutes or recipient.lead_minutes or config.DEFAULT_REMINDER_MINUTES
    local_occurrence = to_local(occurrence)
    venue = effective_venue(session, weekday_name(local_occurrence))
    venue_text = f" at {venue}" if not is_blank(venue) else ''

    if not is_blank(session.index_from) and not is_blank(session.index_to):
        index_text = f" Index: {session.index_from} - {session.index_to}."
    elif not is_blank(session.index_from):
        index_text = f" Index: {session.index_from}."
    else:
        index_text = ''

    body = (
        f"Hi {{name}}, your {session.name} class starts in {lead_minutes} minutes{venue_text}. "
        f"Time: {format_clock_time(local_occurrence)}{index_text}"
    )

    return NotificationIntent(
        title='Class Reminder',
        body=body,
        type=NOTIFICATION_TYPE_REMINDER,
        course_id=session.course_id,
        session_id=session.id,
        payload={
            'courseId': session.course_id,
            'courseName': session.name,
            'type': NOTIFICATION_TYPE_REMINDER,
            'sound': sound_payload_value(recipient.sound),
        },
    )


class ReminderJob:
    """One reminder evaluation pass over every due session"""

    def __init__(self, reader, dispatcher, ledger: DedupLedger,
                 clock: Callable[[], datetime] = get_local_time, metrics=None):
        self.reader = reader
        self.dispatcher = dispatcher
        self.ledger = ledger
        self.clock = clock
        self.metrics = metrics

    def run(self) -> Dict:
        """
        Evaluate reminders once

        Returns:
            Dict with processed/sent/skipped/failed counts
        """
        started = time.time()
        now = self.clock()
        result = {'processed': 0, 'sent': 0, 'already_sent': 0, 'not_due': 0, 'failed': 0}

        self.ledger.purge_stale()

        enabled_users = set(self.reader.find_users_with_notifications_enabled())
        if not enabled_users:
            logger.info("No users with notifications enabled")
            return result

        sessions = self.reader.find_due_sessions(now)
        logger.info(f"🔔 Evaluating reminders for {len(sessions)} session(s), {len(enabled_users)} opted-in user(s)")

        for session in sessions:
            try:
                self._process_session(session, now, enabled_users, result)
            except Exception as e:
                result['failed'] += 1
                logger.error(f"❌ Reminder evaluation failed for session {session.id}: {e}", exc_info=True)
                if self.metrics:
                    self.metrics.record_error('reminder_session', str(e))

        duration = time.time() - started
        structured_logger.log_job_event('reminder_tick_completed', {**result, 'duration_seconds': round(duration, 3)})
        logger.info(f"Class reminders processed: {result['processed']}, sent: {result['sent']}")
        return result

    def _process_session(self, session: RecurringSession, now: datetime, enabled_users: set, result: Dict):
        occurrence = next_occurrence(session, now)
        if occurrence is None:
            logger.debug(f"No upcoming class for session {session.id} ({session.name})")
            return

        recipients = [
            r for r in self.reader.find_enrolled_recipients(session.id)
            if r.user_id in enabled_users
        ]

        for recipient in recipients:
            result['processed'] += 1
            try:
                self._process_recipient(session, recipient, occurrence, now, result)
            except Exception as e:
                result['failed'] += 1
                logger.error(f"❌ Reminder failed for user {recipient.user_id}, session {session.id}: {e}", exc_info=True)

    def _process_recipient(self, session: RecurringSession, recipient: ReminderRecipient,
                           occurrence: datetime, now: datetime, result: Dict):
        if not recipient.has_active_access:
            logger.debug(f"User {recipient.user_id} has no active access, skipping reminder")
            return

        if self.ledger.was_sent(recipient.user_id, session.id):
            result['already_sent'] += 1
            return

        lead_minutes = recipient.lead_minutes or config.DEFAULT_REMINDER_MINUTES
        if not is_reminder_due(occurrence, lead_minutes, now):
            result['not_due'] += 1
            return

        minutes_until = round((occurrence - now).total_seconds() / 60)
        logger.info(f"Reminder due for user {recipient.user_id}, {session.name} starts in {minutes_until} min")

        intent = build_reminder_intent(session, recipient, occurrence, lead_minutes)
        report = self.dispatcher.dispatch(intent, [recipient])
        outcome = report.outcome_for(recipient.user_id)

        if outcome is not None and outcome.delivered:
            self.ledger.mark_sent(recipient.user_id, session.id)
            result['sent'] += 1
            logger.info(f"✅ Sent class reminder to user {recipient.user_id} for {session.name}")
        else:
            result['failed'] += 1
            logger.warning(f"⚠️ Reminder for user {recipient.user_id} ({session.name}) was not delivered, will retry next tick")
