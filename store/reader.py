# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Session Reader - Read operations against Firestore for the reminder engine
"""
import logging
from datetime import datetime, timedelta
from typing import List

from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1 import FieldFilter

from models import RecurringSession, ReminderRecipient
from notify.occurrence import weekday_name
from store import firebase
from store.documents import recipient_from_docs, session_from_doc
from utils.retry import retry_with_backoff
from utils.timezone import to_local

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.Aborted,
)


class SessionReader:
    """Handles reading sessions, recipients and SMS history from Firestore"""

    def __init__(self, client):
        self.db = client

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def find_due_sessions(self, now: datetime) -> List[RecurringSession]:
        """Sessions meeting today or tomorrow (local weekday names)"""
        local_now = to_local(now)
        weekdays = [weekday_name(local_now), weekday_name(local_now + timedelta(days=1))]

        query = self.db.collection(firebase.COURSES).where(
            filter=FieldFilter('days', 'array_contains_any', weekdays)
        )
        sessions = [session_from_doc(doc.id, doc.to_dict() or {}) for doc in query.stream()]
        logger.debug(f"Found {len(sessions)} session(s) meeting on {' or '.join(weekdays)}")
        return sessions

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def find_enrolled_recipients(self, session_id: str) -> List[ReminderRecipient]:
        """Enrolled students with their profile and active device registrations"""
        enrollments = self.db.collection(firebase.ENROLLMENTS).where(
            filter=FieldFilter('courseId', '==', session_id)
        ).stream()
        user_ids = []
        for enrollment in enrollments:
            user_id = (enrollment.to_dict() or {}).get('userId')
            if user_id and user_id not in user_ids:
                user_ids.append(user_id)

        if not user_ids:
            return []

        users = self.db.collection(firebase.USERS)
        refs = [users.document(user_id) for user_id in user_ids]

        recipients = []
        for user_doc in self.db.get_all(refs):
            if not user_doc.exists:
                # Enrollment outlived the account
                continue
            devices = self._active_device_docs(user_doc.id)
            recipients.append(recipient_from_docs(user_doc.id, user_doc.to_dict() or {}, devices))

        return recipients

    def _active_device_docs(self, user_id: str) -> List[dict]:
        query = self.db.collection(firebase.DEVICE_TOKENS).where(
            filter=FieldFilter('userId', '==', user_id)
        ).where(
            filter=FieldFilter('isActive', '==', True)
        )
        return [doc.to_dict() or {} for doc in query.stream()]

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def find_users_with_notifications_enabled(self) -> List[str]:
        query = self.db.collection(firebase.USERS).where(
            filter=FieldFilter('notificationsEnabled', '==', True)
        )
        return [doc.id for doc in query.stream()]

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def count_sms_sent_in_window(self, user_id: str, since: datetime) -> int:
        query = self.db.collection(firebase.SMS_LOGS).where(
            filter=FieldFilter('userId', '==', user_id)
        ).where(
            filter=FieldFilter('sentAt', '>=', since)
        )
        return sum(1 for _ in query.stream())

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def find_expired_temporary_edits(self, now: datetime) -> List[RecurringSession]:
        query = self.db.collection(firebase.COURSES).where(
            filter=FieldFilter('temporaryEditExpiresAt', '<=', now)
        )
        return [session_from_doc(doc.id, doc.to_dict() or {}) for doc in query.stream()]
