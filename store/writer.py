# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Session Writer - Write operations against Firestore for the reminder engine
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import pytz
from google.cloud.firestore_v1 import FieldFilter
from firebase_admin import firestore

import config
from models import NotificationRecord
from store import firebase
from store.documents import notification_to_doc, snapshot_to_doc
from store.reader import TRANSIENT_ERRORS
from utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)


def _chunks(items: List, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class SessionWriter:
    """Handles writing notifications, device state and session reverts to Firestore"""

    def __init__(self, client, batch_limit: Optional[int] = None):
        self.db = client
        self.batch_limit = batch_limit or config.STORE_BATCH_LIMIT

    def write_in_app_notifications(self, records: List[NotificationRecord]) -> int:
        """Create one notification document per record, batched"""
        if not records:
            return 0

        # Ids are allocated once so a retried commit overwrites instead of duplicating
        collection = self.db.collection(firebase.NOTIFICATIONS)
        docs = [(collection.document(), record) for record in records]
        self._commit_notifications(docs)

        logger.info(f"✅ Saved {len(records)} in-app notification(s)")
        return len(records)

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def _commit_notifications(self, docs):
        for chunk in _chunks(docs, self.batch_limit):
            batch = self.db.batch()
            for ref, record in chunk:
                batch.set(ref, notification_to_doc(record, firestore.SERVER_TIMESTAMP))
            batch.commit()

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def deactivate_device_registration(self, token: str) -> bool:
        query = self.db.collection(firebase.DEVICE_TOKENS).where(
            filter=FieldFilter('pushToken', '==', token)
        ).limit(1)

        docs = list(query.stream())
        if not docs:
            return False

        docs[0].reference.update({
            'isActive': False,
            'lastUsed': firestore.SERVER_TIMESTAMP,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })
        logger.info(f"Deactivated device token: {token[:20]}...")
        return True

    def log_sms_sent(self, user_id: str, phone_number: str, message: str,
                     notification_type: str, course_id: Optional[str] = None):
        """Audit row used for the weekly SMS quota; not retried so a send is never counted twice"""
        self.db.collection(firebase.SMS_LOGS).document().set({
            'userId': user_id,
            'phoneNumber': phone_number,
            'message': message,
            'type': notification_type or 'announcement',
            'courseId': course_id,
            'sentAt': firestore.SERVER_TIMESTAMP,
        })

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def revert_sessions(self, reverts: List[Tuple[str, Dict]]) -> int:
        """
        Restore each session's fields and clear its temporary edit in one update

        Args:
            reverts: (session_id, model field values) pairs
        """
        collection = self.db.collection(firebase.COURSES)
        for chunk in _chunks(reverts, self.batch_limit):
            batch = self.db.batch()
            for session_id, values in chunk:
                update = snapshot_to_doc(values)
                update.update({
                    'temporaryEditExpiresAt': None,
                    'originalValues': None,
                    'updatedAt': firestore.SERVER_TIMESTAMP,
                })
                batch.update(collection.document(session_id), update)
            batch.commit()
            logger.info(f"Reverted batch of {len(chunk)} session(s)")

        return len(reverts)

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def revert_session_fields(self, session_id: str, values: Dict):
        """Restore one session's fields, leaving its temporary-edit markers alone"""
        update = snapshot_to_doc(values)
        update['updatedAt'] = firestore.SERVER_TIMESTAMP
        self.db.collection(firebase.COURSES).document(session_id).update(update)

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def clear_temporary_edit(self, session_id: str):
        self.db.collection(firebase.COURSES).document(session_id).update({
            'temporaryEditExpiresAt': None,
            'originalValues': None,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })

    @retry_with_backoff(max_retries=3, base_delay=1, retry_on=TRANSIENT_ERRORS)
    def cleanup_inactive_registrations(self, days_old: int, now: Optional[datetime] = None) -> int:
        """Delete deactivated device registrations not touched for days_old days"""
        now = now or datetime.now(pytz.UTC)
        cutoff = now - timedelta(days=days_old)

        # Single-field query; isActive is filtered here to avoid a composite index
        query = self.db.collection(firebase.DEVICE_TOKENS).where(
            filter=FieldFilter('updatedAt', '<', cutoff)
        )
        stale = [doc.reference for doc in query.stream() if (doc.to_dict() or {}).get('isActive') is False]

        for chunk in _chunks(stale, self.batch_limit):
            batch = self.db.batch()
            for ref in chunk:
                batch.delete(ref)
            batch.commit()

        return len(stale)
