# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Document mapping - Firestore documents to and from the engine's records
"""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

import pytz

import config
from models import DayTimes, DeviceRegistration, NotificationRecord, RecurringSession, ReminderRecipient

# Session model field -> course document field
SESSION_FIELDS = {
    'name': 'courseName',
    'code': 'courseCode',
    'days': 'days',
    'start_time': 'startTime',
    'end_time': 'endTime',
    'day_times': 'dayTimes',
    'venue': 'venue',
    'day_venues': 'dayVenues',
    'credit_hours': 'creditHours',
    'index_from': 'indexFrom',
    'index_to': 'indexTo',
    'rep_name': 'courseRepName',
}
DOCUMENT_FIELDS = {doc_name: name for name, doc_name in SESSION_FIELDS.items()}


def _as_datetime(value) -> Optional[datetime]:
    """Firestore timestamps come back as aware datetimes; tolerate ISO strings too"""
    if value is None or value == '':
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = pytz.UTC.localize(value)
    return value


def day_times_from_doc(raw: Optional[Dict]) -> Dict[str, DayTimes]:
    if not raw:
        return {}
    return {
        day: DayTimes(start_time=(times or {}).get('startTime'), end_time=(times or {}).get('endTime'))
        for day, times in raw.items()
    }


def day_times_to_doc(day_times: Optional[Dict[str, DayTimes]]) -> Dict[str, Dict]:
    return {
        day: {'startTime': times.start_time, 'endTime': times.end_time}
        for day, times in (day_times or {}).items()
    }


def snapshot_from_doc(raw: Dict[str, Any]) -> Dict[str, Any]:
    """originalValues document -> model field values"""
    values = {}
    for doc_name, value in raw.items():
        name = DOCUMENT_FIELDS.get(doc_name)
        if name is None:
            continue
        if name == 'day_times':
            value = day_times_from_doc(value)
        elif name in ('days',):
            value = list(value or [])
        elif name == 'day_venues':
            value = dict(value or {})
        values[name] = value
    return values


def snapshot_to_doc(values: Dict[str, Any]) -> Dict[str, Any]:
    """Model field values -> course document fields"""
    doc = {}
    for name, value in values.items():
        if name == 'day_times':
            value = day_times_to_doc(value)
        doc[SESSION_FIELDS[name]] = value
    return doc


def session_from_doc(doc_id: str, data: Dict[str, Any]) -> RecurringSession:
    original = data.get('originalValues')
    days = data.get('days') or []
    if isinstance(days, str):
        days = [days]

    return RecurringSession(
        id=doc_id,
        course_id=doc_id,
        name=data.get('courseName') or '',
        code=data.get('courseCode') or '',
        days=list(days),
        start_time=data.get('startTime'),
        end_time=data.get('endTime'),
        day_times=day_times_from_doc(data.get('dayTimes')),
        venue=data.get('venue'),
        day_venues=dict(data.get('dayVenues') or {}),
        credit_hours=data.get('creditHours'),
        index_from=data.get('indexFrom'),
        index_to=data.get('indexTo'),
        rep_name=data.get('courseRepName'),
        temporary_edit_expiry=_as_datetime(data.get('temporaryEditExpiresAt')),
        original_values=snapshot_from_doc(original) if original else None,
    )


def has_active_access(user_data: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    """Paid, or still inside the free trial"""
    if user_data.get('paymentStatus'):
        return True
    trial_end = _as_datetime(user_data.get('trialEndDate'))
    if trial_end is None:
        return False
    now = now or datetime.now(pytz.UTC)
    return trial_end > now


def device_from_doc(data: Dict[str, Any]) -> DeviceRegistration:
    return DeviceRegistration(
        token=data.get('pushToken') or '',
        platform=data.get('platform') or 'unknown',
        is_active=data.get('isActive', True) is not False,
    )


def recipient_from_docs(user_id: str, user_data: Dict[str, Any], device_docs: Iterable[Dict[str, Any]],
                        now: Optional[datetime] = None) -> ReminderRecipient:
    sound = (user_data.get('notificationSound') or 'default').strip() or 'default'
    return ReminderRecipient(
        user_id=user_id,
        name=user_data.get('fullName') or '',
        lead_minutes=user_data.get('reminderMinutes') or config.DEFAULT_REMINDER_MINUTES,
        sound=sound,
        devices=[device_from_doc(d) for d in device_docs],
        phone_number=user_data.get('phoneNumber') or None,
        notifications_enabled=bool(user_data.get('notificationsEnabled')),
        has_active_access=has_active_access(user_data, now),
    )


def notification_to_doc(record: NotificationRecord, timestamp) -> Dict[str, Any]:
    return {
        'userId': record.user_id,
        'title': record.title,
        'message': record.message,
        'type': record.type,
        'courseId': record.course_id,
        'isRead': False,
        'createdAt': timestamp,
        'updatedAt': timestamp,
    }
