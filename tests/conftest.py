"""
Shared fixtures - in-memory stand-ins for Firestore and the push/SMS providers
"""
import os
import sys
from datetime import date, time

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import (
    DeviceRegistration, PushResult, RecurringSession, ReminderRecipient, SmsResult
)
from notify.dispatcher import NotificationDispatcher
from utils.timezone import localize

# 2024-03-11 is a Monday
MONDAY = date(2024, 3, 11)
TUESDAY = date(2024, 3, 12)


def at(day: date, hour: int, minute: int = 0):
    """Aware local instant"""
    return localize(day, time(hour, minute))


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class FakeReader:
    def __init__(self):
        self.sessions = []
        self.recipients = {}
        self.enabled_users = []
        self.sms_counts = {}
        self.expired = []
        self.sms_count_calls = []

    def find_due_sessions(self, now):
        return list(self.sessions)

    def find_enrolled_recipients(self, session_id):
        return list(self.recipients.get(session_id, []))

    def find_users_with_notifications_enabled(self):
        return list(self.enabled_users)

    def count_sms_sent_in_window(self, user_id, since):
        self.sms_count_calls.append((user_id, since))
        return self.sms_counts.get(user_id, 0)

    def find_expired_temporary_edits(self, now):
        return list(self.expired)


class FakeWriter:
    def __init__(self):
        self.notifications = []
        self.deactivated = []
        self.sms_logs = []
        self.revert_batches = []
        self.cleanup_calls = []
        self.cleanup_result = 0
        self.fail_in_app = False
        self.fail_revert = False
        self.fail_cleanup = None

    def write_in_app_notifications(self, records):
        if self.fail_in_app:
            raise RuntimeError("firestore unavailable")
        self.notifications.extend(records)
        return len(records)

    def deactivate_device_registration(self, token):
        self.deactivated.append(token)
        return True

    def log_sms_sent(self, user_id, phone_number, message, notification_type, course_id=None):
        self.sms_logs.append({
            'user_id': user_id,
            'phone_number': phone_number,
            'message': message,
            'type': notification_type,
            'course_id': course_id,
        })

    def revert_sessions(self, reverts):
        if self.fail_revert:
            raise RuntimeError("batch commit failed")
        self.revert_batches.append(list(reverts))
        return len(reverts)

    def cleanup_inactive_registrations(self, days_old):
        self.cleanup_calls.append(days_old)
        if self.fail_cleanup:
            raise self.fail_cleanup
        return self.cleanup_result


class FakePushProvider:
    """Succeeds unless a token is listed in failures (token -> PushErrorKind)"""

    def __init__(self):
        self.failures = {}
        self.sent = []

    def send_to_devices(self, tokens, title, body, data=None, sound='default'):
        results = []
        for token in tokens:
            self.sent.append({'token': token, 'title': title, 'body': body, 'data': dict(data or {}), 'sound': sound})
            kind = self.failures.get(token)
            if kind is None:
                results.append(PushResult(token, True, message_id=f"msg-{len(self.sent)}"))
            else:
                results.append(PushResult(token, False, error_kind=kind, error=kind.value))
        return results


class FakeSmsProvider:
    def __init__(self, ok=True):
        self.ok = ok
        self.sent = []

    def send(self, phone_number, message):
        self.sent.append((phone_number, message))
        if self.ok:
            return SmsResult(ok=True, provider_message='Success', phone_number=phone_number)
        return SmsResult(ok=False, provider_message='gateway error', phone_number=phone_number)


def make_session(**overrides):
    values = {
        'id': 'course-1',
        'name': 'Data Structures',
        'code': 'CS201',
        'days': ['Monday'],
        'start_time': '9:00 AM',
        'end_time': '10:00 AM',
        'venue': 'Hall A',
        'credit_hours': 3,
    }
    values.update(overrides)
    return RecurringSession(**values)


def make_recipient(user_id='user-1', **overrides):
    values = {
        'user_id': user_id,
        'name': 'Ama',
        'lead_minutes': 15,
        'devices': [DeviceRegistration(token=f"token-{user_id}", platform='android')],
        'phone_number': '+233 24-123-4567',
        'notifications_enabled': True,
        'has_active_access': True,
    }
    values.update(overrides)
    return ReminderRecipient(**values)


@pytest.fixture
def reader():
    return FakeReader()


@pytest.fixture
def writer():
    return FakeWriter()


@pytest.fixture
def push():
    return FakePushProvider()


@pytest.fixture
def sms():
    return FakeSmsProvider()


@pytest.fixture
def dispatcher(reader, writer, push, sms):
    return NotificationDispatcher(reader, writer, push, sms, weekly_sms_limit=5,
                                  clock=FixedClock(at(MONDAY, 8, 50)))

