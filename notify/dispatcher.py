# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Notification Dispatcher - Fan one notification out to in-app, push and SMS
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import config
from models import (
    DispatchReport, NotificationIntent, NotificationRecord, RecipientOutcome, ReminderRecipient
)
from utils.logger import StructuredLogger
from utils.timezone import get_local_time

logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)

SMS_SENT = 'sent'
SMS_FAILED = 'failed'
SMS_LIMIT_EXCEEDED = 'limit_exceeded'


class NotificationDispatcher:
    """
    Delivers a NotificationIntent to a list of recipients.

    Channel failures never propagate: every outcome is counted in the
    returned DispatchReport. A failure for one recipient does not stop the
    others.
    """

    def __init__(self, reader, writer, push_provider, sms_provider,
                 weekly_sms_limit: Optional[int] = None,
                 clock: Callable[[], datetime] = get_local_time,
                 metrics=None):
        self.reader = reader
        self.writer = writer
        self.push_provider = push_provider
        self.sms_provider = sms_provider
        self.weekly_sms_limit = config.WEEKLY_SMS_LIMIT if weekly_sms_limit is None else weekly_sms_limit
        self.clock = clock
        self.metrics = metrics

    def dispatch(self, intent: NotificationIntent, recipients: List[ReminderRecipient]) -> DispatchReport:
        report = DispatchReport(kind=intent.type, recipients=len(recipients))
        if not recipients:
            return report

        outcomes = {r.user_id: RecipientOutcome(user_id=r.user_id) for r in recipients}
        report.outcomes = list(outcomes.values())

        self._write_in_app(intent, recipients, outcomes, report)

        for recipient in recipients:
            outcome = outcomes[recipient.user_id]
            try:
                self._send_push(intent, recipient, outcome, report)
            except Exception as e:
                outcome.error = str(e)
                logger.error(f"❌ Push dispatch failed for user {recipient.user_id}: {e}", exc_info=True)
                if self.metrics:
                    self.metrics.record_error('dispatch_push', str(e))

            try:
                self._send_sms(intent, recipient, outcome, report)
            except Exception as e:
                outcome.sms = SMS_FAILED
                outcome.error = f"{outcome.error}; {e}" if outcome.error else str(e)
                report.sms_failed += 1
                logger.error(f"❌ SMS dispatch failed for user {recipient.user_id}: {e}", exc_info=True)
                if self.metrics:
                    self.metrics.record_error('dispatch_sms', str(e))

        structured_logger.log_job_event('notification_dispatched', {
            **report.to_dict(),
            'title': intent.title,
            'course_id': intent.course_id,
        })
        if self.metrics:
            self.metrics.record_dispatch(report)

        return report

    def _write_in_app(self, intent: NotificationIntent, recipients: List[ReminderRecipient],
                      outcomes: dict, report: DispatchReport):
        records = [
            NotificationRecord(
                user_id=r.user_id,
                title=intent.title,
                message=intent.in_app_text(r),
                type=intent.type,
                course_id=intent.course_id,
            )
            for r in recipients
        ]

        try:
            self.writer.write_in_app_notifications(records)
        except Exception as e:
            logger.error(f"❌ Failed to write {len(records)} in-app notification(s): {e}")
            if self.metrics:
                self.metrics.record_error('in_app_write', str(e))
            return

        report.in_app_written = len(records)
        for record in records:
            outcomes[record.user_id].in_app = True

    def _send_push(self, intent: NotificationIntent, recipient: ReminderRecipient,
                   outcome: RecipientOutcome, report: DispatchReport):
        if not recipient.notifications_enabled:
            outcome.push_skipped = 'notifications_disabled'
            return
        if not recipient.has_active_access:
            outcome.push_skipped = 'no_active_access'
            return

        devices = recipient.active_devices
        if not devices:
            outcome.push_skipped = 'no_devices'
            logger.debug(f"User {recipient.user_id} has no active device registrations")
            return

        results = self.push_provider.send_to_devices(
            [d.token for d in devices],
            intent.title,
            intent.push_text(recipient),
            data=intent.payload,
            sound=recipient.sound,
        )

        for device, result in zip(devices, results):
            if result.ok:
                outcome.push_sent += 1
                report.push_sent += 1
                continue

            outcome.push_failed += 1
            report.push_failed += 1
            kind = result.error_kind.value if result.error_kind else 'unknown'
            logger.warning(f"Push to {device.platform} device of user {recipient.user_id} failed ({kind}): {result.error}")

            if result.should_deactivate:
                report.tokens_to_deactivate.append(device.token)
                self._deactivate(device.token, recipient.user_id)

    def _deactivate(self, token: str, user_id: str):
        try:
            self.writer.deactivate_device_registration(token)
            logger.info(f"⚠️ Deactivated invalid device registration for user {user_id}")
        except Exception as e:
            logger.error(f"Failed to deactivate device registration for user {user_id}: {e}")

    def _send_sms(self, intent: NotificationIntent, recipient: ReminderRecipient,
                  outcome: RecipientOutcome, report: DispatchReport):
        if not intent.sms_eligible or not recipient.phone_number:
            return

        since = self.clock() - timedelta(days=config.SMS_WINDOW_DAYS)
        sent_this_week = self.reader.count_sms_sent_in_window(recipient.user_id, since)
        if sent_this_week >= self.weekly_sms_limit:
            outcome.sms = SMS_LIMIT_EXCEEDED
            report.sms_limited += 1
            logger.warning(
                f"SMS limit reached for user {recipient.user_id} "
                f"({sent_this_week}/{self.weekly_sms_limit} this week), not sending"
            )
            return

        message = intent.sms_text(recipient)
        result = self.sms_provider.send(recipient.phone_number, message)

        if not result.ok:
            outcome.sms = SMS_FAILED
            report.sms_failed += 1
            logger.error(f"❌ SMS to user {recipient.user_id} failed: {result.provider_message}")
            return

        outcome.sms = SMS_SENT
        report.sms_sent += 1
        try:
            self.writer.log_sms_sent(recipient.user_id, result.phone_number or recipient.phone_number,
                                     message, intent.type, intent.course_id)
        except Exception as e:
            # Sent but unaccounted: the quota under-counts by one
            logger.error(f"SMS sent to user {recipient.user_id} but could not be logged: {e}")
