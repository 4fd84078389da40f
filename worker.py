# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Class reminder worker - wires the engine together and runs the scheduler
"""
import logging
import signal
import threading

import config
from notify.dedup import DedupLedger
from notify.dispatcher import NotificationDispatcher
from notify.history import JobHistory
from notify.reminders import ReminderJob
from notify.revert_job import TemporaryEditRevertJob
from notify.scheduler import NotificationScheduler
from notify.token_cleanup import DeviceRegistrationCleanupJob
from providers.push import FcmPushProvider
from providers.sms import MoolreSmsProvider
from store.firebase import get_firestore_client, init_firebase
from store.reader import SessionReader
from store.writer import SessionWriter
from utils.logger import configure_logging
from utils.metrics import MetricsCollector

logger = logging.getLogger(__name__)


def build_scheduler(client=None, app=None) -> NotificationScheduler:
    """Assemble every component around one Firestore client"""
    client = client or get_firestore_client()
    metrics = MetricsCollector()

    reader = SessionReader(client)
    writer = SessionWriter(client)
    dispatcher = NotificationDispatcher(
        reader,
        writer,
        FcmPushProvider(app=app, metrics=metrics),
        MoolreSmsProvider(metrics=metrics, required=config.SMS_REQUIRED),
        metrics=metrics,
    )

    return NotificationScheduler(
        reminder_job=ReminderJob(reader, dispatcher, DedupLedger(), metrics=metrics),
        revert_job=TemporaryEditRevertJob(reader, writer),
        cleanup_job=DeviceRegistrationCleanupJob(writer),
        history=JobHistory(),
        metrics=metrics,
    )


def main():
    configure_logging()
    logger.info(f"🚀 Starting class reminder worker ({config.ENVIRONMENT}, {config.LOCAL_TIMEZONE})")

    app = init_firebase()
    scheduler = build_scheduler(app=app)
    stopped = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stopped.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    scheduler.start()
    while not stopped.wait(1):
        pass
    scheduler.stop()
    logger.info("👋 Worker stopped")


if __name__ == '__main__':
    main()
