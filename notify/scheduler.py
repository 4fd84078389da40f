# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Background Scheduler - Drive the reminder, revert and cleanup jobs on fixed intervals
"""
import logging
import threading
import time
from threading import Lock
from typing import Callable, Dict, Optional

import schedule

import config
from notify.history import JobHistory
from utils.timezone import format_local_time, get_local_time

logger = logging.getLogger(__name__)

REMINDERS = 'reminders'
REVERT = 'temporary_edit_revert'
TOKEN_CLEANUP = 'token_cleanup'


class NotificationScheduler:
    """
    Owns the job timers and their threads.

    Each job runs on its own thread so a slow tick never delays the other
    timers; a job that is still running when its next tick comes due is
    skipped for that tick.
    """

    def __init__(self, reminder_job, revert_job, cleanup_job,
                 history: Optional[JobHistory] = None, metrics=None,
                 scheduler: Optional[schedule.Scheduler] = None):
        self.reminder_job = reminder_job
        self.revert_job = revert_job
        self.cleanup_job = cleanup_job
        self.history = history or JobHistory()
        self.metrics = metrics
        self.scheduler = scheduler or schedule.Scheduler()

        self.scheduler_lock = Lock()
        self.scheduler_thread = None
        self._stop_event = threading.Event()
        self._job_locks = {REMINDERS: Lock(), REVERT: Lock(), TOKEN_CLEANUP: Lock()}
        self._workers = []

    def start(self):
        """Start the scheduler"""
        with self.scheduler_lock:
            if self.scheduler_thread is not None and self.scheduler_thread.is_alive():
                logger.info("Scheduler already running")
                return

            logger.info(f"Starting scheduler thread at {format_local_time(get_local_time())}...")
            self._stop_event.clear()
            self._register_jobs()
            self.scheduler_thread = threading.Thread(target=self._run_scheduler, name='notification-scheduler', daemon=True)
            self.scheduler_thread.start()

    def stop(self, timeout: float = 30.0):
        """Stop the timers and wait for in-flight ticks to finish"""
        logger.info(f"Stopping scheduler at {format_local_time(get_local_time())}...")
        self._stop_event.set()

        with self.scheduler_lock:
            thread = self.scheduler_thread
            workers = list(self._workers)

        if thread is not None:
            thread.join(timeout)
        for worker in workers:
            worker.join(timeout)

        self.scheduler.clear()
        logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        with self.scheduler_lock:
            return bool(self.scheduler_thread and self.scheduler_thread.is_alive() and not self._stop_event.is_set())

    def _register_jobs(self):
        self.scheduler.clear()
        self.scheduler.every(config.REMINDER_INTERVAL_MIN).minutes.do(
            self._launch, REMINDERS, self.reminder_job.run).tag(REMINDERS)
        self.scheduler.every(config.REMINDER_STARTUP_DELAY_SEC).seconds.do(
            self._first_reminder_tick).tag(REMINDERS, 'startup')
        self.scheduler.every(config.REVERT_INTERVAL_MIN).minutes.do(
            self._launch, REVERT, self.revert_job.run).tag(REVERT)
        self.scheduler.every(config.TOKEN_CLEANUP_INTERVAL_HOURS).hours.do(
            self._launch, TOKEN_CLEANUP, self.cleanup_job.run).tag(TOKEN_CLEANUP)

        logger.info(
            f"Scheduler configured - reminders every {config.REMINDER_INTERVAL_MIN} min "
            f"(first after {config.REMINDER_STARTUP_DELAY_SEC}s), revert every {config.REVERT_INTERVAL_MIN} min, "
            f"device cleanup every {config.TOKEN_CLEANUP_INTERVAL_HOURS} h"
        )

    def _first_reminder_tick(self):
        self._launch(REMINDERS, self.reminder_job.run)
        return schedule.CancelJob

    def _run_scheduler(self):
        """Run the scheduler loop"""
        # Revert and cleanup also run once at startup
        self._launch(REVERT, self.revert_job.run)
        self._launch(TOKEN_CLEANUP, self.cleanup_job.run)

        while not self._stop_event.is_set():
            self.scheduler.run_pending()
            self._stop_event.wait(config.SCHEDULER_POLL_SEC)

        logger.info(f"Scheduler loop exited at {format_local_time(get_local_time())}")

    def _launch(self, name: str, tick: Callable[[], Dict]):
        if self._stop_event.is_set():
            return
        worker = threading.Thread(target=self._run_job, args=(name, tick), name=f"job-{name}", daemon=True)
        with self.scheduler_lock:
            self._workers = [w for w in self._workers if w.is_alive()]
            self._workers.append(worker)
        worker.start()

    def _run_job(self, name: str, tick: Callable[[], Dict]) -> Optional[Dict]:
        """Run one tick; never raises"""
        lock = self._job_locks[name]
        if not lock.acquire(blocking=False):
            logger.warning(f"⚠️ Previous {name} run still in progress, skipping this tick")
            return None

        started = time.time()
        result = None
        error = None
        try:
            logger.info(f"Running scheduled {name} job at {format_local_time(get_local_time())}")
            result = tick()
        except Exception as e:
            error = str(e)
            logger.error(f"❌ Scheduled {name} job failed: {e}", exc_info=True)
            if self.metrics:
                self.metrics.record_error(name, error)
        finally:
            lock.release()

        duration = time.time() - started
        self.history.add_entry(name, result, duration, error)
        if self.metrics:
            self.metrics.record_job_duration(name, duration, success=error is None)
        return result

    def run_reminder_tick(self) -> Optional[Dict]:
        return self._run_job(REMINDERS, self.reminder_job.run)

    def run_revert_tick(self) -> Optional[Dict]:
        return self._run_job(REVERT, self.revert_job.run)

    def run_token_cleanup_tick(self) -> Optional[Dict]:
        return self._run_job(TOKEN_CLEANUP, self.cleanup_job.run)

    def get_scheduler_status(self) -> Dict:
        """Running state, next run and recent history for each job"""
        jobs = {}
        for name, lock in self._job_locks.items():
            next_runs = [job.next_run for job in self.scheduler.get_jobs(name) if job.next_run]
            next_run = min(next_runs) if next_runs else None
            jobs[name] = {
                'in_progress': lock.locked(),
                'next_run': format_local_time(next_run.astimezone()) if next_run else None,
                'statistics': self.history.get_statistics(name),
            }

        return {
            'running': self.is_running(),
            'checked_at': get_local_time().isoformat(),
            'jobs': jobs,
            'recent_failures': self.history.get_recent_failures(limit=5),
        }
