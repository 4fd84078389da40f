# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Dedup Ledger - At most one reminder per user, session and local calendar day
"""
import logging
from datetime import datetime
from threading import Lock
from typing import Callable, Set, Tuple

from utils.timezone import get_local_time, local_day_key

logger = logging.getLogger(__name__)

DedupKey = Tuple[str, str, str]


class DedupLedger:
    """
    In-memory record of reminders already sent today.

    Nothing is persisted: after a process restart a session can be
    reminded once more on the same day.
    """

    def __init__(self, clock: Callable[[], datetime] = get_local_time):
        self._clock = clock
        self._sent: Set[DedupKey] = set()
        self._lock = Lock()

    def _key(self, user_id: str, session_id: str) -> DedupKey:
        return (user_id, session_id, local_day_key(self._clock()))

    def was_sent(self, user_id: str, session_id: str) -> bool:
        with self._lock:
            return self._key(user_id, session_id) in self._sent

    def mark_sent(self, user_id: str, session_id: str):
        with self._lock:
            self._sent.add(self._key(user_id, session_id))

    def purge_stale(self) -> int:
        """Drop every key not belonging to the current local day; returns how many were dropped"""
        today = local_day_key(self._clock())
        with self._lock:
            stale = {key for key in self._sent if key[2] != today}
            self._sent -= stale

        if stale:
            logger.debug(f"Purged {len(stale)} reminder keys from previous days")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sent)
