# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Temporary Edit Revert - Restore sessions whose temporary edit has expired
"""
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Tuple

import config
from utils.logger import StructuredLogger
from utils.timezone import get_local_time

logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)


class TemporaryEditRevertJob:
    """Reverts expired temporary edits in store-sized batches"""

    def __init__(self, reader, writer, clock: Callable[[], datetime] = get_local_time,
                 batch_size: int = None):
        self.reader = reader
        self.writer = writer
        self.clock = clock
        self.batch_size = batch_size or config.STORE_BATCH_LIMIT

    def run(self) -> Dict:
        started = time.time()
        now = self.clock()
        result = {'success': True, 'found': 0, 'reverted': 0, 'skipped': 0, 'failed': 0}

        expired = self.reader.find_expired_temporary_edits(now)
        result['found'] = len(expired)
        if not expired:
            logger.debug("No expired temporary edits")
            return result

        logger.info(f"🔄 Found {len(expired)} expired temporary edit(s) to revert")

        pending: List[Tuple[str, Dict]] = []
        for session in expired:
            if not session.original_values:
                result['skipped'] += 1
                logger.warning(
                    f"⚠️ Session {session.id} has an expired temporary edit but no original values, "
                    f"leaving it unchanged"
                )
                continue
            pending.append((session.id, session.reverted().snapshot()))

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            try:
                self.writer.revert_sessions(batch)
                result['reverted'] += len(batch)
            except Exception as e:
                result['failed'] += len(batch)
                result['success'] = False
                logger.error(f"❌ Failed to revert batch of {len(batch)} session(s): {e}")

        duration = time.time() - started
        structured_logger.log_job_event('temporary_edit_revert_completed', {
            **result, 'duration_seconds': round(duration, 3)
        })
        if result['reverted']:
            logger.info(f"✅ Reverted {result['reverted']} session(s) to their original values")
        return result
