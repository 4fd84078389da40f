# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Device Registration Cleanup - Remove long-inactive push registrations
"""
import logging
from typing import Dict

import config

logger = logging.getLogger(__name__)


class DeviceRegistrationCleanupJob:

    def __init__(self, writer, days_old: int = None):
        self.writer = writer
        self.days_old = days_old or config.TOKEN_CLEANUP_DAYS

    def run(self) -> Dict:
        """Never raises; failures (e.g. a missing composite index) come back in the result"""
        try:
            deleted = self.writer.cleanup_inactive_registrations(self.days_old)
        except Exception as e:
            logger.error(f"❌ Device registration cleanup failed: {e}")
            return {
                'success': False,
                'deleted_count': 0,
                'message': f"Cleanup failed: {e}",
            }

        if deleted:
            logger.info(f"🧹 Deleted {deleted} device registration(s) inactive for {self.days_old}+ days")
        return {
            'success': True,
            'deleted_count': deleted,
            'message': f"Deleted {deleted} inactive device registration(s)",
        }
