# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Environment-based configuration for the class reminder worker
"""
import os

# Environment Detection
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'production')
DEBUG = ENVIRONMENT == 'development'

# Local time zone used for weekday names, calendar days and dedup keys
LOCAL_TIMEZONE = os.environ.get('LOCAL_TIMEZONE', 'Africa/Accra')

# Firebase (Firestore + Cloud Messaging)
FIREBASE_CREDENTIALS = os.environ.get('FIREBASE_CREDENTIALS', '')
FIREBASE_PROJECT_ID = os.environ.get('FIREBASE_PROJECT_ID', '')

# Moolre SMS gateway
MOOLRE_API_URL = os.environ.get('MOOLRE_API_URL', 'https://api.moolre.com/open/sms/send')
MOOLRE_API_KEY = os.environ.get('MOOLRE_API_KEY', '')
MOOLRE_SENDER_ID = os.environ.get('MOOLRE_SENDER_ID', 'LectureLet')
SMS_REQUIRED = os.environ.get('SMS_REQUIRED', 'False').lower() == 'true'
SMS_TIMEOUT_SEC = int(os.environ.get('SMS_TIMEOUT_SEC', 30))

# Job Intervals
REMINDER_INTERVAL_MIN = int(os.environ.get('REMINDER_INTERVAL_MIN', 5))
REMINDER_STARTUP_DELAY_SEC = int(os.environ.get('REMINDER_STARTUP_DELAY_SEC', 30))
REVERT_INTERVAL_MIN = int(os.environ.get('REVERT_INTERVAL_MIN', 60))
TOKEN_CLEANUP_INTERVAL_HOURS = int(os.environ.get('TOKEN_CLEANUP_INTERVAL_HOURS', 24))
TOKEN_CLEANUP_DAYS = int(os.environ.get('TOKEN_CLEANUP_DAYS', 30))
SCHEDULER_POLL_SEC = float(os.environ.get('SCHEDULER_POLL_SEC', 1))

# Reminder / SMS policy
DEFAULT_REMINDER_MINUTES = int(os.environ.get('DEFAULT_REMINDER_MINUTES', 15))
WEEKLY_SMS_LIMIT = int(os.environ.get('WEEKLY_SMS_LIMIT', 5))
TEMPORARY_EDIT_HOURS = int(os.environ.get('TEMPORARY_EDIT_HOURS', 24))

# Notification timing windows (minutes). Tuned against a 5 minute tick; not env-overridable.
RECENT_START_TOLERANCE_MIN = 30
REMINDER_WINDOW_MIN = 5
IMMINENT_CLASS_WINDOW_MIN = 10
URGENT_CHANGE_WINDOW_MIN = 30
OCCURRENCE_SCAN_DAYS = 7
SMS_WINDOW_DAYS = 7
SMS_MAX_LENGTH = 160

# Firestore allows 500 operations per batch; FCM sendEach takes up to 500 messages
STORE_BATCH_LIMIT = 500
PUSH_BATCH_SIZE = 500

# Circuit Breaker Settings
CIRCUIT_BREAKER_FAIL_MAX = int(os.environ.get('CIRCUIT_BREAKER_FAIL_MAX', 5))
CIRCUIT_BREAKER_RESET_TIMEOUT = int(os.environ.get('CIRCUIT_BREAKER_RESET_TIMEOUT', 60))

# Retry Settings
MAX_RETRIES = int(os.environ.get('MAX_RETRIES', 3))
BASE_DELAY = float(os.environ.get('BASE_DELAY', 1.0))

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
STRUCTURED_LOGGING = os.environ.get('STRUCTURED_LOGGING', 'True').lower() == 'true'

# Development Settings
if DEBUG:
    LOG_LEVEL = 'DEBUG'
    STRUCTURED_LOGGING = False
    REVERT_INTERVAL_MIN = 5  # Faster revert checks for development
