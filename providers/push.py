# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Push Provider - Firebase Cloud Messaging delivery with per-device results
"""
import logging
import re
import time
from typing import Dict, List, Optional, Tuple

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

import config
from models import NOTIFICATION_TYPE_REMINDER, PushErrorKind, PushResult
from utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from utils.logger import StructuredLogger

logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)

# Must match the notification channels registered by the mobile app
SOUND_CHANNELS = {
    'r1': 'lecturelet_r1_channel',
    'r2': 'lecturelet_r2_channel',
    'r3': 'lecturelet_r3_channel',
}
EXPO_TOKEN_PREFIXES = ('ExponentPushToken[', 'ExpoPushToken[')


def sound_settings(preference: Optional[str]) -> Tuple[Optional[str], str]:
    """
    Map a sound preference to (sound file, Android channel id).

    'none' is silent: no sound file and the silent channel.
    """
    base = re.sub(r'\.wav$', '', (preference or '').strip(), flags=re.IGNORECASE)
    if base in ('', 'default'):
        return 'default', 'default'
    if base == 'none':
        return None, 'default_silent'
    if base in SOUND_CHANNELS:
        return f"{base}.wav", SOUND_CHANNELS[base]
    return 'default', 'default'


def is_expo_token(token: str) -> bool:
    return token.startswith(EXPO_TOKEN_PREFIXES)


def classify_error(error: Optional[Exception]) -> PushErrorKind:
    if isinstance(error, messaging.UnregisteredError):
        return PushErrorKind.UNREGISTERED
    if isinstance(error, messaging.SenderIdMismatchError):
        return PushErrorKind.SENDER_MISMATCH
    if isinstance(error, firebase_exceptions.InvalidArgumentError):
        return PushErrorKind.INVALID_ARGUMENT
    if isinstance(error, messaging.QuotaExceededError):
        return PushErrorKind.QUOTA_EXCEEDED
    if isinstance(error, (firebase_exceptions.UnavailableError, firebase_exceptions.InternalError,
                          firebase_exceptions.DeadlineExceededError)):
        return PushErrorKind.UNAVAILABLE
    if isinstance(error, CircuitBreakerOpenError):
        return PushErrorKind.CIRCUIT_OPEN
    return PushErrorKind.UNKNOWN


class FcmPushProvider:
    """Sends one message per device through FCM sendEach"""

    def __init__(self, app=None, breaker: Optional[CircuitBreaker] = None,
                 batch_size: Optional[int] = None, dry_run: bool = False, metrics=None):
        self.app = app
        self.breaker = breaker or CircuitBreaker('fcm')
        self.batch_size = batch_size or config.PUSH_BATCH_SIZE
        self.dry_run = dry_run
        self.metrics = metrics

    def build_message(self, token: str, title: str, body: str,
                      data: Optional[Dict] = None, sound: Optional[str] = 'default') -> messaging.Message:
        sound_file, channel_id = sound_settings(sound)
        # FCM data values must be strings
        payload = {key: str(value) for key, value in (data or {}).items() if value is not None}
        payload.setdefault('type', NOTIFICATION_TYPE_REMINDER)

        return messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body),
            data=payload,
            android=messaging.AndroidConfig(
                priority='high',
                notification=messaging.AndroidNotification(sound=sound_file, channel_id=channel_id),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(aps=messaging.Aps(sound=sound_file, badge=1)),
            ),
        )

    def send(self, token: str, title: str, body: str,
             data: Optional[Dict] = None, sound: Optional[str] = 'default') -> PushResult:
        return self.send_to_devices([token], title, body, data=data, sound=sound)[0]

    def send_to_devices(self, tokens: List[str], title: str, body: str,
                        data: Optional[Dict] = None, sound: Optional[str] = 'default') -> List[PushResult]:
        """
        Send the same notification to every token.

        Returns one PushResult per token, in input order. Never raises.
        """
        results: List[Optional[PushResult]] = [None] * len(tokens)
        pending = []

        for index, raw_token in enumerate(tokens):
            token = (raw_token or '').strip()
            if not token:
                results[index] = PushResult(raw_token or '', False, error_kind=PushErrorKind.INVALID_TOKEN_FORMAT,
                                            error='Empty token')
            elif is_expo_token(token):
                logger.warning(f"Rejecting Expo push token (native FCM token required): {token[:25]}...")
                results[index] = PushResult(token, False, error_kind=PushErrorKind.INVALID_TOKEN_FORMAT,
                                            error='Expo push token not supported')
            else:
                pending.append((index, self.build_message(token, title, body, data, sound)))

        for start in range(0, len(pending), self.batch_size):
            chunk = pending[start:start + self.batch_size]
            for index, result in zip((i for i, _ in chunk), self._send_chunk([m for _, m in chunk])):
                results[index] = result

        return results

    def _send_chunk(self, batch: List[messaging.Message]) -> List[PushResult]:
        started = time.time()
        try:
            response = self.breaker.call(messaging.send_each, batch, dry_run=self.dry_run, app=self.app)
        except Exception as e:
            kind = classify_error(e)
            duration_ms = (time.time() - started) * 1000
            logger.error(f"❌ FCM batch of {len(batch)} failed ({kind.value}): {e}")
            structured_logger.log_provider_call('fcm', 'send_each', False, duration_ms, str(e))
            if self.metrics:
                self.metrics.record_provider_call('fcm', duration_ms, False)
            return [PushResult(m.token, False, error_kind=kind, error=str(e)) for m in batch]

        duration_ms = (time.time() - started) * 1000
        results = []
        for message, resp in zip(batch, response.responses):
            if resp.success:
                results.append(PushResult(message.token, True, message_id=resp.message_id))
            else:
                results.append(PushResult(
                    message.token, False,
                    error_kind=classify_error(resp.exception),
                    error=str(resp.exception) if resp.exception else 'Unknown error',
                ))

        structured_logger.log_provider_call('fcm', 'send_each', response.failure_count == 0, duration_ms)
        if self.metrics:
            self.metrics.record_provider_call('fcm', duration_ms, response.failure_count == 0)
        logger.info(f"FCM batch: {response.success_count} sent, {response.failure_count} failed")
        return results
