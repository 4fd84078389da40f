# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
SMS Provider - Moolre HTTP SMS gateway
"""
import logging
import re
import time
from typing import Dict, Optional

import requests

import config
from models import SmsResult
from utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from utils.formatting import clean_phone_number
from utils.logger import StructuredLogger

logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)


class ProviderConfigurationError(Exception):
    """Raised when a provider is used without the settings it needs"""
    pass


def is_success_response(data: Dict) -> bool:
    """Moolre reports success as status 1, code SMS01 or message 'Success'"""
    return str(data.get('status')) == '1' or data.get('code') == 'SMS01' or data.get('message') == 'Success'


class MoolreSmsProvider:
    """
    Sends single SMS messages through Moolre.

    Without an API key the provider stays usable but every send returns a
    "not configured" result, so urgent changes still go out by push and in-app.
    """

    def __init__(self, api_key: Optional[str] = None, sender_id: Optional[str] = None,
                 api_url: Optional[str] = None, timeout: Optional[int] = None,
                 session: Optional[requests.Session] = None,
                 breaker: Optional[CircuitBreaker] = None, metrics=None, required: bool = False):
        raw_key = config.MOOLRE_API_KEY if api_key is None else api_key
        self.api_key = re.sub(r'\s', '', raw_key or '')
        self.sender_id = (sender_id or config.MOOLRE_SENDER_ID).strip()
        self.api_url = api_url or config.MOOLRE_API_URL
        self.timeout = timeout or config.SMS_TIMEOUT_SEC
        self.session = session or requests.Session()
        self.breaker = breaker or CircuitBreaker('moolre_sms', expected_exception=requests.exceptions.RequestException)
        self.metrics = metrics

        if not self.api_key and required:
            raise ProviderConfigurationError("MOOLRE_API_KEY is required to send SMS")
        if not self.api_key:
            logger.warning("⚠️ MOOLRE_API_KEY not set - SMS delivery disabled")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def send(self, phone_number: str, message: str) -> SmsResult:
        """Send one SMS; never raises"""
        if not self.is_configured:
            return SmsResult(ok=False, provider_message='SMS service not configured', configured=False)

        recipient = clean_phone_number(phone_number)
        if not recipient:
            return SmsResult(ok=False, provider_message='Invalid phone number')

        payload = {
            'type': 1,
            'senderid': self.sender_id,
            'messages': [{'recipient': recipient, 'message': message}],
        }

        logger.info(f"📡 Sending SMS to {recipient}...")
        started = time.time()
        try:
            data = self.breaker.call(self._post, payload)
        except CircuitBreakerOpenError as e:
            return self._failed(recipient, str(e), started)
        except requests.exceptions.RequestException as e:
            return self._failed(recipient, f"SMS request failed: {e}", started)
        except ValueError as e:
            return self._failed(recipient, f"Invalid SMS gateway response: {e}", started)

        if is_success_response(data):
            self._record(True, started)
            return SmsResult(ok=True, provider_message=data.get('message') or 'SMS sent successfully',
                             phone_number=recipient)

        error = data.get('message') or data.get('code') or 'Authentication Error'
        return self._failed(recipient, error, started)

    def _post(self, payload: Dict) -> Dict:
        response = self.session.post(
            self.api_url,
            json=payload,
            headers={'Content-Type': 'application/json', 'X-API-VASKEY': self.api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def _failed(self, recipient: str, error: str, started: float) -> SmsResult:
        logger.error(f"❌ SMS sending failed: {error}")
        self._record(False, started, error)
        return SmsResult(ok=False, provider_message=error, phone_number=recipient)

    def _record(self, success: bool, started: float, error: Optional[str] = None):
        duration_ms = (time.time() - started) * 1000
        structured_logger.log_provider_call('moolre_sms', 'send', success, duration_ms, error)
        if self.metrics:
            self.metrics.record_provider_call('moolre_sms', duration_ms, success)
