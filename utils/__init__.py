# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Shared helpers for the reminder worker
"""
from utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from utils.logger import StructuredLogger
from utils.retry import retry_with_backoff

__all__ = [
    'CircuitBreaker',
    'CircuitBreakerOpenError',
    'StructuredLogger',
    'retry_with_backoff',
]
