# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Circuit Breaker - Fail fast when a push or SMS provider keeps failing
"""
import logging
import time
from enum import Enum
from threading import Lock
from typing import Callable, TypeVar, Any, Optional

import config

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CircuitState(Enum):
    """Possible states of the circuit breaker"""
    CLOSED = "closed"        # Normal operation, calls allowed
    OPEN = "open"            # Failure threshold exceeded, calls blocked
    HALF_OPEN = "half_open"  # Probing whether the provider recovered


class CircuitBreakerOpenError(Exception):
    """Raised when a call is attempted while the circuit is open"""
    pass


class CircuitBreaker:
    """
    Guards calls to an external provider.

    CLOSED passes calls through and counts consecutive failures. Once
    failure_threshold is reached the circuit OPENs and calls fail fast with
    CircuitBreakerOpenError. After recovery_timeout seconds the next call is
    let through in HALF_OPEN; success_threshold successes close the circuit,
    a single failure reopens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[float] = None,
        success_threshold: int = 2,
        expected_exception: type = Exception,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.failure_threshold = failure_threshold or config.CIRCUIT_BREAKER_FAIL_MAX
        self.recovery_timeout = recovery_timeout if recovery_timeout is not None else config.CIRCUIT_BREAKER_RESET_TIMEOUT
        self.success_threshold = success_threshold
        self.expected_exception = expected_exception
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[float] = None
        self._lock = Lock()

        # Statistics
        self._total_calls = 0
        self._total_failures = 0
        self._rejected_calls = 0

    @property
    def state(self) -> str:
        """Current state name"""
        with self._lock:
            self._update_state()
            return self._state.value

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Call func through the breaker

        Raises:
            CircuitBreakerOpenError: If the circuit is open
            Exception: Whatever func raises
        """
        with self._lock:
            self._update_state()
            if self._state == CircuitState.OPEN:
                self._rejected_calls += 1
                raise CircuitBreakerOpenError(f"{self.name}: circuit breaker is open")
            self._total_calls += 1

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            with self._lock:
                self._on_failure()
            raise

        with self._lock:
            self._on_success()
        return result

    def record_failure(self):
        """Count a failure reported in-band (e.g. an error status in a 200 response)"""
        with self._lock:
            self._on_failure()

    def _update_state(self):
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.recovery_timeout:
                logger.info(f"{self.name}: OPEN -> HALF_OPEN")
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0

    def _on_success(self):
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                logger.info(f"{self.name}: HALF_OPEN -> CLOSED")
                self._state = CircuitState.CLOSED
                self._failure_count = 0
        else:
            self._failure_count = 0

    def _on_failure(self):
        self._total_failures += 1
        self._failure_count += 1

        if self._state == CircuitState.HALF_OPEN:
            logger.warning(f"{self.name}: failure while HALF_OPEN, reopening circuit")
            self._open()
        elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            logger.error(f"{self.name}: {self._failure_count} consecutive failures, opening circuit")
            self._open()

    def _open(self):
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._success_count = 0

    def reset(self):
        """Manually close the circuit"""
        with self._lock:
            logger.info(f"{self.name}: manual reset")
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None

    def get_statistics(self) -> dict:
        """Counters for status reporting"""
        with self._lock:
            self._update_state()
            return {
                'name': self.name,
                'state': self._state.value,
                'total_calls': self._total_calls,
                'total_failures': self._total_failures,
                'rejected_calls': self._rejected_calls,
                'consecutive_failures': self._failure_count,
            }
