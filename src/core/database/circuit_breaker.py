"""
Circuit Breaker for Database Operations
=======================================

Purpose
-------
Implements the circuit breaker pattern so that when the database becomes
unavailable, store operations fail fast with an ``UNAVAILABLE`` cause instead
of piling up behind connection timeouts.

Circuit States
--------------
**CLOSED** (Normal Operation):
- All requests pass through
- Open circuit if consecutive failures reach the threshold

**OPEN** (Fail-Fast):
- Immediately reject all requests
- Transition to HALF_OPEN after the recovery timeout

**HALF_OPEN** (Recovery Testing):
- Allow a limited number of test requests
- Close on the first success, re-open on a failure

Configuration
-------------
- CIRCUIT_BREAKER_FAILURE_THRESHOLD (default: 5)
- CIRCUIT_BREAKER_RECOVERY_TIMEOUT (seconds, default: 60)
- CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS (default: 3)

Usage Example
-------------
>>> breaker = CircuitBreaker()
>>> if not await breaker.allow_request():
...     raise CircuitBreakerOpenError("Database circuit breaker is open")
>>> try:
...     result = await database_operation()
...     await breaker.record_success()
... except OperationalError:
...     await breaker.record_failure()
...     raise
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.core.config.config import Config
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is open and requests are rejected."""

    def __init__(self, message: str = "Circuit breaker is open"):
        super().__init__(message)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerMetrics:
    """Metrics for circuit breaker monitoring."""

    state: CircuitState
    failure_count: int
    success_count: int
    consecutive_failures: int
    last_failure_time: Optional[float]
    total_requests: int
    rejected_requests: int
    half_open_test_count: int


class CircuitBreaker:
    """
    Circuit breaker for database operations.

    State is guarded by an asyncio.Lock; transitions are logged.
    """

    def __init__(
        self,
        failure_threshold: Optional[int] = None,
        recovery_timeout_seconds: Optional[float] = None,
        half_open_max_requests: Optional[int] = None,
    ) -> None:
        self._failure_threshold = (
            failure_threshold or Config.CIRCUIT_BREAKER_FAILURE_THRESHOLD
        )
        self._recovery_timeout_seconds = (
            recovery_timeout_seconds
            if recovery_timeout_seconds is not None
            else float(Config.CIRCUIT_BREAKER_RECOVERY_TIMEOUT)
        )
        self._half_open_max_requests = (
            half_open_max_requests or Config.CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS
        )

        self._state = CircuitState.CLOSED
        self._lock = asyncio.Lock()

        self._consecutive_failures = 0
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[float] = None

        self._total_requests = 0
        self._rejected_requests = 0
        self._half_open_test_count = 0

        logger.debug(
            "Circuit breaker initialized",
            extra={
                "failure_threshold": self._failure_threshold,
                "recovery_timeout_seconds": self._recovery_timeout_seconds,
                "half_open_max_requests": self._half_open_max_requests,
            },
        )

    @property
    def state(self) -> CircuitState:
        return self._state

    async def allow_request(self) -> bool:
        """
        Check if a request should be allowed through the circuit breaker.

        - CLOSED: Always allows requests
        - OPEN: Rejects requests until the recovery timeout has passed
        - HALF_OPEN: Allows a limited number of test requests
        """
        async with self._lock:
            self._total_requests += 1

            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if self._should_attempt_recovery():
                    self._transition_to(CircuitState.HALF_OPEN)
                    self._half_open_test_count = 1
                    return True
                self._rejected_requests += 1
                logger.debug(
                    "Request rejected: circuit breaker is OPEN",
                    extra={"consecutive_failures": self._consecutive_failures},
                )
                return False

            if self._half_open_test_count < self._half_open_max_requests:
                self._half_open_test_count += 1
                return True

            self._rejected_requests += 1
            return False

    def _should_attempt_recovery(self) -> bool:
        if self._last_failure_time is None:
            return True
        elapsed = time.perf_counter() - self._last_failure_time
        return elapsed >= self._recovery_timeout_seconds

    async def record_success(self) -> None:
        async with self._lock:
            self._success_count += 1
            self._consecutive_failures = 0
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)

    async def record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._consecutive_failures += 1
            self._last_failure_time = time.perf_counter()

            logger.warning(
                "Circuit breaker recorded failure",
                extra={
                    "state": self._state.value,
                    "consecutive_failures": self._consecutive_failures,
                    "failure_threshold": self._failure_threshold,
                },
            )

            if self._state == CircuitState.HALF_OPEN or (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self._failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        if self._state == new_state:
            return
        old_state = self._state
        self._state = new_state
        if new_state == CircuitState.CLOSED:
            self._consecutive_failures = 0
            self._half_open_test_count = 0

        log = logger.error if new_state == CircuitState.OPEN else logger.info
        log(
            f"Circuit breaker {old_state.value} -> {new_state.value}",
            extra={
                "old_state": old_state.value,
                "new_state": new_state.value,
                "consecutive_failures": self._consecutive_failures,
            },
        )

    def get_metrics(self) -> CircuitBreakerMetrics:
        return CircuitBreakerMetrics(
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            consecutive_failures=self._consecutive_failures,
            last_failure_time=self._last_failure_time,
            total_requests=self._total_requests,
            rejected_requests=self._rejected_requests,
            half_open_test_count=self._half_open_test_count,
        )

    async def reset(self) -> None:
        """Manually reset to CLOSED. Administrative/testing use only."""
        async with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._success_count = 0
            self._total_requests = 0
            self._rejected_requests = 0
