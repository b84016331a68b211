"""Thread-safe circuit breaker for the generation provider.

Chunk calls for one job run on several threads against the same provider
endpoint. When the endpoint is down, the breaker opens after a few
consecutive failures so the remaining chunks fail fast instead of each
waiting out its own timeout.

States:
  CLOSED    -- normal operation, calls pass through
  OPEN      -- endpoint is down, calls fail immediately
  HALF_OPEN -- cooldown expired, one trial call allowed
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3    # consecutive failures before opening
DEFAULT_COOLDOWN_SECONDS = 30    # seconds to wait before a half-open trial call


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when the circuit is open and calls are blocked."""

    def __init__(self, endpoint: str, retry_after: float):
        self.endpoint = endpoint
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker OPEN for '{endpoint}'. Retry after {retry_after:.0f}s."
        )


class CircuitBreaker:
    """Per-endpoint circuit breaker.

    Args:
        endpoint: Label used in logs and the registry (the model string).
        failure_threshold: Consecutive failures that open the circuit.
        cooldown_seconds: Time the circuit stays open before a trial call.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        endpoint: str,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.endpoint = endpoint
        self._failure_threshold = failure_threshold
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def check(self) -> None:
        """Raise CircuitBreakerOpen unless a call may proceed."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return
            elapsed = self._clock() - self._opened_at
            if elapsed >= self._cooldown_seconds:
                self._state = CircuitState.HALF_OPEN
                logger.info("Circuit %s: OPEN -> HALF_OPEN", self.endpoint)
                return
            raise CircuitBreakerOpen(self.endpoint, self._cooldown_seconds - elapsed)

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info("Circuit %s: HALF_OPEN -> CLOSED", self.endpoint)
            self._state = CircuitState.CLOSED
            self._failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            if self._state == CircuitState.HALF_OPEN:
                self._open()
                logger.warning("Circuit %s: HALF_OPEN -> OPEN (trial call failed)", self.endpoint)
            elif self._state == CircuitState.CLOSED and self._failure_count >= self._failure_threshold:
                self._open()
                logger.warning(
                    "Circuit %s: CLOSED -> OPEN (%d consecutive failures)",
                    self.endpoint, self._failure_count,
                )

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()


# One breaker per provider endpoint, shared by every chunk thread.
_breakers: dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_breaker(endpoint: str) -> CircuitBreaker:
    """Get or create the circuit breaker for a provider endpoint."""
    with _registry_lock:
        if endpoint not in _breakers:
            _breakers[endpoint] = CircuitBreaker(endpoint=endpoint)
        return _breakers[endpoint]


def reset_all() -> None:
    """Drop every registered breaker (for tests)."""
    with _registry_lock:
        _breakers.clear()


def run_with_timeout(fn: Callable[[], Any], timeout: float, endpoint: str) -> Any:
    """Run *fn* under the endpoint's breaker with a wall-clock timeout.

    The worker thread is abandoned on timeout rather than joined, so a hung
    provider call never holds up the caller.

    Raises:
        CircuitBreakerOpen: The circuit for *endpoint* is open.
        TimeoutError: *fn* exceeded *timeout* seconds.
        Exception: Anything raised by *fn*.
    """
    breaker = get_breaker(endpoint)
    breaker.check()

    executor = ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(fn)
        try:
            result = future.result(timeout=timeout)
        except FuturesTimeoutError:
            breaker.record_failure()
            logger.error("%s timed out after %ss", endpoint, timeout)
            raise TimeoutError(f"{endpoint} exceeded {timeout}s timeout")
        except Exception:
            breaker.record_failure()
            raise
        breaker.record_success()
        return result
    finally:
        executor.shutdown(wait=False)
