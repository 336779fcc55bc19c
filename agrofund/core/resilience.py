"""
Fault-tolerance helpers for calls into the data store.

1. **Circuit breaker** — after ``failure_threshold`` consecutive connection
   failures the breaker opens and store calls fail fast for
   ``recovery_timeout`` seconds; one probe call is then let through
   (HALF_OPEN) and either closes the circuit or re-opens it.

2. **Retry with backoff** — retries transient failures with a growing delay.
   Used for the startup connection loop and, with a single fixed-delay retry,
   for realtime list fetches.
"""

import asyncio
import functools
import logging
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from sqlalchemy.exc import InterfaceError, OperationalError

from agrofund.core.config import settings

logger = logging.getLogger(__name__)

# Lost or refused connections; the driver errors arrive wrapped by SQLAlchemy.
TRANSIENT_ERRORS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    OSError,
    TimeoutError,
    OperationalError,
    InterfaceError,
)


# ────────────────────────────────────────────────────────────────────────────
# Circuit Breaker
# ────────────────────────────────────────────────────────────────────────────


class CircuitState(str, Enum):
    """Possible states of a circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker '{name}' is OPEN — failing fast. Retry after {retry_after:.1f}s."
        )


class CircuitBreaker:
    """
    Async circuit breaker.

    Only exceptions listed in ``expected_exceptions`` count as failures;
    anything else (integrity errors, business rejections) passes through
    without touching the breaker.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        expected_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exceptions = expected_exceptions

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float = 0.0
        self._success_count = 0

    @property
    def state(self) -> CircuitState:
        """Current state; an OPEN breaker turns HALF_OPEN once the timeout elapses."""
        if self._state == CircuitState.OPEN:
            elapsed = time.monotonic() - self._last_failure_time
            if elapsed >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info("Circuit '%s' → HALF_OPEN after %.1fs", self.name, elapsed)
        return self._state

    def _record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info(
                "Circuit '%s' → CLOSED (probe succeeded after %d failures)",
                self.name,
                self._failure_count,
            )
        self._failure_count = 0
        self._success_count += 1
        self._state = CircuitState.CLOSED

    def _record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.error(
                "Circuit '%s' → OPEN after %d failures; fast-failing for %.1fs",
                self.name,
                self._failure_count,
                self.recovery_timeout,
            )
        else:
            logger.warning(
                "Circuit '%s' failure #%d/%d",
                self.name,
                self._failure_count,
                self.failure_threshold,
            )

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """
        Await ``func`` through the breaker.

        Raises :class:`CircuitBreakerError` if the circuit is OPEN.
        """
        if self.state == CircuitState.OPEN:
            retry_after = self.recovery_timeout - (time.monotonic() - self._last_failure_time)
            raise CircuitBreakerError(self.name, max(retry_after, 0))

        try:
            result = await func(*args, **kwargs)
        except self.expected_exceptions:
            self._record_failure()
            raise
        self._record_success()
        return result

    def reset(self) -> None:
        """Force the breaker CLOSED and forget recorded failures."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0

    def get_status(self) -> dict:
        """Snapshot for the health endpoint."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "success_count": self._success_count,
            "recovery_timeout_s": self.recovery_timeout,
        }


db_circuit_breaker = CircuitBreaker(
    name="database",
    failure_threshold=settings.CB_FAILURE_THRESHOLD,
    recovery_timeout=settings.CB_RECOVERY_TIMEOUT,
    expected_exceptions=TRANSIENT_ERRORS,
)


# ────────────────────────────────────────────────────────────────────────────
# Retry with backoff
# ────────────────────────────────────────────────────────────────────────────


async def retry_async(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    backoff: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = TRANSIENT_ERRORS,
    **kwargs: Any,
) -> Any:
    """
    Await ``func(*args, **kwargs)``, retrying retryable failures.

    ``backoff=1.0`` with ``jitter=False`` gives a fixed delay between attempts.
    Non-retryable exceptions propagate immediately.
    """
    last_exception: Optional[Exception] = None
    delay = base_delay
    name = getattr(func, "__qualname__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as exc:
            last_exception = exc
            if attempt >= max_retries:
                logger.error(
                    "All %d retries exhausted for %s — %s: %s",
                    max_retries,
                    name,
                    type(exc).__name__,
                    exc,
                )
                break
            actual_delay = min(delay, max_delay)
            if jitter:
                actual_delay += random.uniform(0, actual_delay * 0.5)
            logger.warning(
                "Retry %d/%d for %s after %.2fs — %s: %s",
                attempt + 1,
                max_retries,
                name,
                actual_delay,
                type(exc).__name__,
                exc,
            )
            await asyncio.sleep(actual_delay)
            delay *= backoff

    raise last_exception  # type: ignore[misc]


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = TRANSIENT_ERRORS,
) -> Callable:
    """
    Decorator form of :func:`retry_async` with exponential backoff.

    Example::

        @retry_with_backoff(max_retries=5, base_delay=2.0)
        async def connect():
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await retry_async(
                func,
                *args,
                max_retries=max_retries,
                base_delay=base_delay,
                max_delay=max_delay,
                jitter=jitter,
                retryable_exceptions=retryable_exceptions,
                **kwargs,
            )

        return wrapper

    return decorator
