"""Resilience primitives guarding the connection and command path.

Features:
- ICCircuitBreaker: fail fast after repeated connection failures
- with_retry / ICRetryPolicy: bounded exponential backoff for transient errors
- ICRateLimiter: token bucket shedding excess outbound commands
- ICHealthMonitor: success/failure bookkeeping with response time averaging
- ICDeadLetterQueue: bounded, time-retained store of commands that failed to send

Every primitive takes an injectable clock so that timing behaviour can be
exercised in tests without sleeping.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, TypeVar

from .exceptions import ICCircuitOpenError, is_retryable

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# Circuit breaker defaults
CIRCUIT_BREAKER_FAILURES = 5  # Failures before the breaker opens
CIRCUIT_BREAKER_RESET_TIME = 300.0  # Seconds before a trial call is allowed
CIRCUIT_BREAKER_MONITORING_PERIOD = 60.0  # Seconds a failure stays counted

# Retry defaults
RETRY_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0  # seconds
RETRY_MAX_DELAY = 5.0  # seconds
RETRY_BACKOFF_FACTOR = 2.0

# Rate limiter defaults
RATE_LIMIT_MAX_REQUESTS = 40
RATE_LIMIT_WINDOW = 60.0  # seconds

# Health monitor
UNHEALTHY_AFTER_FAILURES = 3
RESPONSE_TIME_SMOOTHING = 0.2  # weight of the newest sample in the moving average

# Dead letter queue defaults
DLQ_MAX_SIZE = 100
DLQ_MAX_AGE = 24 * 60 * 60.0  # seconds


# ---------------------------------------------------------------------------
# Circuit breaker


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, rejecting calls
    HALF_OPEN = "half_open"  # Letting a single trial call through


@dataclass
class ICCircuitBreakerStats:
    """Snapshot of circuit breaker counters."""

    state: str
    failure_count: int
    last_failure_time: float | None
    total_calls: int
    rejected_calls: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/diagnostics."""
        return asdict(self)


class ICCircuitBreaker:
    """Circuit breaker around an async operation.

    While CLOSED, failures are counted within a sliding monitoring period.
    Reaching the failure threshold opens the breaker; every call is then
    rejected with ICCircuitOpenError until the reset timeout has elapsed,
    at which point one trial call runs in HALF_OPEN. Success closes the
    breaker, failure re-opens it.

    Example:
        breaker = ICCircuitBreaker()
        result = await breaker.execute(lambda: connect(host, port))
    """

    def __init__(
        self,
        failure_threshold: int = CIRCUIT_BREAKER_FAILURES,
        reset_timeout: float = CIRCUIT_BREAKER_RESET_TIME,
        monitoring_period: float = CIRCUIT_BREAKER_MONITORING_PERIOD,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Callable[[CircuitState, CircuitState], None] | None = None,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._monitoring_period = monitoring_period
        self._clock = clock
        self._on_state_change = on_state_change

        self._state = CircuitState.CLOSED
        self._failure_times: list[float] = []
        self._last_failure_time: float | None = None
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._total_calls = 0
        self._rejected_calls = 0

    @property
    def state(self) -> CircuitState:
        """Return the current state, promoting OPEN to HALF_OPEN when due."""
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self._reset_timeout
        ):
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    @property
    def failure_count(self) -> int:
        """Return the number of failures currently counted."""
        return len(self._failure_times)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        _LOGGER.info("Circuit breaker %s -> %s", old_state.value, new_state.value)
        if self._on_state_change:
            try:
                self._on_state_change(old_state, new_state)
            except Exception:  # noqa: BLE001 - Listener must not break the breaker
                _LOGGER.exception("Circuit breaker state listener failed")

    def _prune(self, now: float) -> None:
        cutoff = now - self._monitoring_period
        self._failure_times = [t for t in self._failure_times if t > cutoff]

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation through the breaker.

        Args:
            operation: Zero-argument callable returning an awaitable.

        Returns:
            Whatever the operation returns.

        Raises:
            ICCircuitOpenError: If the breaker is OPEN, or a HALF_OPEN trial
                is already running.
            Exception: Any error raised by the operation is re-raised after
                being recorded as a failure.
        """
        self._total_calls += 1
        state = self.state
        if state is CircuitState.OPEN or (
            state is CircuitState.HALF_OPEN and self._trial_in_flight
        ):
            self._rejected_calls += 1
            raise ICCircuitOpenError(
                "Circuit breaker is OPEN - connection attempts are being rejected"
            )

        if state is CircuitState.HALF_OPEN:
            self._trial_in_flight = True
        try:
            result = await operation()
        except Exception:
            self.record_failure()
            raise
        finally:
            self._trial_in_flight = False

        self.record_success()
        return result

    def record_success(self) -> None:
        """Record a successful call."""
        if self._state is not CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
        self._failure_times.clear()
        self._opened_at = None

    def record_failure(self) -> None:
        """Record a failed call, opening the breaker when the threshold is hit."""
        now = self._clock()
        self._last_failure_time = now

        if self._state is CircuitState.HALF_OPEN:
            self._opened_at = now
            self._transition(CircuitState.OPEN)
            return

        self._prune(now)
        self._failure_times.append(now)
        if (
            self._state is CircuitState.CLOSED
            and len(self._failure_times) >= self._failure_threshold
        ):
            self._opened_at = now
            self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        """Force the breaker back to CLOSED and forget all failures."""
        self._transition(CircuitState.CLOSED)
        self._failure_times.clear()
        self._last_failure_time = None
        self._opened_at = None
        self._trial_in_flight = False

    def get_stats(self) -> ICCircuitBreakerStats:
        """Return a snapshot of the breaker counters."""
        return ICCircuitBreakerStats(
            state=self.state.value,
            failure_count=self.failure_count,
            last_failure_time=self._last_failure_time,
            total_calls=self._total_calls,
            rejected_calls=self._rejected_calls,
        )

    def __repr__(self) -> str:
        return f"ICCircuitBreaker(state={self._state.value}, failures={self.failure_count})"


# ---------------------------------------------------------------------------
# Retry


@dataclass(frozen=True)
class ICRetryPolicy:
    """Exponential backoff settings."""

    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY
    max_delay: float = RETRY_MAX_DELAY
    backoff_factor: float = RETRY_BACKOFF_FACTOR
    retryable: Callable[[BaseException], bool] = is_retryable

    def delay_for(self, attempt: int) -> float:
        """Return the delay to wait after the given failed attempt (1-based)."""
        return min(self.base_delay * self.backoff_factor ** (attempt - 1), self.max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: ICRetryPolicy | None = None,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run operation, retrying transient failures with exponential backoff.

    Args:
        operation: Zero-argument callable returning an awaitable.
        policy: Backoff settings, defaults to 3 attempts from 1s capped at 5s.
        on_retry: Called with (attempt, error, delay) before each retry.
        sleep: Awaitable sleep used between attempts.

    Returns:
        The operation's result from the first successful attempt.

    Raises:
        Exception: The last error, once attempts are exhausted or the error
            is not retryable.
    """
    policy = policy or ICRetryPolicy()
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as err:
            if attempt >= policy.max_attempts or not policy.retryable(err):
                raise
            delay = policy.delay_for(attempt)
            if on_retry:
                on_retry(attempt, err, delay)
            await sleep(delay)
            attempt += 1


# ---------------------------------------------------------------------------
# Rate limiter


@dataclass
class ICRateLimiterStats:
    """Snapshot of rate limiter counters."""

    total_requests: int
    allowed_requests: int
    rejected_requests: int
    available_tokens: float
    max_requests: int
    window: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/diagnostics."""
        return asdict(self)


class ICRateLimiter:
    """Token bucket rate limiter.

    The bucket holds max_requests tokens and refills continuously at
    max_requests per window. Each accepted request consumes one token;
    requests arriving with an empty bucket are rejected.
    """

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window: float = RATE_LIMIT_WINDOW,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window = window
        self._clock = clock
        self._tokens = float(max_requests)
        self._last_refill = clock()
        self._allowed = 0
        self._rejected = 0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            rate = self._max_requests / self._window
            self._tokens = min(float(self._max_requests), self._tokens + elapsed * rate)
            self._last_refill = now

    def try_acquire(self) -> bool:
        """Consume a token if one is available.

        Returns:
            True if the request may proceed, False if it must be dropped.
        """
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            self._allowed += 1
            return True
        self._rejected += 1
        return False

    def reset(self) -> None:
        """Refill the bucket and zero the counters."""
        self._tokens = float(self._max_requests)
        self._last_refill = self._clock()
        self._allowed = 0
        self._rejected = 0

    def get_stats(self) -> ICRateLimiterStats:
        """Return a snapshot of the limiter counters."""
        self._refill()
        return ICRateLimiterStats(
            total_requests=self._allowed + self._rejected,
            allowed_requests=self._allowed,
            rejected_requests=self._rejected,
            available_tokens=round(self._tokens, 2),
            max_requests=self._max_requests,
            window=self._window,
        )


# ---------------------------------------------------------------------------
# Health monitor


@dataclass
class ICHealthStatus:
    """Health summary of the session."""

    is_healthy: bool = True
    last_successful_operation: float | None = None
    consecutive_failures: int = 0
    last_error: str | None = None
    average_response_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/diagnostics."""
        return asdict(self)


class ICHealthMonitor:
    """Track successes, failures and response times of connection attempts."""

    def __init__(
        self,
        unhealthy_after: int = UNHEALTHY_AFTER_FAILURES,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._unhealthy_after = unhealthy_after
        self._clock = clock
        self._status = ICHealthStatus()

    def record_success(self, response_time: float = 0.0) -> None:
        """Record a successful operation taking response_time seconds."""
        status = self._status
        status.last_successful_operation = self._clock()
        status.consecutive_failures = 0
        status.is_healthy = True
        if status.average_response_time == 0.0:
            status.average_response_time = response_time
        else:
            status.average_response_time = (
                RESPONSE_TIME_SMOOTHING * response_time
                + (1 - RESPONSE_TIME_SMOOTHING) * status.average_response_time
            )

    def record_failure(self, error: str) -> None:
        """Record a failed operation."""
        status = self._status
        status.consecutive_failures += 1
        status.last_error = error
        if status.consecutive_failures >= self._unhealthy_after:
            status.is_healthy = False

    def get_health(self) -> ICHealthStatus:
        """Return a copy of the current health status."""
        return ICHealthStatus(**asdict(self._status))

    def reset(self) -> None:
        """Forget all recorded history."""
        self._status = ICHealthStatus()


# ---------------------------------------------------------------------------
# Dead letter queue


@dataclass
class ICDeadLetter:
    """A command that could not be sent."""

    command: dict[str, Any]
    attempts: int
    error: str
    message_id: str
    timestamp: float = field(default_factory=time.time)


class ICDeadLetterQueue:
    """Bounded store of failed commands kept for a limited time.

    Entries are keyed by message ID; adding an existing ID replaces the old
    entry. When the queue is full the oldest entry is evicted.
    """

    def __init__(
        self,
        max_size: int = DLQ_MAX_SIZE,
        max_age: float = DLQ_MAX_AGE,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_size = max_size
        self._max_age = max_age
        self._clock = clock
        self._items: OrderedDict[str, ICDeadLetter] = OrderedDict()

    def add(self, command: dict[str, Any], attempts: int, error: str, message_id: str) -> None:
        """Store a failed command."""
        self._prune()
        self._items.pop(message_id, None)
        while len(self._items) >= self._max_size:
            evicted_id, _ = self._items.popitem(last=False)
            _LOGGER.debug("Dead letter queue full, evicting %s", evicted_id)
        self._items[message_id] = ICDeadLetter(
            command=command,
            attempts=attempts,
            error=error,
            message_id=message_id,
            timestamp=self._clock(),
        )
        _LOGGER.debug(
            "Added %s to dead letter queue (%d attempts): %s", message_id, attempts, error
        )

    def _prune(self) -> None:
        cutoff = self._clock() - self._max_age
        for message_id in [m for m, item in self._items.items() if item.timestamp < cutoff]:
            del self._items[message_id]

    def items(self) -> list[ICDeadLetter]:
        """Return every non-expired entry, oldest first."""
        self._prune()
        return list(self._items.values())

    def retry_candidates(self, max_attempts: int = RETRY_MAX_ATTEMPTS) -> list[ICDeadLetter]:
        """Return entries that have been tried fewer than max_attempts times."""
        return [item for item in self.items() if item.attempts < max_attempts]

    def remove(self, message_id: str) -> bool:
        """Remove an entry, returning True if it existed."""
        return self._items.pop(message_id, None) is not None

    def clear(self) -> None:
        """Drop every entry."""
        self._items.clear()

    def __len__(self) -> int:
        self._prune()
        return len(self._items)
