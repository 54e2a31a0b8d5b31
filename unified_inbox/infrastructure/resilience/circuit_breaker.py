"""
Circuit breaker for calls to unreliable upstream APIs.

Each channel client owns one breaker. The breaker counts outcomes in a rolling
time window, opens once enough calls have failed, rejects calls while open and
lets a single probe through after the reset timeout.

State changes only go through ``transition()``, a pure function of the state
table; notifications to observers happen after the state has changed and cannot
influence it.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, TypeVar

from unified_inbox.config import settings
from unified_inbox.infrastructure.observability.logging import get_logger, log_breaker_event

logger = get_logger(__name__)

T = TypeVar("T")

# Lifetime failure rate above which a closed breaker reports itself degraded
DEGRADED_FAILURE_RATE = 25.0


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class BreakerSignal(str, Enum):
    """Inputs to the state table."""

    TRIP = "trip"
    RESET_TIMEOUT_ELAPSED = "reset_timeout_elapsed"
    PROBE_SUCCEEDED = "probe_succeeded"
    PROBE_FAILED = "probe_failed"
    FORCE_OPEN = "force_open"
    FORCE_CLOSE = "force_close"


class BreakerEvent(str, Enum):
    """Notifications emitted to observers."""

    OPEN = "open"
    HALF_OPEN = "half_open"
    CLOSE = "close"
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    REJECT = "reject"


_TRANSITIONS: dict[tuple[BreakerState, BreakerSignal], BreakerState] = {
    (BreakerState.CLOSED, BreakerSignal.TRIP): BreakerState.OPEN,
    (BreakerState.OPEN, BreakerSignal.RESET_TIMEOUT_ELAPSED): BreakerState.HALF_OPEN,
    (BreakerState.HALF_OPEN, BreakerSignal.PROBE_SUCCEEDED): BreakerState.CLOSED,
    (BreakerState.HALF_OPEN, BreakerSignal.PROBE_FAILED): BreakerState.OPEN,
}


def transition(state: BreakerState, signal: BreakerSignal) -> BreakerState:
    """
    Apply one signal to a breaker state.

    Forced signals always win. Any (state, signal) pair missing from the table
    leaves the state unchanged.
    """
    if signal is BreakerSignal.FORCE_OPEN:
        return BreakerState.OPEN
    if signal is BreakerSignal.FORCE_CLOSE:
        return BreakerState.CLOSED
    return _TRANSITIONS.get((state, signal), state)


class UpstreamError(Exception):
    """Transient upstream failure: network error, non-2xx status or timeout."""


class CircuitTimeoutError(UpstreamError):
    """The wrapped operation exceeded the breaker's per-call timeout."""

    def __init__(self, breaker_name: str, timeout: float):
        super().__init__(f"Operation timed out after {timeout}s ({breaker_name})")
        self.breaker_name = breaker_name
        self.timeout = timeout


class CircuitOpenError(Exception):
    """Call rejected without being attempted because the breaker is open."""

    def __init__(self, breaker_name: str):
        super().__init__("Service temporarily unavailable - Circuit breaker is open")
        self.breaker_name = breaker_name


class BreakerObserver(Protocol):
    def on_event(self, breaker_name: str, event: BreakerEvent, details: dict[str, Any]) -> None:
        ...


class LoggingBreakerObserver:
    """Default observer: forwards every breaker event to structured logs."""

    def on_event(self, breaker_name: str, event: BreakerEvent, details: dict[str, Any]) -> None:
        log_breaker_event(breaker_name, event.value, **details)


class CircuitBreaker:
    """
    Per-upstream circuit breaker.

    Args:
        name: Breaker name used in logs (usually the channel)
        timeout: Per-call timeout in seconds
        error_threshold_percentage: Failure rate that opens the breaker
        reset_timeout: Seconds to stay open before admitting a probe
        volume_threshold: Minimum calls in the window before the rate is evaluated
        rolling_window: Seconds of outcomes considered for the thresholds
        observer: Receives transition and outcome notifications
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        name: str,
        *,
        timeout: float | None = None,
        error_threshold_percentage: float | None = None,
        reset_timeout: float | None = None,
        volume_threshold: int | None = None,
        rolling_window: float | None = None,
        observer: BreakerObserver | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        defaults = settings.get_breaker_config()
        self.name = name
        self.timeout = timeout if timeout is not None else defaults["timeout"]
        self.error_threshold_percentage = (
            error_threshold_percentage
            if error_threshold_percentage is not None
            else defaults["error_threshold_percentage"]
        )
        self.reset_timeout = reset_timeout if reset_timeout is not None else defaults["reset_timeout"]
        self.volume_threshold = (
            volume_threshold if volume_threshold is not None else defaults["volume_threshold"]
        )
        self.rolling_window = (
            rolling_window if rolling_window is not None else defaults["rolling_window"]
        )
        self._observer = observer or LoggingBreakerObserver()
        self._clock = clock

        self._state = BreakerState.CLOSED
        self._last_opened_at: float | None = None
        self._probe_in_flight = False
        # (monotonic timestamp, succeeded)
        self._window: deque[tuple[float, bool]] = deque()
        self._stats = {
            "total_requests": 0,
            "total_failures": 0,
            "total_successes": 0,
            "total_timeouts": 0,
            "total_rejects": 0,
            "circuit_open_count": 0,
            "last_open_time": None,
            "last_close_time": None,
        }

    # ------------------------------------------------------------------
    # State inspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def last_opened_at(self) -> float | None:
        return self._last_opened_at

    def is_open(self) -> bool:
        return self._state is BreakerState.OPEN

    def is_half_open(self) -> bool:
        return self._state is BreakerState.HALF_OPEN

    def is_closed(self) -> bool:
        return self._state is BreakerState.CLOSED

    def window_counts(self) -> tuple[int, int]:
        """(calls, failures) currently inside the rolling window."""
        self._prune_window(self._clock())
        failures = sum(1 for _, succeeded in self._window if not succeeded)
        return len(self._window), failures

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` under breaker protection.

        A call that exceeds ``timeout`` is cancelled through ``asyncio.wait_for``
        rather than left running with its result discarded, so the upstream
        request and its connection are released at the timeout.

        Raises:
            CircuitOpenError: Breaker is open (or a probe is already in flight);
                the operation was not invoked and nothing was counted
            CircuitTimeoutError: Operation exceeded the per-call timeout
            Exception: Whatever the operation raised, after it was counted
        """
        now = self._clock()

        if self._state is BreakerState.OPEN:
            if now < self._last_opened_at + self.reset_timeout:
                self._reject()
            self._apply(BreakerSignal.RESET_TIMEOUT_ELAPSED, now)

        is_probe = False
        if self._state is BreakerState.HALF_OPEN:
            if self._probe_in_flight:
                self._reject()
            self._probe_in_flight = True
            is_probe = True

        try:
            result = await asyncio.wait_for(operation(), timeout=self.timeout)
        except TimeoutError:
            self._record_failure(is_probe, timed_out=True)
            raise CircuitTimeoutError(self.name, self.timeout) from None
        except Exception as e:
            self._record_failure(is_probe, error=e)
            raise
        finally:
            if is_probe:
                self._probe_in_flight = False

        self._record_success(is_probe)
        return result

    def _reject(self) -> None:
        self._stats["total_rejects"] += 1
        self._notify(BreakerEvent.REJECT)
        raise CircuitOpenError(self.name)

    def _record_success(self, is_probe: bool) -> None:
        now = self._clock()
        self._stats["total_requests"] += 1
        self._stats["total_successes"] += 1
        self._window.append((now, True))
        self._notify(BreakerEvent.SUCCESS)

        if is_probe and self._state is BreakerState.HALF_OPEN:
            self._apply(BreakerSignal.PROBE_SUCCEEDED, now)
        elif self._state is BreakerState.CLOSED:
            self._evaluate_thresholds(now)

    def _record_failure(
        self, is_probe: bool, timed_out: bool = False, error: Exception | None = None
    ) -> None:
        now = self._clock()
        self._stats["total_requests"] += 1
        self._stats["total_failures"] += 1
        self._window.append((now, False))

        if timed_out:
            self._stats["total_timeouts"] += 1
            self._notify(BreakerEvent.TIMEOUT, timeout=self.timeout)
        else:
            self._notify(BreakerEvent.FAILURE, error=str(error), error_type=type(error).__name__)

        if is_probe and self._state is BreakerState.HALF_OPEN:
            self._apply(BreakerSignal.PROBE_FAILED, now)
        elif self._state is BreakerState.CLOSED:
            self._evaluate_thresholds(now)

    def _evaluate_thresholds(self, now: float) -> None:
        self._prune_window(now)
        total = len(self._window)
        if total < self.volume_threshold:
            return

        failures = sum(1 for _, succeeded in self._window if not succeeded)
        failure_rate = failures / total * 100
        if failure_rate >= self.error_threshold_percentage:
            self._apply(BreakerSignal.TRIP, now, calls=total, failures=failures)

    def _prune_window(self, now: float) -> None:
        cutoff = now - self.rolling_window
        while self._window and self._window[0][0] <= cutoff:
            self._window.popleft()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _apply(self, signal: BreakerSignal, now: float, **details: Any) -> None:
        previous = self._state
        self._state = transition(previous, signal)
        if self._state is previous:
            return

        if self._state is BreakerState.OPEN:
            self._last_opened_at = now
            self._stats["circuit_open_count"] += 1
            self._stats["last_open_time"] = datetime.now(UTC)
            self._notify(BreakerEvent.OPEN, previous=previous.value, **details)
        elif self._state is BreakerState.HALF_OPEN:
            self._notify(BreakerEvent.HALF_OPEN, previous=previous.value)
        else:
            self._window.clear()
            self._stats["last_close_time"] = datetime.now(UTC)
            self._notify(BreakerEvent.CLOSE, previous=previous.value)

    def _notify(self, event: BreakerEvent, **details: Any) -> None:
        details.setdefault("state", self._state.value)
        try:
            self._observer.on_event(self.name, event, details)
        except Exception as e:
            logger.warning(
                "Circuit breaker observer failed",
                breaker=self.name,
                breaker_event=event.value,
                error=str(e),
            )

    # ------------------------------------------------------------------
    # Manual controls
    # ------------------------------------------------------------------

    def force_open(self) -> None:
        """Open the breaker now; the reset timer starts from this moment."""
        now = self._clock()
        if self._state is BreakerState.OPEN:
            self._last_opened_at = now
        else:
            self._apply(BreakerSignal.FORCE_OPEN, now, manual=True)
        logger.warning("Circuit breaker manually opened", breaker=self.name)

    def force_close(self) -> None:
        """Close the breaker now and clear the rolling window."""
        self._apply(BreakerSignal.FORCE_CLOSE, self._clock(), manual=True)
        self._window.clear()
        logger.info("Circuit breaker manually closed", breaker=self.name)

    def reset(self) -> None:
        """Close the breaker and clear rolling counters and any pending probe."""
        self.force_close()
        self._probe_in_flight = False
        self._last_opened_at = None
        logger.info("Circuit breaker manually reset", breaker=self.name)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        return dict(self._stats)

    def get_health_status(self) -> dict[str, Any]:
        """
        Summarise breaker health for monitoring.

        Returns:
            dict: status (healthy/degraded/unhealthy), circuit state, stats and options
        """
        status = "healthy"
        if self._state is BreakerState.OPEN:
            status = "unhealthy"
        elif self._state is BreakerState.HALF_OPEN:
            status = "degraded"
        elif self._stats["total_requests"] > 0:
            failure_rate = self._stats["total_failures"] / self._stats["total_requests"] * 100
            if failure_rate > DEGRADED_FAILURE_RATE:
                status = "degraded"

        return {
            "name": self.name,
            "status": status,
            "circuit": self._state.value,
            "stats": self.get_stats(),
            "options": {
                "timeout": self.timeout,
                "error_threshold_percentage": self.error_threshold_percentage,
                "reset_timeout": self.reset_timeout,
                "volume_threshold": self.volume_threshold,
                "rolling_window": self.rolling_window,
            },
        }
