import asyncio

import pytest

from unified_inbox.infrastructure.resilience.circuit_breaker import (
    BreakerEvent,
    BreakerSignal,
    BreakerState,
    CircuitBreaker,
    CircuitOpenError,
    CircuitTimeoutError,
    UpstreamError,
    transition,
)


class RecordingObserver:
    def __init__(self):
        self.events = []

    def on_event(self, breaker_name, event, details):
        self.events.append((event, details))

    def names(self):
        return [event for event, _ in self.events]


class ExplodingObserver:
    def on_event(self, breaker_name, event, details):
        raise RuntimeError("observer is broken")


def make_breaker(clock, observer=None, **overrides):
    options = {
        "timeout": 1.0,
        "error_threshold_percentage": 50,
        "reset_timeout": 30,
        "volume_threshold": 5,
        "rolling_window": 10,
    }
    options.update(overrides)
    return CircuitBreaker("test", observer=observer or RecordingObserver(), clock=clock, **options)


async def succeed():
    return "ok"


async def fail():
    raise UpstreamError("upstream is down")


async def run(breaker, pattern):
    """Run a pattern like "SSFFF" through the breaker, swallowing the failures."""
    for outcome in pattern:
        if outcome == "S":
            await breaker.execute(succeed)
        else:
            with pytest.raises(UpstreamError):
                await breaker.execute(fail)


@pytest.mark.parametrize(
    "state, signal, expected",
    [
        (BreakerState.CLOSED, BreakerSignal.TRIP, BreakerState.OPEN),
        (BreakerState.OPEN, BreakerSignal.RESET_TIMEOUT_ELAPSED, BreakerState.HALF_OPEN),
        (BreakerState.HALF_OPEN, BreakerSignal.PROBE_SUCCEEDED, BreakerState.CLOSED),
        (BreakerState.HALF_OPEN, BreakerSignal.PROBE_FAILED, BreakerState.OPEN),
        (BreakerState.CLOSED, BreakerSignal.FORCE_OPEN, BreakerState.OPEN),
        (BreakerState.HALF_OPEN, BreakerSignal.FORCE_OPEN, BreakerState.OPEN),
        (BreakerState.OPEN, BreakerSignal.FORCE_CLOSE, BreakerState.CLOSED),
        # Pairs outside the table leave the state alone
        (BreakerState.OPEN, BreakerSignal.TRIP, BreakerState.OPEN),
        (BreakerState.CLOSED, BreakerSignal.PROBE_SUCCEEDED, BreakerState.CLOSED),
        (BreakerState.CLOSED, BreakerSignal.RESET_TIMEOUT_ELAPSED, BreakerState.CLOSED),
    ],
)
def test_transition_table(state, signal, expected):
    assert transition(state, signal) is expected


@pytest.mark.asyncio
@pytest.mark.parametrize("pattern", ["SSFFF", "FFFSS", "FSFSF"])
async def test_trips_after_volume_threshold_with_majority_failures(clock, pattern):
    breaker = make_breaker(clock)

    await run(breaker, pattern)

    assert breaker.is_open()
    assert breaker.window_counts() == (5, 3)


@pytest.mark.asyncio
async def test_open_breaker_rejects_without_invoking_operation(clock):
    breaker = make_breaker(clock)
    await run(breaker, "FFFSS")
    invoked = []

    async def operation():
        invoked.append(True)
        return "ok"

    with pytest.raises(CircuitOpenError) as exc_info:
        await breaker.execute(operation)

    assert invoked == []
    assert "Circuit breaker is open" in str(exc_info.value)


@pytest.mark.asyncio
async def test_stays_closed_below_volume_threshold(clock):
    breaker = make_breaker(clock)

    await run(breaker, "FFFF")

    assert breaker.is_closed()
    assert breaker.window_counts() == (4, 4)


@pytest.mark.asyncio
async def test_stays_closed_below_error_threshold(clock):
    breaker = make_breaker(clock)

    await run(breaker, "FFSSS")

    assert breaker.is_closed()


@pytest.mark.asyncio
async def test_rejects_are_not_counted_as_calls(clock):
    breaker = make_breaker(clock)
    await run(breaker, "SSFFF")

    for _ in range(3):
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)

    stats = breaker.get_stats()
    assert breaker.window_counts() == (5, 3)
    assert stats["total_requests"] == 5
    assert stats["total_rejects"] == 3


@pytest.mark.asyncio
async def test_rolling_window_drops_old_outcomes(clock):
    breaker = make_breaker(clock)
    await run(breaker, "FFFF")

    clock.advance(11)
    await run(breaker, "F")

    assert breaker.is_closed()
    assert breaker.window_counts() == (1, 1)


@pytest.mark.asyncio
async def test_rejects_until_reset_timeout_elapses(clock):
    breaker = make_breaker(clock)
    await run(breaker, "FFFFF")
    opened_at = breaker.last_opened_at

    clock.advance(29.9)
    with pytest.raises(CircuitOpenError):
        await breaker.execute(succeed)

    assert breaker.is_open()
    assert breaker.last_opened_at == opened_at


@pytest.mark.asyncio
async def test_successful_probe_closes_and_clears_counters(clock):
    observer = RecordingObserver()
    breaker = make_breaker(clock, observer=observer)
    await run(breaker, "FFFFF")

    clock.advance(30)
    result = await breaker.execute(succeed)

    assert result == "ok"
    assert breaker.is_closed()
    assert breaker.window_counts() == (0, 0)
    assert observer.names()[-3:] == [BreakerEvent.HALF_OPEN, BreakerEvent.SUCCESS, BreakerEvent.CLOSE]


@pytest.mark.asyncio
async def test_failed_probe_reopens_and_restarts_timer(clock):
    breaker = make_breaker(clock)
    await run(breaker, "FFFFF")

    clock.advance(30)
    with pytest.raises(UpstreamError):
        await breaker.execute(fail)

    assert breaker.is_open()
    assert breaker.last_opened_at == clock.now

    clock.advance(20)
    with pytest.raises(CircuitOpenError):
        await breaker.execute(succeed)

    clock.advance(10)
    assert await breaker.execute(succeed) == "ok"
    assert breaker.is_closed()


@pytest.mark.asyncio
async def test_half_open_admits_a_single_probe(clock):
    breaker = make_breaker(clock)
    await run(breaker, "FFFFF")
    clock.advance(30)

    release = asyncio.Event()

    async def slow_probe():
        await release.wait()
        return "probe"

    probe = asyncio.create_task(breaker.execute(slow_probe))
    await asyncio.sleep(0)
    assert breaker.is_half_open()

    with pytest.raises(CircuitOpenError):
        await breaker.execute(succeed)

    release.set()
    assert await probe == "probe"
    assert breaker.is_closed()


@pytest.mark.asyncio
async def test_timeout_counts_as_failure(clock):
    observer = RecordingObserver()
    breaker = make_breaker(clock, observer=observer, timeout=0.1)

    async def hangs():
        await asyncio.sleep(0.5)
        return "late"

    with pytest.raises(CircuitTimeoutError) as exc_info:
        await breaker.execute(hangs)

    assert isinstance(exc_info.value, UpstreamError)
    assert exc_info.value.timeout == 0.1
    assert breaker.window_counts() == (1, 1)
    assert breaker.get_stats()["total_timeouts"] == 1
    assert BreakerEvent.TIMEOUT in observer.names()


@pytest.mark.asyncio
async def test_timed_out_operation_is_cancelled(clock):
    breaker = make_breaker(clock, timeout=0.05)
    cancelled = []

    async def hangs():
        try:
            await asyncio.sleep(0.5)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise
        return "late"

    with pytest.raises(CircuitTimeoutError):
        await breaker.execute(hangs)

    assert cancelled == [True]


@pytest.mark.asyncio
async def test_operation_exception_is_propagated_unchanged(clock):
    breaker = make_breaker(clock)

    class CustomError(Exception):
        pass

    async def operation():
        raise CustomError("specific")

    with pytest.raises(CustomError, match="specific"):
        await breaker.execute(operation)

    assert breaker.window_counts() == (1, 1)


@pytest.mark.asyncio
async def test_observer_failure_does_not_change_behaviour(clock):
    breaker = make_breaker(clock, observer=ExplodingObserver())

    await run(breaker, "SSFFF")

    assert breaker.is_open()
    with pytest.raises(CircuitOpenError):
        await breaker.execute(succeed)


@pytest.mark.asyncio
async def test_open_event_carries_window_counts(clock):
    observer = RecordingObserver()
    breaker = make_breaker(clock, observer=observer)

    await run(breaker, "FFFSS")

    open_events = [details for event, details in observer.events if event is BreakerEvent.OPEN]
    assert len(open_events) == 1
    assert open_events[0]["calls"] == 5
    assert open_events[0]["failures"] == 3
    assert open_events[0]["state"] == "open"


@pytest.mark.asyncio
async def test_force_open_and_force_close(clock):
    breaker = make_breaker(clock)

    breaker.force_open()
    assert breaker.is_open()
    with pytest.raises(CircuitOpenError):
        await breaker.execute(succeed)

    breaker.force_close()
    assert breaker.is_closed()
    assert await breaker.execute(succeed) == "ok"


@pytest.mark.asyncio
async def test_reset_clears_window(clock):
    breaker = make_breaker(clock)
    await run(breaker, "FFFFF")

    breaker.reset()

    assert breaker.is_closed()
    assert breaker.last_opened_at is None
    assert breaker.window_counts() == (0, 0)


@pytest.mark.asyncio
async def test_health_status(clock):
    breaker = make_breaker(clock)
    assert breaker.get_health_status()["status"] == "healthy"

    await run(breaker, "FFSSS")
    health = breaker.get_health_status()
    assert health["status"] == "degraded"
    assert health["circuit"] == "closed"

    breaker.force_open()
    health = breaker.get_health_status()
    assert health["status"] == "unhealthy"
    assert health["options"]["volume_threshold"] == 5
