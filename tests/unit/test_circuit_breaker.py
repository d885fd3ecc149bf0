"""Unit tests for CircuitBreaker."""

from __future__ import annotations

import pytest

from docchat.services.generation.circuit_breaker import CircuitBreaker
from docchat.utils.errors import ServiceUnavailableError


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(failure_threshold=3, reset_timeout=60.0, clock=clock)


async def _fail(breaker: CircuitBreaker, times: int, overload: bool = True) -> None:
    for _ in range(times):
        await breaker.record_failure(overload=overload)


class TestCircuitBreaker:
    def test_rejects_zero_threshold(self) -> None:
        with pytest.raises(ValueError):
            CircuitBreaker(failure_threshold=0)

    @pytest.mark.asyncio
    async def test_opens_at_threshold(self, breaker: CircuitBreaker) -> None:
        await _fail(breaker, 2)
        assert not breaker.is_open
        await breaker.before_call()

        await _fail(breaker, 1)

        assert breaker.is_open
        assert breaker.failure_count == 3

    @pytest.mark.asyncio
    async def test_fails_fast_while_open(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        await _fail(breaker, 3)
        clock.advance(20)

        with pytest.raises(ServiceUnavailableError) as exc_info:
            await breaker.before_call()

        assert exc_info.value.retry_after == pytest.approx(40.0)
        assert exc_info.value.details() == {"retryAfter": 40}

    @pytest.mark.asyncio
    async def test_probe_allowed_after_reset_timeout(
        self, breaker: CircuitBreaker, clock: FakeClock
    ) -> None:
        await _fail(breaker, 3)
        clock.advance(60)

        await breaker.before_call()

        assert not breaker.is_open
        assert breaker.failure_count == 3

    @pytest.mark.asyncio
    async def test_failed_probe_reopens_immediately(
        self, breaker: CircuitBreaker, clock: FakeClock
    ) -> None:
        await _fail(breaker, 3)
        clock.advance(61)
        await breaker.before_call()

        await _fail(breaker, 1)

        assert breaker.is_open
        with pytest.raises(ServiceUnavailableError):
            await breaker.before_call()

    @pytest.mark.asyncio
    async def test_success_resets(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        await _fail(breaker, 3)
        clock.advance(61)
        await breaker.before_call()

        await breaker.record_success()

        assert breaker.failure_count == 0
        assert not breaker.is_open
        await _fail(breaker, 2)
        assert not breaker.is_open

    @pytest.mark.asyncio
    async def test_non_overload_failures_ignored(self, breaker: CircuitBreaker) -> None:
        await _fail(breaker, 10, overload=False)
        assert breaker.failure_count == 0
        assert not breaker.is_open

    @pytest.mark.asyncio
    async def test_snapshot(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        assert breaker.snapshot()["state"] == "closed"
        assert breaker.retry_after() == 0.0

        await _fail(breaker, 3)
        clock.advance(15)

        snapshot = breaker.snapshot()
        assert snapshot == {
            "state": "open",
            "failure_count": 3,
            "threshold": 3,
            "reset_timeout_seconds": 60.0,
            "retry_after_seconds": 45.0,
        }
