"""Circuit breaker guarding the generation backend.

One instance is created at startup and injected into the generation client,
so its state lives for the process lifetime (it is not persisted).

States::

    closed --(threshold overload failures)--> open
    open   --(reset_timeout elapsed, next call)--> closed, count kept (probe)
    any    --(success)--> closed, count = 0

Because a probe keeps the failure count, one more overload failure after
the cool-down reopens the breaker immediately.  Only overload-class
failures count; other errors leave the breaker untouched.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

import structlog

from docchat.utils.errors import ServiceUnavailableError

logger = structlog.get_logger(logger_name=__name__)


class CircuitBreaker:
    """Counts overload failures and fails fast while the backend recovers.

    Parameters
    ----------
    failure_threshold:
        Overload failures that open the breaker (default 3).
    reset_timeout:
        Seconds the breaker stays open before a probe is allowed (default 60).
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            msg = f"failure_threshold must be >= 1, got {failure_threshold}"
            raise ValueError(msg)
        self._threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._clock = clock
        self._lock = asyncio.Lock()

        self._failure_count = 0
        self._is_open = False
        self._last_failure_time: float | None = None

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def last_failure_time(self) -> float | None:
        return self._last_failure_time

    def retry_after(self) -> float:
        """Seconds until a probe will be allowed; 0 when closed."""
        if not self._is_open or self._last_failure_time is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_time
        return max(0.0, self._reset_timeout - elapsed)

    async def before_call(self) -> None:
        """Gate an outbound call.

        Raises
        ------
        ServiceUnavailableError
            While open and the reset timeout has not elapsed.
        """
        async with self._lock:
            if not self._is_open:
                return
            remaining = self.retry_after()
            if remaining > 0:
                raise ServiceUnavailableError(retry_after=remaining)
            self._is_open = False
            logger.info("circuit_breaker_probe", failure_count=self._failure_count)

    async def record_success(self) -> None:
        async with self._lock:
            if self._failure_count or self._is_open:
                logger.info("circuit_breaker_reset", failure_count=self._failure_count)
            self._failure_count = 0
            self._is_open = False

    async def record_failure(self, overload: bool) -> None:
        """Register a failed call; only *overload* failures count."""
        if not overload:
            return
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()
            if self._failure_count >= self._threshold and not self._is_open:
                self._is_open = True
                logger.warning(
                    "circuit_breaker_opened",
                    failure_count=self._failure_count,
                    reset_timeout=self._reset_timeout,
                )

    def snapshot(self) -> dict[str, Any]:
        """Current state for the health endpoint."""
        return {
            "state": "open" if self._is_open else "closed",
            "failure_count": self._failure_count,
            "threshold": self._threshold,
            "reset_timeout_seconds": self._reset_timeout,
            "retry_after_seconds": round(self.retry_after(), 1),
        }
