"""Resilient wrapper around an :class:`IGenerationProvider`.

Retry policy (per :class:`GenerationOptions`):

    - every attempt first passes the circuit breaker, then calls the
      provider under a per-attempt timeout
    - non-retryable failures (bad credentials, quota, bad request, empty
      response, unknown) are raised at once and never touch the breaker
    - retryable failures (overloaded, unavailable, rate limited, internal,
      deadline exceeded) back off and retry; overload-class failures also
      count toward the breaker
    - when attempts run out, :class:`GenerationFailedError` carries the
      last error and the attempt count

Backoff before attempt ``n + 1`` is
``min(base_delay * 2 ** (n - 1) + uniform(0, jitter), max_delay)``.
Decisions are made on ``ErrorKind`` tags set by the provider adapters,
never on message text.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import AsyncIterator, Awaitable, Callable

import structlog

from docchat.interfaces.generation_provider import IGenerationProvider
from docchat.models.chat import StreamEvent
from docchat.models.generation import GenerationOptions, GenerationResult
from docchat.services.generation.circuit_breaker import CircuitBreaker
from docchat.utils.errors import (
    AuthenticationFailedError,
    ErrorKind,
    GenerationError,
    GenerationFailedError,
    QuotaExceededError,
    ServiceUnavailableError,
    generation_error_for,
)

logger = structlog.get_logger(logger_name=__name__)


class GenerationClient:
    """Calls the generation provider with retries, backoff and a circuit breaker.

    Parameters
    ----------
    provider:
        The backend adapter.
    breaker:
        Shared circuit breaker; one per process.
    sleep:
        Awaitable sleep used between retries, injectable for tests.
    rng:
        Random source for jitter, injectable for tests.
    """

    def __init__(
        self,
        provider: IGenerationProvider,
        breaker: CircuitBreaker,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._provider = provider
        self._breaker = breaker
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def backoff_delay(self, attempt: int, options: GenerationOptions) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        delay = options.base_delay * 2 ** (attempt - 1)
        jitter = self._rng.uniform(0.0, options.jitter) if options.jitter > 0 else 0.0
        return min(delay + jitter, options.max_delay)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        """Generate a complete response for *prompt*.

        Raises
        ------
        ServiceUnavailableError
            If the circuit breaker is open before any attempt.
        AuthenticationFailedError, QuotaExceededError, GenerationError
            For non-retryable failures, on the first occurrence.
        GenerationFailedError
            When every attempt failed with a retryable error.
        """
        options = options or GenerationOptions()
        started = time.perf_counter()
        last_error: GenerationError | None = None

        for attempt in range(1, options.max_attempts + 1):
            await self._breaker.before_call()
            logger.debug(
                "generation_attempt",
                provider=self.provider_name,
                attempt=attempt,
                max_attempts=options.max_attempts,
                prompt_chars=len(prompt),
            )
            try:
                completion = await asyncio.wait_for(
                    self._provider.generate(prompt, options),
                    timeout=options.timeout,
                )
            except asyncio.TimeoutError:
                error = GenerationError(
                    message=f"Generation timed out after {options.timeout:g}s",
                    provider_name=self.provider_name,
                    kind=ErrorKind.DEADLINE_EXCEEDED,
                )
            except GenerationError as exc:
                error = exc
            else:
                text = completion.text.strip()
                if not text:
                    raise GenerationError(
                        message="Empty response from generation backend",
                        provider_name=self.provider_name,
                        kind=ErrorKind.EMPTY_RESPONSE,
                    )
                await self._breaker.record_success()
                elapsed_ms = int((time.perf_counter() - started) * 1000)
                logger.info(
                    "generation_succeeded",
                    provider=self.provider_name,
                    model=completion.model_id,
                    attempts=attempt,
                    elapsed_ms=elapsed_ms,
                    tokens=completion.tokens_used,
                )
                return GenerationResult(
                    text=text,
                    tokens_used=completion.tokens_used,
                    model_id=completion.model_id,
                    elapsed_ms=elapsed_ms,
                    attempt_count=attempt,
                )

            if not error.retryable:
                logger.warning(
                    "generation_failed_permanently",
                    provider=self.provider_name,
                    kind=error.kind.value,
                    attempt=attempt,
                    error=error.message,
                )
                raise self._specific(error)

            await self._breaker.record_failure(overload=error.kind.overload)
            last_error = error
            if attempt < options.max_attempts:
                delay = self.backoff_delay(attempt, options)
                logger.warning(
                    "generation_retry",
                    provider=self.provider_name,
                    kind=error.kind.value,
                    attempt=attempt,
                    retries_remaining=options.max_attempts - attempt,
                    delay_seconds=round(delay, 3),
                )
                await self._sleep(delay)

        assert last_error is not None
        logger.error(
            "generation_retries_exhausted",
            provider=self.provider_name,
            kind=last_error.kind.value,
            attempts=options.max_attempts,
        )
        raise GenerationFailedError(last_error=last_error, attempts=options.max_attempts)

    async def stream(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream *prompt*'s response as :class:`StreamEvent` objects.

        Never raises: failures arrive as a terminal event with ``error`` set.
        Closing this iterator closes the provider's upstream stream.
        """
        options = options or GenerationOptions()
        try:
            await self._breaker.before_call()
        except ServiceUnavailableError as exc:
            logger.warning("generation_stream_rejected", retry_after=round(exc.retry_after, 1))
            yield StreamEvent(
                done=True,
                error=exc.message,
                code=exc.code,
                kind=exc.kind,
                retry_after=max(1, round(exc.retry_after)),
            )
            return

        fragments = self._provider.stream(prompt, options)
        parts: list[str] = []
        failure: StreamEvent | None = None
        try:
            async for fragment in fragments:
                parts.append(fragment)
                yield StreamEvent(chunk=fragment)
        except GenerationError as exc:
            await self._breaker.record_failure(overload=exc.kind.overload)
            logger.warning(
                "generation_stream_failed",
                provider=self.provider_name,
                kind=exc.kind.value,
                error=exc.message,
            )
            failure = StreamEvent(
                done=True,
                error=exc.message,
                code=self._specific(exc).code,
                kind=exc.kind,
            )
        except Exception as exc:
            logger.error("generation_stream_crashed", provider=self.provider_name, error=str(exc))
            failure = StreamEvent(
                done=True,
                error="AI streaming failed",
                code="STREAM_FAILED",
                kind=ErrorKind.UNKNOWN,
            )
        finally:
            await fragments.aclose()

        if failure is not None:
            yield failure
            return

        full_response = "".join(parts)
        if not full_response.strip():
            yield StreamEvent(
                done=True,
                error="Empty response from generation backend",
                code=GenerationError.code,
                kind=ErrorKind.EMPTY_RESPONSE,
            )
            return

        await self._breaker.record_success()
        logger.info(
            "generation_stream_completed",
            provider=self.provider_name,
            fragments=len(parts),
            chars=len(full_response),
        )
        yield StreamEvent(done=True, full_response=full_response)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _specific(error: GenerationError) -> GenerationError:
        """Promote credential / quota failures to their dedicated classes."""
        if error.kind is ErrorKind.INVALID_CREDENTIALS and not isinstance(
            error, AuthenticationFailedError
        ):
            return generation_error_for(error.kind, error.message, error.provider_name)
        if error.kind is ErrorKind.QUOTA_EXHAUSTED and not isinstance(error, QuotaExceededError):
            return generation_error_for(error.kind, error.message, error.provider_name)
        return error
