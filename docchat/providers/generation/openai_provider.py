"""OpenAI-compatible generation provider adapter.

Wraps the ``openai`` async client to implement :class:`IGenerationProvider`.
When a custom ``openai_base_url`` is configured (e.g. TogetherAI, Groq,
Fireworks), the client points at that URL instead of the default OpenAI
endpoint.

SDK-level retries are disabled: the generation client owns the retry
policy and the circuit breaker, so every SDK failure is surfaced at once
as a :class:`GenerationError` tagged with an :class:`ErrorKind`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import openai
import structlog

from docchat.config.settings import Settings
from docchat.interfaces.generation_provider import IGenerationProvider
from docchat.models.generation import GenerationOptions, ProviderCompletion
from docchat.utils.errors import (
    ErrorKind,
    GenerationError,
    generation_error_for,
    kind_for_status,
)

logger = structlog.get_logger(logger_name=__name__)


def classify_openai_error(exc: openai.APIError) -> ErrorKind:
    """Map an ``openai`` SDK exception to an :class:`ErrorKind`.

    Shared with the Ollama adapter, which talks to Ollama through the same SDK.
    """
    # APITimeoutError subclasses APIConnectionError, so it is checked first.
    if isinstance(exc, openai.APITimeoutError):
        return ErrorKind.DEADLINE_EXCEEDED
    if isinstance(exc, openai.APIConnectionError):
        return ErrorKind.UNAVAILABLE
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ErrorKind.INVALID_CREDENTIALS
    if isinstance(exc, openai.RateLimitError):
        if getattr(exc, "code", None) == "insufficient_quota":
            return ErrorKind.QUOTA_EXHAUSTED
        return ErrorKind.RATE_LIMITED
    if isinstance(exc, openai.APIStatusError):
        return kind_for_status(exc.status_code)
    return ErrorKind.UNKNOWN


class OpenAIGenerationProvider(IGenerationProvider):
    """Generation provider backed by an OpenAI-compatible chat completions API.

    Uses ``gpt-4o-mini`` by default; override with ``OPENAI_MODEL``.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(settings.generation_timeout_seconds, connect=5.0),
            "max_retries": 0,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_model or "gpt-4o-mini"
        self._provider_label = (
            "openai-compatible" if settings.openai_base_url else "openai"
        )

    # ------------------------------------------------------------------
    # IGenerationProvider implementation
    # ------------------------------------------------------------------

    async def generate(self, prompt: str, options: GenerationOptions) -> ProviderCompletion:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                temperature=options.temperature,
                top_p=options.top_p,
                max_tokens=options.max_tokens,
            )
        except openai.APIError as exc:
            raise self._wrap(exc) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
                kind=ErrorKind.EMPTY_RESPONSE,
            )
        tokens = response.usage.total_tokens if response.usage else 0
        logger.info(
            "openai_completion",
            model=self._model,
            provider=self._provider_label,
            tokens=tokens,
        )
        return ProviderCompletion(
            text=content,
            tokens_used=tokens,
            model_id=response.model or self._model,
        )

    async def stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[str]:
        try:
            response_stream = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                temperature=options.temperature,
                top_p=options.top_p,
                max_tokens=options.max_tokens,
                stream=True,
            )
        except openai.APIError as exc:
            raise self._wrap(exc) from exc

        try:
            async for chunk in response_stream:
                if not chunk.choices:
                    continue
                fragment = chunk.choices[0].delta.content
                if fragment:
                    yield fragment
        except openai.APIError as exc:
            raise self._wrap(exc) from exc
        finally:
            await response_stream.close()

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """List models to confirm the key is accepted without paying for inference."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        return self._provider_label

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _wrap(self, exc: openai.APIError) -> GenerationError:
        kind = classify_openai_error(exc)
        logger.warning(
            "openai_api_error",
            provider=self._provider_label,
            kind=kind.value,
            error=str(exc),
        )
        return generation_error_for(
            kind,
            message=f"{self._provider_label} API error: {exc}",
            provider_name=self.get_provider_name(),
        )
