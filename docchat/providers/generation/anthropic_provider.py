"""Anthropic generation provider adapter.

Wraps the ``anthropic`` async client to implement :class:`IGenerationProvider`
via the Claude Messages API.

Key differences from the OpenAI adapter:
    - Uses the Messages API (not chat.completions)
    - Response content is a list of blocks; text blocks are joined
    - ``top_k`` is passed through; ``top_p`` is not combined with
      temperature (Claude models reject setting both)
    - Streaming goes through ``messages.stream`` as an async context manager
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import anthropic
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


def classify_anthropic_error(exc: anthropic.APIError) -> ErrorKind:
    """Map an ``anthropic`` SDK exception to an :class:`ErrorKind`."""
    if isinstance(exc, anthropic.APITimeoutError):
        return ErrorKind.DEADLINE_EXCEEDED
    if isinstance(exc, anthropic.APIConnectionError):
        return ErrorKind.UNAVAILABLE
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return ErrorKind.INVALID_CREDENTIALS
    if isinstance(exc, anthropic.RateLimitError):
        return ErrorKind.RATE_LIMITED
    if isinstance(exc, anthropic.APIStatusError):
        return kind_for_status(exc.status_code)
    return ErrorKind.UNKNOWN


class AnthropicGenerationProvider(IGenerationProvider):
    """Generation provider backed by the Anthropic Claude API.

    ``options.top_p`` is not sent: Claude models reject requests that set
    both ``temperature`` and ``top_p``, so sampling is shaped by
    ``temperature`` and ``top_k`` only.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.anthropic_api_key
        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key,
            timeout=settings.generation_timeout_seconds,
            max_retries=0,
        )
        self._model = settings.anthropic_model or "claude-3-5-haiku-latest"

    # ------------------------------------------------------------------
    # IGenerationProvider implementation
    # ------------------------------------------------------------------

    async def generate(self, prompt: str, options: GenerationOptions) -> ProviderCompletion:
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=options.max_tokens,
                messages=[{"role": "user", "content": prompt}],
                temperature=options.temperature,
                top_k=options.top_k,
            )
        except anthropic.APIError as exc:
            raise self._wrap(exc) from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        result = "\n".join(text_blocks)
        if not result.strip():
            raise GenerationError(
                message="Anthropic returned no text content",
                provider_name=self.get_provider_name(),
                kind=ErrorKind.EMPTY_RESPONSE,
            )
        logger.info(
            "anthropic_completion",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return ProviderCompletion(
            text=result,
            tokens_used=response.usage.input_tokens + response.usage.output_tokens,
            model_id=response.model or self._model,
        )

    async def stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[str]:
        try:
            async with self._client.messages.stream(
                model=self._model,
                max_tokens=options.max_tokens,
                messages=[{"role": "user", "content": prompt}],
                temperature=options.temperature,
                top_k=options.top_k,
            ) as message_stream:
                async for fragment in message_stream.text_stream:
                    if fragment:
                        yield fragment
        except anthropic.APIError as exc:
            raise self._wrap(exc) from exc

    def is_available(self) -> bool:
        """Return ``True`` if an Anthropic API key is configured."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """Try a minimal completion to verify the API key works."""
        if not self.is_available():
            return False
        try:
            await self._client.messages.create(
                model=self._model,
                max_tokens=10,
                messages=[{"role": "user", "content": "hi"}],
            )
            return True
        except anthropic.APIError:
            return False

    def get_provider_name(self) -> str:
        return "anthropic"

    def _wrap(self, exc: anthropic.APIError) -> GenerationError:
        kind = classify_anthropic_error(exc)
        logger.warning("anthropic_api_error", kind=kind.value, error=str(exc))
        return generation_error_for(
            kind,
            message=f"Anthropic API error: {exc}",
            provider_name=self.get_provider_name(),
        )
