"""Ollama generation provider adapter.

Wraps a local Ollama server via its OpenAI-compatible API endpoint, using
the ``openai`` client library pointed at the Ollama base URL.  Lets docchat
run fully offline with no API costs.

Setup: install Ollama (https://ollama.ai), ``ollama pull llama3`` and set
OLLAMA_BASE_URL=http://localhost:11434
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import openai
import structlog

from docchat.config.settings import Settings
from docchat.interfaces.generation_provider import IGenerationProvider
from docchat.models.generation import GenerationOptions, ProviderCompletion
from docchat.providers.generation.openai_provider import classify_openai_error
from docchat.utils.errors import ErrorKind, GenerationError, generation_error_for

logger = structlog.get_logger(logger_name=__name__)


class OllamaGenerationProvider(IGenerationProvider):
    """Generation provider backed by a local Ollama server.

    Ollama exposes an OpenAI-compatible ``/v1`` API, so this adapter reuses
    ``openai.AsyncOpenAI``.  ``top_k`` is not part of the OpenAI schema and
    travels in ``extra_body``; Ollama reads it from the request options.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url.rstrip('/')}/v1",
            # Ollama ignores the key, but the SDK requires a non-empty value.
            api_key="ollama",
            timeout=settings.generation_timeout_seconds,
            max_retries=0,
        )
        self._model = settings.ollama_model or "llama3"

    # ------------------------------------------------------------------
    # IGenerationProvider implementation
    # ------------------------------------------------------------------

    async def generate(self, prompt: str, options: GenerationOptions) -> ProviderCompletion:
        try:
            response = await self._client.chat.completions.create(
                **self._request_kwargs(prompt, options),
            )
        except openai.APIError as exc:
            raise self._wrap(exc) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError(
                message="Ollama returned empty response",
                provider_name=self.get_provider_name(),
                kind=ErrorKind.EMPTY_RESPONSE,
            )
        tokens = response.usage.total_tokens if response.usage else 0
        logger.info("ollama_completion", model=self._model, tokens=tokens)
        return ProviderCompletion(text=content, tokens_used=tokens, model_id=self._model)

    async def stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[str]:
        try:
            response_stream = await self._client.chat.completions.create(
                **self._request_kwargs(prompt, options),
                stream=True,
            )
        except openai.APIError as exc:
            raise self._wrap(exc) from exc

        try:
            async for chunk in response_stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.APIError as exc:
            raise self._wrap(exc) from exc
        finally:
            await response_stream.close()

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama base URL is configured."""
        return bool(self._base_url)

    async def validate_credentials(self) -> bool:
        """Check that the Ollama server is running via its native ``/api/tags``."""
        if not self.is_available():
            return False
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self._base_url.rstrip('/')}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    def get_provider_name(self) -> str:
        return "ollama"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _request_kwargs(self, prompt: str, options: GenerationOptions) -> dict:
        return {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.temperature,
            "top_p": options.top_p,
            "max_tokens": options.max_tokens,
            "extra_body": {"top_k": options.top_k},
        }

    def _wrap(self, exc: openai.APIError) -> GenerationError:
        kind = classify_openai_error(exc)
        logger.warning("ollama_api_error", kind=kind.value, error=str(exc))
        return generation_error_for(
            kind,
            message=f"Ollama API error: {exc}",
            provider_name=self.get_provider_name(),
        )
