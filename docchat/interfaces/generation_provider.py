"""Abstract base class for text-generation backends.

Defines the contract for any large-language-model service the chat
endpoints talk to.  Implementations may wrap an OpenAI-compatible API,
the Anthropic Messages API, or a local Ollama server.  Call sites only see
this interface, so the backend can be swapped in ``docchat.main`` without
touching business logic.

Adapters translate SDK exceptions into
:class:`~docchat.utils.errors.GenerationError` tagged with an
:class:`~docchat.utils.errors.ErrorKind`; they never retry on their own.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from docchat.models.generation import GenerationOptions, ProviderCompletion


# Concrete implementations: OpenAIGenerationProvider, AnthropicGenerationProvider,
# OllamaGenerationProvider.  Located in: docchat/providers/generation/
class IGenerationProvider(ABC):
    """Contract for LLM services used by the generation client."""

    @abstractmethod
    async def generate(self, prompt: str, options: GenerationOptions) -> ProviderCompletion:
        """Send a single prompt and return the complete response.

        Parameters
        ----------
        prompt:
            The fully assembled prompt text.
        options:
            Sampling parameters.  Retry fields are ignored here; the
            generation client owns retries.

        Returns
        -------
        ProviderCompletion
            Response text, token usage and the model id that answered.

        Raises
        ------
        docchat.utils.errors.GenerationError
            With ``kind`` set from the SDK exception type or HTTP status.
            An empty response is raised with ``ErrorKind.EMPTY_RESPONSE``.
        """

    @abstractmethod
    def stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[str]:
        """Yield response text fragments as the backend produces them.

        Implemented as an async generator.  Closing the generator (``aclose``)
        must close the upstream HTTP stream.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"openai"`` or ``"ollama"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (key or URL present).

        Does not contact the remote service.
        """

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Perform a lightweight call to confirm the backend accepts us.

        Returns ``False`` rather than raising when the check fails.
        """
