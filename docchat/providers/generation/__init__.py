"""Generation provider adapters.

Three concrete implementations of IGenerationProvider
(docchat/interfaces/generation_provider.py):
    - OpenAIGenerationProvider    -- gpt-4o-mini (also OpenAI-compatible APIs)
    - AnthropicGenerationProvider -- Claude via the Messages API
    - OllamaGenerationProvider    -- local models via an Ollama server

``build_generation_provider`` is called once at startup by docchat/main.py.
"""

from __future__ import annotations

from docchat.config.settings import Settings
from docchat.interfaces.generation_provider import IGenerationProvider
from docchat.providers.generation.anthropic_provider import AnthropicGenerationProvider
from docchat.providers.generation.ollama_provider import OllamaGenerationProvider
from docchat.providers.generation.openai_provider import OpenAIGenerationProvider
from docchat.utils.errors import ConfigurationError

_PROVIDERS: dict[str, type[IGenerationProvider]] = {
    "anthropic": AnthropicGenerationProvider,
    "openai": OpenAIGenerationProvider,
    "ollama": OllamaGenerationProvider,
}


def build_generation_provider(settings: Settings) -> IGenerationProvider:
    """Construct the configured generation provider.

    ``GENERATION_PROVIDER=auto`` selects the first provider with credentials
    in the order anthropic -> openai -> ollama.  An explicit choice must be
    configured, otherwise :class:`ConfigurationError` is raised so the
    service fails at startup rather than on the first chat request.
    """
    choice = (settings.generation_provider or "auto").strip().lower()
    available = settings.get_available_generation_providers()

    if choice == "auto":
        if not available:
            raise ConfigurationError(
                "No generation provider configured. Set ANTHROPIC_API_KEY, "
                "OPENAI_API_KEY or OLLAMA_BASE_URL."
            )
        choice = available[0]

    provider_cls = _PROVIDERS.get(choice)
    if provider_cls is None:
        raise ConfigurationError(
            f"Unknown generation provider {choice!r}. "
            f"Expected one of: auto, {', '.join(_PROVIDERS)}"
        )
    if choice not in available:
        raise ConfigurationError(
            f"Generation provider {choice!r} selected but not configured",
            provider_name=choice,
        )
    return provider_cls(settings=settings)


__all__ = [
    "AnthropicGenerationProvider",
    "OllamaGenerationProvider",
    "OpenAIGenerationProvider",
    "build_generation_provider",
]
