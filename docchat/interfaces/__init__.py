"""Public interface definitions for docchat's external services.

Business logic reaches the generation backend and the persistence layer
only through these abstract base classes.  Concrete adapters live in
``docchat/providers/`` and are wired in ``docchat/main.py``.

    Interface              ->  Concrete implementations
    ---------------------------------------------------------------
    IGenerationProvider    ->  OpenAIGenerationProvider,
                               AnthropicGenerationProvider,
                               OllamaGenerationProvider
    IDocumentStore         ->  SQLiteDocumentStore
"""

from docchat.interfaces.document_store import IDocumentStore
from docchat.interfaces.generation_provider import IGenerationProvider

__all__ = ["IDocumentStore", "IGenerationProvider"]
