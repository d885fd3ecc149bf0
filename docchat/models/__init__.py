"""docchat domain models -- re-exports all public model classes.

    - document.py    -- Document, Chunk and their metadata/stats
    - generation.py  -- generation options and results
    - chat.py        -- answers, chat history records, stream events
"""

from __future__ import annotations

from docchat.models.chat import (
    AnswerResult,
    ChatHistoryEntry,
    ChatMessage,
    ResponseMode,
    SourceDocument,
    StreamEvent,
)
from docchat.models.document import (
    Chunk,
    ChunkSource,
    Document,
    DocumentMetadata,
    DocumentStats,
)
from docchat.models.generation import (
    GenerationOptions,
    GenerationResult,
    ProviderCompletion,
)

__all__ = [
    "AnswerResult",
    "ChatHistoryEntry",
    "ChatMessage",
    "Chunk",
    "ChunkSource",
    "Document",
    "DocumentMetadata",
    "DocumentStats",
    "GenerationOptions",
    "GenerationResult",
    "ProviderCompletion",
    "ResponseMode",
    "SourceDocument",
    "StreamEvent",
]
