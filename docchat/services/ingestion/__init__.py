"""Document ingestion: extract -> chunk -> store.

    - extractor.py         -- TextExtractor (PDF / DOCX / plain text)
    - chunker.py           -- TextChunker and the page estimate
    - ingestion_service.py -- IngestionService (validation, limits, lifecycle)
"""

from docchat.services.ingestion.chunker import (
    TextChunker,
    estimate_page,
    estimate_page_count,
)
from docchat.services.ingestion.extractor import TextExtractor
from docchat.services.ingestion.ingestion_service import (
    ALLOWED_MIME_TYPES,
    IngestionService,
)

__all__ = [
    "ALLOWED_MIME_TYPES",
    "IngestionService",
    "TextChunker",
    "TextExtractor",
    "estimate_page",
    "estimate_page_count",
]
