"""Document and chunk models.

A :class:`Document` is created once by the ingestion pipeline and carries
its extracted text as an ordered tuple of :class:`Chunk` objects.  The
chunk tuple is never modified after creation; re-processing a file
produces a new Document.  Only ``stats`` and the lifecycle flags change
afterwards, and those changes go through the document store, not through
these (frozen) objects.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ChunkSource(BaseModel):
    """Where a chunk came from: file, estimated page and ``[start, end)`` offsets."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(description="Originating (original) filename.")
    page: int = Field(default=1, ge=1, description="Estimated 1-based page number.")
    start: int = Field(ge=0, description="Inclusive start offset into the extracted text.")
    end: int = Field(ge=0, description="Exclusive end offset into the extracted text.")


class Chunk(BaseModel):
    """A contiguous slice of a document's extracted text."""

    model_config = ConfigDict(frozen=True)

    text: str
    source: ChunkSource


class DocumentMetadata(BaseModel):
    """Derived, display-only facts about the extracted text."""

    model_config = ConfigDict(frozen=True)

    pages: int = Field(default=1, ge=1, description="Estimated page count.")
    word_count: int = Field(default=0, ge=0)
    language: str = "en"
    summary: str = ""


class DocumentStats(BaseModel):
    """Usage counters maintained by the document store."""

    model_config = ConfigDict(frozen=True)

    views: int = 0
    chats: int = 0
    last_accessed: datetime = Field(default_factory=_utcnow)


class Document(BaseModel):
    """An uploaded file after extraction and chunking."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str | None = None
    filename: str = Field(description="Name the file was stored under.")
    original_name: str
    mime_type: str
    size: int = Field(ge=0, description="Upload size in bytes.")
    chunks: tuple[Chunk, ...] = ()
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    stats: DocumentStats = Field(default_factory=DocumentStats)
    is_active: bool = True
    deleted_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)
