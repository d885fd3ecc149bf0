"""Pydantic request/response schemas for the docchat API.

Defines the public contract for every REST endpoint: uploads, document
listing, chat, summaries, history and health.

The wire format uses camelCase keys (``documentIds``, ``originalName``)
while Python code uses snake_case attributes.  ``_CamelModel`` bridges the
two with an alias generator; FastAPI serializes ``response_model`` objects
by alias, and requests accept either spelling.

Successful responses are wrapped as ``{"success": true, "data": ...}``;
errors are rendered by :class:`~docchat.api.middleware.ErrorHandlingMiddleware`
as :class:`ErrorResponse`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from docchat.models.chat import AnswerResult, ChatHistoryEntry, ResponseMode, SourceDocument
from docchat.models.document import Document


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class ChatRequest(_CamelModel):
    """Question (or summary) request over the caller's documents."""

    question: str | None = Field(default=None, max_length=4000)
    document_ids: list[str] | None = None
    type: ResponseMode = ResponseMode.QUESTION


class SummarizeRequest(_CamelModel):
    document_ids: list[str] | None = None


class ChatStreamRequest(_CamelModel):
    question: str = Field(..., min_length=1, max_length=4000)
    document_ids: list[str] | None = None


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentMetadataResponse(_CamelModel):
    pages: int
    word_count: int
    language: str
    summary: str


class DocumentStatsResponse(_CamelModel):
    views: int
    chats: int
    last_accessed: datetime


class ChunkResponse(_CamelModel):
    text: str
    page: int
    start: int
    end: int


class DocumentSummaryResponse(_CamelModel):
    """A document without its chunk texts."""

    id: str
    filename: str
    original_name: str
    mime_type: str
    size: int
    chunk_count: int
    metadata: DocumentMetadataResponse
    stats: DocumentStatsResponse
    created_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> DocumentSummaryResponse:
        return cls(**_document_fields(document))


class DocumentDetailResponse(DocumentSummaryResponse):
    """A document including its chunks."""

    chunks: list[ChunkResponse]

    @classmethod
    def from_document(cls, document: Document) -> DocumentDetailResponse:
        return cls(
            **_document_fields(document),
            chunks=[
                ChunkResponse(
                    text=chunk.text,
                    page=chunk.source.page,
                    start=chunk.source.start,
                    end=chunk.source.end,
                )
                for chunk in document.chunks
            ],
        )


def _document_fields(document: Document) -> dict[str, Any]:
    return {
        "id": document.id,
        "filename": document.filename,
        "original_name": document.original_name,
        "mime_type": document.mime_type,
        "size": document.size,
        "chunk_count": document.chunk_count,
        "metadata": DocumentMetadataResponse(
            pages=document.metadata.pages,
            word_count=document.metadata.word_count,
            language=document.metadata.language,
            summary=document.metadata.summary,
        ),
        "stats": DocumentStatsResponse(
            views=document.stats.views,
            chats=document.stats.chats,
            last_accessed=document.stats.last_accessed,
        ),
        "created_at": document.created_at,
    }


class DocumentUploadResponse(_CamelModel):
    success: bool = True
    message: str = "File uploaded and processed successfully"
    data: DocumentSummaryResponse


class DocumentListResponse(_CamelModel):
    success: bool = True
    count: int
    data: list[DocumentSummaryResponse]


class DocumentDetailEnvelope(_CamelModel):
    success: bool = True
    data: DocumentDetailResponse


class DeleteResponse(_CamelModel):
    success: bool = True
    message: str = "Document deleted successfully"


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class SourceDocumentResponse(_CamelModel):
    id: str
    name: str
    chunks: int


class ChatAnswerData(_CamelModel):
    answer: str
    type: ResponseMode
    model: str
    response_time: int = Field(description="Generation time in milliseconds.")
    tokens_used: int
    attempts: int
    degraded: bool
    source_documents: list[SourceDocumentResponse]
    document_count: int
    timestamp: datetime

    @classmethod
    def from_result(cls, result: AnswerResult) -> ChatAnswerData:
        return cls(
            answer=result.text,
            type=result.mode,
            model=result.model_id,
            response_time=result.elapsed_ms,
            tokens_used=result.tokens_used,
            attempts=result.attempts,
            degraded=result.degraded,
            source_documents=[_source(doc) for doc in result.source_documents],
            document_count=len(result.source_documents),
            timestamp=datetime.now(tz=timezone.utc),
        )


def _source(doc: SourceDocument) -> SourceDocumentResponse:
    return SourceDocumentResponse(id=doc.id, name=doc.name, chunks=doc.chunks)


class ChatResponse(_CamelModel):
    success: bool = True
    data: ChatAnswerData


class ChatMessageResponse(_CamelModel):
    role: str
    content: str
    timestamp: datetime
    tokens: int = 0
    model: str | None = None


class ChatHistoryEntryResponse(_CamelModel):
    id: str | None
    document_id: str
    document_ids: list[str]
    title: str
    messages: list[ChatMessageResponse]
    total_tokens: int
    summary: str
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: ChatHistoryEntry) -> ChatHistoryEntryResponse:
        return cls(
            id=entry.id,
            document_id=entry.document_id,
            document_ids=entry.document_ids,
            title=entry.title,
            messages=[
                ChatMessageResponse(
                    role=m.role,
                    content=m.content,
                    timestamp=m.timestamp,
                    tokens=m.tokens,
                    model=m.model,
                )
                for m in entry.messages
            ],
            total_tokens=entry.total_tokens,
            summary=entry.summary,
            created_at=entry.created_at,
        )


class ChatHistoryResponse(_CamelModel):
    success: bool = True
    count: int
    data: list[ChatHistoryEntryResponse]


class ChatHistoryDetailEnvelope(_CamelModel):
    success: bool = True
    data: ChatHistoryEntryResponse


class ChatHistoryDeleteResponse(_CamelModel):
    success: bool = True
    message: str = "Chat history deleted successfully"


class ChatStatsData(_CamelModel):
    """Totals over the caller's active history plus lifetime uploads."""

    total_chats: int
    total_tokens: int
    total_messages: int
    documents_uploaded: int


class ChatStatsResponse(_CamelModel):
    success: bool = True
    data: ChatStatsData


# ---------------------------------------------------------------------------
# Health / errors
# ---------------------------------------------------------------------------


class HealthResponse(_CamelModel):
    """Application health check response."""

    status: str
    version: str
    provider: str
    circuit_breaker: dict[str, Any]


class ErrorResponse(_CamelModel):
    """Standard error response body."""

    success: bool = False
    error: str
    code: str
    retry_after: int | None = None
    current: int | None = None
    limit: int | None = None
    detail: str | None = None
