"""FastAPI routes for docchat.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.  The owner of every request is
taken from the ``X-Owner-Id`` header set by the upstream auth layer; a
missing header means an anonymous caller.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                    Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/files/upload        POST    Upload a document (multipart "file")
# /api/v1/files               GET     List the caller's active documents
# /api/v1/files/{id}          GET     One document with chunks (+1 view)
# /api/v1/files/{id}          DELETE  Soft-delete a document
# /api/v1/chat                POST    Answer a question / summarize
# /api/v1/chat/summarize      POST    Summarize documents
# /api/v1/chat/stream         POST    Streamed answer (Server-Sent Events)
# /api/v1/chat/history        GET     The caller's chat history
# /api/v1/chat/history/stats/summary
#                             GET     History totals + lifetime uploads
# /api/v1/chat/history/{id}   GET     One history entry
# /api/v1/chat/history/{id}   DELETE  Soft-delete a history entry
# /api/v1/health              GET     Provider + circuit breaker state
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from docchat.api.schemas import (
    ChatAnswerData,
    ChatHistoryDeleteResponse,
    ChatHistoryDetailEnvelope,
    ChatHistoryEntryResponse,
    ChatHistoryResponse,
    ChatRequest,
    ChatResponse,
    ChatStatsData,
    ChatStatsResponse,
    ChatStreamRequest,
    DeleteResponse,
    DocumentDetailEnvelope,
    DocumentDetailResponse,
    DocumentListResponse,
    DocumentSummaryResponse,
    DocumentUploadResponse,
    ErrorResponse,
    HealthResponse,
    SummarizeRequest,
)
from docchat.services.chat_service import ChatService
from docchat.services.generation.generation_client import GenerationClient
from docchat.services.ingestion.ingestion_service import IngestionService
from docchat.utils.errors import FileTooLargeError
from docchat.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

# Uploads are read in 64 KB pieces so oversized bodies are rejected after
# buffering at most one piece past the ceiling.
_UPLOAD_CHUNK_SIZE = 64 * 1024


# ---------------------------------------------------------------------------
# Dependency helpers
# ---------------------------------------------------------------------------


def _get_ingestion_service(request: Request) -> IngestionService:
    """Return the ingestion service from application state."""
    return request.app.state.ingestion_service


def _get_chat_service(request: Request) -> ChatService:
    """Return the chat orchestrator from application state."""
    return request.app.state.chat_service


def _get_generation_client(request: Request) -> GenerationClient:
    return request.app.state.generation_client


def _get_owner_id(
    x_owner_id: Annotated[str | None, Header()] = None,
) -> str | None:
    """Owner id supplied by the auth layer; blank or missing means anonymous."""
    if x_owner_id is None:
        return None
    return x_owner_id.strip() or None


IngestionDep = Annotated[IngestionService, Depends(_get_ingestion_service)]
ChatDep = Annotated[ChatService, Depends(_get_chat_service)]
GenerationClientDep = Annotated[GenerationClient, Depends(_get_generation_client)]
OwnerDep = Annotated[str | None, Depends(_get_owner_id)]


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@router.post(
    "/files/upload",
    response_model=DocumentUploadResponse,
    status_code=201,
    responses={
        403: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
    summary="Upload a document for Q&A",
)
async def upload_document(
    file: UploadFile,
    owner_id: OwnerDep,
    ingestion: IngestionDep,
) -> DocumentUploadResponse:
    """Accept a PDF / Word / text file, extract and chunk it, and store it."""
    content_type = file.content_type or ""
    # MIME check before reading any of the body.
    ingestion.validate_upload(content_type, 0)

    pieces: list[bytes] = []
    total_size = 0
    while True:
        piece = await file.read(_UPLOAD_CHUNK_SIZE)
        if not piece:
            break
        total_size += len(piece)
        if total_size > ingestion.max_upload_bytes:
            raise FileTooLargeError(size=total_size, limit=ingestion.max_upload_bytes)
        pieces.append(piece)
    file_bytes = b"".join(pieces)
    del pieces

    document = await ingestion.ingest(
        owner_id,
        file_bytes,
        content_type,
        file.filename or "upload",
        file_size=total_size,
    )
    return DocumentUploadResponse(data=DocumentSummaryResponse.from_document(document))


@router.get(
    "/files",
    response_model=DocumentListResponse,
    summary="List the caller's documents",
)
async def list_documents(owner_id: OwnerDep, ingestion: IngestionDep) -> DocumentListResponse:
    documents = await ingestion.list_documents(owner_id)
    return DocumentListResponse(
        count=len(documents),
        data=[DocumentSummaryResponse.from_document(doc) for doc in documents],
    )


@router.get(
    "/files/{document_id}",
    response_model=DocumentDetailEnvelope,
    responses={404: {"model": ErrorResponse}},
    summary="Fetch one document with its chunks",
)
async def get_document(
    document_id: str,
    owner_id: OwnerDep,
    ingestion: IngestionDep,
) -> DocumentDetailEnvelope:
    document = await ingestion.get_document(owner_id, document_id)
    return DocumentDetailEnvelope(data=DocumentDetailResponse.from_document(document))


@router.delete(
    "/files/{document_id}",
    response_model=DeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a document",
)
async def delete_document(
    document_id: str,
    owner_id: OwnerDep,
    ingestion: IngestionDep,
) -> DeleteResponse:
    await ingestion.delete_document(owner_id, document_id)
    return DeleteResponse()


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Ask a question about the caller's documents",
)
async def chat(body: ChatRequest, owner_id: OwnerDep, chat_service: ChatDep) -> ChatResponse:
    result = await chat_service.answer(
        owner_id,
        body.question,
        document_ids=body.document_ids,
        mode=body.type,
    )
    return ChatResponse(data=ChatAnswerData.from_result(result))


@router.post(
    "/chat/summarize",
    response_model=ChatResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Summarize the caller's documents",
)
async def summarize(
    body: SummarizeRequest,
    owner_id: OwnerDep,
    chat_service: ChatDep,
) -> ChatResponse:
    result = await chat_service.summarize(owner_id, document_ids=body.document_ids)
    return ChatResponse(data=ChatAnswerData.from_result(result))


@router.post(
    "/chat/stream",
    responses={404: {"model": ErrorResponse}},
    summary="Stream an answer as Server-Sent Events",
)
async def chat_stream(
    body: ChatStreamRequest,
    request: Request,
    owner_id: OwnerDep,
    chat_service: ChatDep,
) -> StreamingResponse:
    """Each event is ``data: {json}\\n\\n``; the last one has ``done: true``."""
    events = await chat_service.open_stream(owner_id, body.question, body.document_ids)

    async def event_source() -> AsyncIterator[str]:
        try:
            async for event in events:
                if await request.is_disconnected():
                    _logger.info("chat_stream_client_disconnected", owner_id=owner_id)
                    break
                yield f"data: {json.dumps(event.to_payload())}\n\n"
        finally:
            await events.aclose()

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get(
    "/chat/history",
    response_model=ChatHistoryResponse,
    summary="The caller's chat history, newest first",
)
async def chat_history(
    owner_id: OwnerDep,
    chat_service: ChatDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ChatHistoryResponse:
    entries = await chat_service.list_history(owner_id, limit=limit)
    return ChatHistoryResponse(
        count=len(entries),
        data=[ChatHistoryEntryResponse.from_entry(entry) for entry in entries],
    )


@router.get(
    "/chat/history/stats/summary",
    response_model=ChatStatsResponse,
    summary="Totals over the caller's chat history",
)
async def chat_history_stats(owner_id: OwnerDep, chat_service: ChatDep) -> ChatStatsResponse:
    stats = await chat_service.history_stats(owner_id)
    return ChatStatsResponse(data=ChatStatsData(**stats))


@router.get(
    "/chat/history/{history_id}",
    response_model=ChatHistoryDetailEnvelope,
    responses={404: {"model": ErrorResponse}},
    summary="Fetch one chat history entry",
)
async def get_chat_history(
    history_id: str,
    owner_id: OwnerDep,
    chat_service: ChatDep,
) -> ChatHistoryDetailEnvelope:
    entry = await chat_service.get_history(owner_id, history_id)
    return ChatHistoryDetailEnvelope(data=ChatHistoryEntryResponse.from_entry(entry))


@router.delete(
    "/chat/history/{history_id}",
    response_model=ChatHistoryDeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a chat history entry",
)
async def delete_chat_history(
    history_id: str,
    owner_id: OwnerDep,
    chat_service: ChatDep,
) -> ChatHistoryDeleteResponse:
    await chat_service.delete_history(owner_id, history_id)
    return ChatHistoryDeleteResponse()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request, client: GenerationClientDep) -> HealthResponse:
    """Report the generation provider and circuit breaker state."""
    snapshot = client.breaker.snapshot()
    return HealthResponse(
        status="degraded" if snapshot["state"] == "open" else "healthy",
        version=request.app.version,
        provider=client.provider_name,
        circuit_breaker=snapshot,
    )
