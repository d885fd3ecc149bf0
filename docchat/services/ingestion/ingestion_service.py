"""Orchestrator for document uploads.

Pipeline stages: **validate -> extract -> chunk -> describe -> store**.

    1. validate  -- MIME allow-list, size ceiling, per-owner document limit
    2. extract   -- TextExtractor turns PDF / DOCX / text bytes into a string
    3. chunk     -- TextChunker splits it into fixed-size positional windows
    4. describe  -- word count, summary and estimated page count
    5. store     -- IDocumentStore persists the document

Every validation failure aborts before any work is done, and an extraction
failure persists nothing.  After the document write succeeds the owner's
``documents_uploaded`` counter is bumped best-effort: a failure there is
logged, never raised.

The document limit check and the insert are not atomic, so two concurrent
uploads from the same owner can momentarily overshoot the limit.
"""

from __future__ import annotations

import random
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

import structlog

from docchat.interfaces.document_store import IDocumentStore
from docchat.models.document import Document, DocumentMetadata
from docchat.services.ingestion.chunker import TextChunker, estimate_page_count
from docchat.services.ingestion.extractor import DOCX_MIME, PDF_MIME, TextExtractor
from docchat.utils.errors import (
    DocumentLimitReachedError,
    DocumentNotFoundError,
    FileTooLargeError,
    UnsupportedFormatError,
)

logger = structlog.get_logger(logger_name=__name__)

ALLOWED_MIME_TYPES = frozenset(
    {
        PDF_MIME,
        "application/msword",
        DOCX_MIME,
        "text/plain",
    }
)

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_MAX_DOCUMENTS = 5
DEFAULT_SUMMARY_CHARS = 200

UPLOAD_COUNTER_FIELD = "documents_uploaded"

_WHITESPACE_RE = re.compile(r"\s+")


def make_stored_filename(original_name: str) -> str:
    """Return a collision-resistant storage name: ``<epoch-ms>-<random>-<name>``."""
    safe_name = _WHITESPACE_RE.sub("_", Path(original_name).name) or "upload"
    return f"{int(time.time() * 1000)}-{random.randint(0, 999_999_999)}-{safe_name}"


def summarize_text(text: str, max_chars: int = DEFAULT_SUMMARY_CHARS) -> str:
    """First *max_chars* characters, with an ellipsis when the text was cut."""
    if len(text) > max_chars:
        return text[:max_chars] + "..."
    return text


class IngestionService:
    """Validates uploads and turns them into stored :class:`Document` objects.

    Parameters
    ----------
    store:
        Persistence for documents and owner counters.
    extractor:
        Format-specific text extraction.
    chunker:
        Fixed-size chunking.
    max_upload_bytes:
        Size ceiling for a single upload (default 10 MiB).
    max_documents_per_owner:
        Active document limit per owner (default 5).
    summary_chars:
        Length of the stored summary preview.
    """

    def __init__(
        self,
        store: IDocumentStore,
        extractor: TextExtractor,
        chunker: TextChunker,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        max_documents_per_owner: int = DEFAULT_MAX_DOCUMENTS,
        summary_chars: int = DEFAULT_SUMMARY_CHARS,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._chunker = chunker
        self._max_upload_bytes = max_upload_bytes
        self._max_documents = max_documents_per_owner
        self._summary_chars = summary_chars

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate_upload(self, mime_type: str, size: int) -> None:
        """Apply the MIME and size checks, in that order.

        Raises
        ------
        UnsupportedFormatError
            If *mime_type* is not an accepted upload type.
        FileTooLargeError
            If *size* exceeds the upload ceiling.
        """
        if mime_type not in ALLOWED_MIME_TYPES:
            raise UnsupportedFormatError(mime_type, allowed=ALLOWED_MIME_TYPES)
        if size > self._max_upload_bytes:
            raise FileTooLargeError(size=size, limit=self._max_upload_bytes)

    async def ingest(
        self,
        owner_id: str | None,
        file_bytes: bytes,
        mime_type: str,
        original_filename: str,
        file_size: int | None = None,
    ) -> Document:
        """Validate, extract, chunk and persist one uploaded file.

        Raises
        ------
        UnsupportedFormatError, FileTooLargeError
            From :meth:`validate_upload`.
        DocumentLimitReachedError
            If *owner_id* already has the maximum number of active documents.
        ExtractionError
            If the file cannot be parsed.
        """
        size = len(file_bytes) if file_size is None else file_size
        self.validate_upload(mime_type, size)

        if owner_id is not None:
            current = await self._store.count_active_documents(owner_id)
            if current >= self._max_documents:
                logger.info(
                    "document_limit_reached",
                    owner_id=owner_id,
                    current=current,
                    limit=self._max_documents,
                )
                raise DocumentLimitReachedError(current=current, limit=self._max_documents)

        text = await self._extractor.extract_async(
            file_bytes,
            mime_type,
            Path(original_filename).suffix,
        )
        chunks = self._chunker.chunk(text, original_filename)

        now = datetime.now(tz=timezone.utc)
        document = Document(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            filename=make_stored_filename(original_filename),
            original_name=original_filename,
            mime_type=mime_type,
            size=size,
            chunks=tuple(chunks),
            metadata=DocumentMetadata(
                pages=estimate_page_count(len(text)),
                word_count=len(text.split()),
                summary=summarize_text(text, self._summary_chars),
            ),
            created_at=now,
        )
        await self._store.create_document(document)

        logger.info(
            "document_ingested",
            document_id=document.id,
            owner_id=owner_id,
            mime_type=mime_type,
            size=size,
            chars=len(text),
            chunks=len(chunks),
        )

        if owner_id is not None:
            try:
                await self._store.increment_owner_counter(owner_id, UPLOAD_COUNTER_FIELD)
            except Exception as exc:
                logger.warning(
                    "owner_counter_update_failed",
                    owner_id=owner_id,
                    document_id=document.id,
                    error=str(exc),
                )

        return document

    async def list_documents(self, owner_id: str | None) -> list[Document]:
        """Return the owner's active documents, newest first."""
        return await self._store.find_documents(owner_id)

    async def get_document(self, owner_id: str | None, document_id: str) -> Document:
        """Return one active document and record the view.

        Raises
        ------
        DocumentNotFoundError
            If the document is missing, deleted, or owned by someone else.
        """
        found = await self._store.find_documents(owner_id, document_ids=[document_id])
        if not found:
            raise DocumentNotFoundError(document_id)

        try:
            await self._store.increment_document_stats(document_id, views=1)
        except Exception as exc:
            logger.warning("document_view_update_failed", document_id=document_id, error=str(exc))
        return found[0]

    async def delete_document(self, owner_id: str | None, document_id: str) -> None:
        """Soft-delete a document, freeing one slot under the owner's limit.

        Raises
        ------
        DocumentNotFoundError
            If the document is missing, already deleted, or foreign.
        """
        found = await self._store.find_documents(owner_id, document_ids=[document_id])
        if not found:
            raise DocumentNotFoundError(document_id)

        await self._store.update_document_fields(
            document_id,
            {"is_active": False, "deleted_at": datetime.now(tz=timezone.utc)},
        )
        logger.info("document_deleted", document_id=document_id, owner_id=owner_id)
