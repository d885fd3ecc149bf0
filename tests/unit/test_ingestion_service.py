"""Unit tests for IngestionService."""

from __future__ import annotations

import re
from unittest.mock import patch

import pytest

from docchat.providers.store.sqlite_document_store import SQLiteDocumentStore
from docchat.services.ingestion.chunker import TextChunker
from docchat.services.ingestion.extractor import PDF_MIME, TextExtractor
from docchat.services.ingestion.ingestion_service import (
    UPLOAD_COUNTER_FIELD,
    IngestionService,
    make_stored_filename,
    summarize_text,
)
from docchat.utils.errors import (
    DocumentLimitReachedError,
    DocumentNotFoundError,
    ExtractionError,
    FileTooLargeError,
    StorageError,
    UnsupportedFormatError,
)


def _service(store: SQLiteDocumentStore, **overrides) -> IngestionService:
    kwargs = {
        "store": store,
        "extractor": TextExtractor(),
        "chunker": TextChunker(chunk_size=1200),
        "max_upload_bytes": 1024,
        "max_documents_per_owner": 5,
        "summary_chars": 200,
    }
    kwargs.update(overrides)
    return IngestionService(**kwargs)


class _FailingCounterStore(SQLiteDocumentStore):
    async def increment_owner_counter(self, owner_id: str, field: str, delta: int = 1) -> None:
        raise StorageError("counter table locked", provider_name="sqlite")


class TestHelpers:
    def test_summary_gets_ellipsis_only_when_cut(self) -> None:
        assert summarize_text("short", 200) == "short"
        assert summarize_text("x" * 250, 200) == "x" * 200 + "..."
        assert summarize_text("x" * 200, 200) == "x" * 200

    def test_stored_filename_format(self) -> None:
        name = make_stored_filename("Q3 board report.pdf")
        assert re.fullmatch(r"\d+-\d+-Q3_board_report\.pdf", name)

    def test_stored_filename_drops_directories(self) -> None:
        assert make_stored_filename("../../etc/passwd").endswith("-passwd")


class TestValidateUpload:
    def test_mime_checked_before_size(self, store: SQLiteDocumentStore) -> None:
        service = _service(store)
        with pytest.raises(UnsupportedFormatError):
            service.validate_upload("image/png", 10_000_000)

    def test_size_ceiling(self, store: SQLiteDocumentStore) -> None:
        service = _service(store)
        service.validate_upload("text/plain", 1024)
        with pytest.raises(FileTooLargeError) as exc_info:
            service.validate_upload("text/plain", 1025)
        assert exc_info.value.limit == 1024


class TestIngest:
    @pytest.mark.asyncio
    async def test_text_upload_is_chunked_and_stored(self, store: SQLiteDocumentStore) -> None:
        service = _service(store, max_upload_bytes=10_000)
        text = "word " * 600  # 3000 chars

        document = await service.ingest("owner-1", text.encode(), "text/plain", "notes.txt")

        assert [len(c.text) for c in document.chunks] == [1200, 1200, 600]
        assert document.chunks[0].source.filename == "notes.txt"
        assert document.metadata.word_count == 600
        assert document.metadata.pages == 2
        assert document.metadata.summary.endswith("...")
        assert document.original_name == "notes.txt"
        assert document.size == len(text)

        stored = await store.find_documents("owner-1")
        assert [d.id for d in stored] == [document.id]
        assert stored[0].chunks == document.chunks

    @pytest.mark.asyncio
    async def test_pdf_upload(self, store: SQLiteDocumentStore, pdf_bytes: bytes) -> None:
        service = _service(store, max_upload_bytes=len(pdf_bytes))
        document = await service.ingest("owner-1", pdf_bytes, PDF_MIME, "report.pdf")
        assert document.chunks[0].text == "Quarterly revenue grew\nCosts were flat\n"

    @pytest.mark.asyncio
    async def test_owner_counter_incremented(self, store: SQLiteDocumentStore) -> None:
        service = _service(store)
        await service.ingest("owner-1", b"a", "text/plain", "a.txt")
        await service.ingest("owner-1", b"b", "text/plain", "b.txt")
        counters = await store.get_owner_counters("owner-1")
        assert counters[UPLOAD_COUNTER_FIELD] == 2

    @pytest.mark.asyncio
    async def test_counter_failure_does_not_fail_upload(self, tmp_path) -> None:
        failing = _FailingCounterStore(db_path=tmp_path / "failing.db")
        await failing.initialize()
        service = _service(failing)

        document = await service.ingest("owner-1", b"hello", "text/plain", "a.txt")

        assert await failing.count_active_documents("owner-1") == 1
        assert document.chunks[0].text == "hello"

    @pytest.mark.asyncio
    async def test_limit_of_five_active_documents(self, store: SQLiteDocumentStore) -> None:
        service = _service(store)
        for i in range(5):
            await service.ingest("owner-1", f"doc {i}".encode(), "text/plain", f"{i}.txt")

        with pytest.raises(DocumentLimitReachedError) as exc_info:
            await service.ingest("owner-1", b"six", "text/plain", "6.txt")

        assert exc_info.value.current == 5
        assert exc_info.value.limit == 5
        assert await store.count_active_documents("owner-1") == 5

    @pytest.mark.asyncio
    async def test_limit_is_per_owner(self, store: SQLiteDocumentStore) -> None:
        service = _service(store, max_documents_per_owner=1)
        await service.ingest("owner-1", b"a", "text/plain", "a.txt")
        await service.ingest("owner-2", b"b", "text/plain", "b.txt")
        assert await store.count_active_documents("owner-2") == 1

    @pytest.mark.asyncio
    async def test_soft_delete_frees_a_slot(self, store: SQLiteDocumentStore) -> None:
        service = _service(store, max_documents_per_owner=1)
        first = await service.ingest("owner-1", b"a", "text/plain", "a.txt")
        with pytest.raises(DocumentLimitReachedError):
            await service.ingest("owner-1", b"b", "text/plain", "b.txt")

        await service.delete_document("owner-1", first.id)
        second = await service.ingest("owner-1", b"b", "text/plain", "b.txt")

        remaining = await service.list_documents("owner-1")
        assert [d.id for d in remaining] == [second.id]

    @pytest.mark.asyncio
    async def test_extraction_failure_persists_nothing(self, store: SQLiteDocumentStore) -> None:
        service = _service(store)
        with pytest.raises(ExtractionError):
            await service.ingest("owner-1", b"not a pdf", PDF_MIME, "broken.pdf")
        assert await store.count_active_documents("owner-1") == 0
        assert await store.get_owner_counters("owner-1") == {}

    @pytest.mark.asyncio
    async def test_validation_runs_before_extraction(self, store: SQLiteDocumentStore) -> None:
        service = _service(store)
        with patch.object(TextExtractor, "extract") as mock_extract:
            with pytest.raises(UnsupportedFormatError):
                await service.ingest("owner-1", b"x", "image/png", "x.png")
        mock_extract.assert_not_called()


class TestLookup:
    @pytest.mark.asyncio
    async def test_get_document_records_a_view(self, store: SQLiteDocumentStore) -> None:
        service = _service(store)
        document = await service.ingest("owner-1", b"hello", "text/plain", "a.txt")

        await service.get_document("owner-1", document.id)
        again = await service.get_document("owner-1", document.id)

        assert again.stats.views >= 1

    @pytest.mark.asyncio
    async def test_foreign_document_is_not_found(self, store: SQLiteDocumentStore) -> None:
        service = _service(store)
        document = await service.ingest("owner-1", b"hello", "text/plain", "a.txt")

        with pytest.raises(DocumentNotFoundError):
            await service.get_document("owner-2", document.id)
        with pytest.raises(DocumentNotFoundError):
            await service.delete_document("owner-2", document.id)

    @pytest.mark.asyncio
    async def test_deleted_document_is_not_found(self, store: SQLiteDocumentStore) -> None:
        service = _service(store)
        document = await service.ingest("owner-1", b"hello", "text/plain", "a.txt")
        await service.delete_document("owner-1", document.id)

        with pytest.raises(DocumentNotFoundError):
            await service.get_document("owner-1", document.id)
        with pytest.raises(DocumentNotFoundError):
            await service.delete_document("owner-1", document.id)

    @pytest.mark.asyncio
    async def test_list_is_newest_first(self, store: SQLiteDocumentStore) -> None:
        service = _service(store)
        first = await service.ingest("owner-1", b"a", "text/plain", "a.txt")
        second = await service.ingest("owner-1", b"b", "text/plain", "b.txt")
        listed = await service.list_documents("owner-1")
        assert [d.id for d in listed] == [second.id, first.id]
