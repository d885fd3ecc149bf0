"""Shared pytest fixtures for the docchat test suite."""

from __future__ import annotations

import io
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import fitz
import pytest
import pytest_asyncio
from docx import Document as DocxDocument

from docchat.interfaces.generation_provider import IGenerationProvider
from docchat.models.document import Document, DocumentMetadata
from docchat.models.generation import GenerationOptions, ProviderCompletion
from docchat.providers.store.sqlite_document_store import SQLiteDocumentStore
from docchat.services.ingestion.chunker import TextChunker


# ---------------------------------------------------------------------------
# Fake generation provider
# ---------------------------------------------------------------------------


class FakeGenerationProvider(IGenerationProvider):
    """Scripted provider: each call pops the next outcome.

    An outcome is either response text or an exception instance to raise.
    When the script runs out, ``default`` is returned.
    """

    def __init__(
        self,
        outcomes: Sequence[str | Exception] = (),
        default: str = "fake answer",
        fragments: Sequence[str] = ("Hello", " ", "world"),
        stream_error: Exception | None = None,
    ) -> None:
        self.outcomes = list(outcomes)
        self.default = default
        self.fragments = list(fragments)
        self.stream_error = stream_error
        self.prompts: list[str] = []
        self.options: list[GenerationOptions] = []
        self.stream_closed = False

    async def generate(self, prompt: str, options: GenerationOptions) -> ProviderCompletion:
        self.prompts.append(prompt)
        self.options.append(options)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return ProviderCompletion(text=outcome, tokens_used=42, model_id="fake-model")

    async def stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        try:
            for fragment in self.fragments:
                yield fragment
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.stream_closed = True

    def get_provider_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True

    async def validate_credentials(self) -> bool:
        return True


@pytest.fixture
def fake_provider() -> FakeGenerationProvider:
    return FakeGenerationProvider()


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def make_document(
    doc_id: str,
    text: str,
    owner_id: str | None = "owner-1",
    name: str | None = None,
    chunk_size: int = 1200,
) -> Document:
    """Build a Document whose chunks come from the real chunker."""
    original_name = name or f"{doc_id}.txt"
    chunks = TextChunker(chunk_size=chunk_size).chunk(text, original_name)
    return Document(
        id=doc_id,
        owner_id=owner_id,
        filename=f"stored-{original_name}",
        original_name=original_name,
        mime_type="text/plain",
        size=len(text.encode()),
        chunks=tuple(chunks),
        metadata=DocumentMetadata(word_count=len(text.split())),
    )


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteDocumentStore:
    """An initialized SQLite store in a temp directory."""
    document_store = SQLiteDocumentStore(db_path=tmp_path / "docchat-test.db")
    await document_store.initialize()
    return document_store


# ---------------------------------------------------------------------------
# File fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def pdf_bytes() -> bytes:
    """A two-page PDF with one line of text per page."""
    doc = fitz.open()
    first = doc.new_page()
    first.insert_text((72, 72), "Quarterly revenue grew")
    second = doc.new_page()
    second.insert_text((72, 72), "Costs were flat")
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def docx_bytes() -> bytes:
    """A DOCX with two paragraphs surrounding a one-cell table."""
    doc = DocxDocument()
    doc.add_paragraph("Introduction paragraph")
    table = doc.add_table(rows=1, cols=1)
    table.cell(0, 0).text = "Cell text"
    doc.add_paragraph("Closing paragraph")
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()
