"""Unit tests for TextExtractor (PDF / DOCX / plain text)."""

from __future__ import annotations

import pytest

from docchat.services.ingestion.extractor import DOCX_MIME, PDF_MIME, TextExtractor
from docchat.utils.errors import ExtractionError


@pytest.fixture
def extractor() -> TextExtractor:
    return TextExtractor()


class TestPlainText:
    def test_utf8_round_trip(self, extractor: TextExtractor) -> None:
        text = "Grüße, naïve café ✓"
        assert extractor.extract(text.encode("utf-8"), "text/plain", ".txt") == text

    def test_invalid_bytes_become_replacement_chars(self, extractor: TextExtractor) -> None:
        result = extractor.extract(b"ok \xff\xfe end", "text/plain", ".txt")
        assert result.startswith("ok ")
        assert result.endswith(" end")
        assert "�" in result

    def test_legacy_doc_is_decoded_not_parsed(self, extractor: TextExtractor) -> None:
        result = extractor.extract(b"\xd0\xcf\x11\xe0 legacy", "application/msword", ".doc")
        assert "legacy" in result


class TestPdf:
    def test_pages_in_order_with_trailing_newlines(
        self, extractor: TextExtractor, pdf_bytes: bytes
    ) -> None:
        result = extractor.extract(pdf_bytes, PDF_MIME, ".pdf")
        assert result == "Quarterly revenue grew\nCosts were flat\n"

    def test_extension_selects_pdf_parser(
        self, extractor: TextExtractor, pdf_bytes: bytes
    ) -> None:
        result = extractor.extract(pdf_bytes, "application/octet-stream", "PDF")
        assert result.startswith("Quarterly revenue grew")

    def test_corrupt_pdf_raises(self, extractor: TextExtractor) -> None:
        with pytest.raises(ExtractionError):
            extractor.extract(b"this is not a pdf at all", PDF_MIME, ".pdf")

    def test_idempotent(self, extractor: TextExtractor, pdf_bytes: bytes) -> None:
        assert extractor.extract(pdf_bytes, PDF_MIME) == extractor.extract(pdf_bytes, PDF_MIME)

    @pytest.mark.asyncio
    async def test_extract_async_matches_sync(
        self, extractor: TextExtractor, pdf_bytes: bytes
    ) -> None:
        assert await extractor.extract_async(pdf_bytes, PDF_MIME, ".pdf") == extractor.extract(
            pdf_bytes, PDF_MIME, ".pdf"
        )


class TestDocx:
    def test_paragraphs_and_tables_in_document_order(
        self, extractor: TextExtractor, docx_bytes: bytes
    ) -> None:
        result = extractor.extract(docx_bytes, DOCX_MIME, ".docx")
        assert result.index("Introduction paragraph") < result.index("Cell text")
        assert result.index("Cell text") < result.index("Closing paragraph")
        assert "\n\n" in result

    def test_corrupt_docx_raises(self, extractor: TextExtractor) -> None:
        with pytest.raises(ExtractionError):
            extractor.extract(b"PK\x03\x04 broken zip", DOCX_MIME, ".docx")
