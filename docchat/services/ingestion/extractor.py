"""Plain-text extraction from uploaded files.

Dispatches on MIME type (falling back to the file extension):

    PDF   -> PyMuPDF (fitz), words of each page joined by single spaces,
             one trailing newline per page
    DOCX  -> python-docx, raw paragraph text (body and tables, document
             order) separated by blank lines
    other -> UTF-8 decode; undecodable bytes become U+FFFD

Extraction is pure: the same bytes always produce the same string.  The
MIME allow-list lives in the ingestion service, not here.
"""

from __future__ import annotations

import asyncio
from io import BytesIO

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from docx import Document as open_docx
from docx.oxml.ns import qn

from docchat.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class TextExtractor:
    """Turns file bytes into a single plain-text string."""

    def extract(self, file_bytes: bytes, mime_type: str, file_extension: str = "") -> str:
        """Extract text from *file_bytes*.

        Parameters
        ----------
        file_bytes:
            Raw upload content.
        mime_type:
            Declared MIME type of the upload.
        file_extension:
            Extension of the original filename (``".pdf"``), consulted when
            the MIME type is generic.

        Raises
        ------
        ExtractionError
            If a PDF or DOCX file cannot be parsed.
        """
        extension = file_extension.lower()
        if extension and not extension.startswith("."):
            extension = f".{extension}"

        if mime_type == PDF_MIME or extension == ".pdf":
            return self._extract_pdf(file_bytes)
        if mime_type == DOCX_MIME or extension == ".docx":
            return self._extract_docx(file_bytes)
        return file_bytes.decode("utf-8", errors="replace")

    async def extract_async(
        self,
        file_bytes: bytes,
        mime_type: str,
        file_extension: str = "",
    ) -> str:
        """Run :meth:`extract` in a worker thread to keep the event loop free."""
        return await asyncio.to_thread(self.extract, file_bytes, mime_type, file_extension)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_pdf(file_bytes: bytes) -> str:
        try:
            doc = fitz.open(stream=file_bytes, filetype="pdf")
        except Exception as exc:
            logger.warning("pdf_open_failed", size=len(file_bytes), error=str(exc))
            raise ExtractionError("Could not read PDF file") from exc

        parts: list[str] = []
        try:
            for page in doc:
                # Each entry is (x0, y0, x1, y1, word, block_no, line_no, word_no).
                words = page.get_text("words")
                parts.append(" ".join(word[4] for word in words))
                parts.append("\n")
        except Exception as exc:
            logger.warning("pdf_page_read_failed", error=str(exc))
            raise ExtractionError("Could not read PDF file") from exc
        finally:
            doc.close()

        logger.debug("pdf_extracted", pages=len(parts) // 2)
        return "".join(parts)

    @staticmethod
    def _extract_docx(file_bytes: bytes) -> str:
        try:
            doc = open_docx(BytesIO(file_bytes))
        except Exception as exc:
            logger.warning("docx_open_failed", size=len(file_bytes), error=str(exc))
            raise ExtractionError("Could not read Word document") from exc

        # Walk every w:p under the body so table cell paragraphs keep their
        # position relative to the surrounding text.
        paragraphs: list[str] = []
        for p_element in doc.element.body.iter(qn("w:p")):
            paragraphs.append("".join(t.text or "" for t in p_element.iter(qn("w:t"))))

        logger.debug("docx_extracted", paragraphs=len(paragraphs))
        return "\n\n".join(paragraphs)
