"""Fixed-size, non-overlapping text chunking with positional metadata.

Chunks are consecutive ``chunk_size`` character windows taken left to
right; the last one may be shorter.  Boundaries depend only on the text
length and the chunk size, so re-chunking the same text always yields the
same result.  Splitting ignores paragraphs and sentences; prompt assembly
selects chunks by position, not by content.
"""

from __future__ import annotations

import math

import structlog

from docchat.models.document import Chunk, ChunkSource

logger = structlog.get_logger(logger_name=__name__)

# Page estimate: ~5 characters per word, ~300 words per page.
CHARS_PER_WORD = 5
WORDS_PER_PAGE = 300
CHARS_PER_PAGE = CHARS_PER_WORD * WORDS_PER_PAGE

DEFAULT_CHUNK_SIZE = 1200


def estimate_page(char_offset: int) -> int:
    """Return the 1-based page a character offset probably falls on."""
    return max(0, char_offset) // CHARS_PER_PAGE + 1


def estimate_page_count(text_length: int) -> int:
    """Estimated number of pages for a text of *text_length* characters."""
    return max(1, math.ceil(text_length / CHARS_PER_PAGE))


class TextChunker:
    """Splits text into fixed-size :class:`Chunk` windows.

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk (default 1200).
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            msg = f"chunk_size must be positive, got {chunk_size}"
            raise ValueError(msg)
        self._chunk_size = chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def chunk(
        self,
        text: str,
        source_filename: str,
        chunk_size: int | None = None,
    ) -> list[Chunk]:
        """Split *text* into chunks tagged with *source_filename*.

        Concatenating the returned chunk texts reproduces *text* exactly.
        Empty input returns an empty list.  *chunk_size* overrides the
        instance default for this call.
        """
        size = self._chunk_size if chunk_size is None else chunk_size
        if size <= 0:
            msg = f"chunk_size must be positive, got {size}"
            raise ValueError(msg)

        chunks: list[Chunk] = []
        for start in range(0, len(text), size):
            end = min(start + size, len(text))
            chunks.append(
                Chunk(
                    text=text[start:end],
                    source=ChunkSource(
                        filename=source_filename,
                        page=estimate_page(start),
                        start=start,
                        end=end,
                    ),
                )
            )

        logger.debug(
            "chunking_complete",
            filename=source_filename,
            num_chunks=len(chunks),
            chunk_size=size,
        )
        return chunks
