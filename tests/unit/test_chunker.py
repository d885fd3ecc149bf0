"""Unit tests for TextChunker and the page estimate."""

from __future__ import annotations

import math

import pytest

from docchat.services.ingestion.chunker import (
    TextChunker,
    estimate_page,
    estimate_page_count,
)


class TestEstimatePage:
    @pytest.mark.parametrize(
        ("offset", "page"),
        [(0, 1), (1499, 1), (1500, 2), (2999, 2), (3000, 3)],
    )
    def test_boundaries(self, offset: int, page: int) -> None:
        assert estimate_page(offset) == page

    def test_page_count_never_below_one(self) -> None:
        assert estimate_page_count(0) == 1
        assert estimate_page_count(1500) == 1
        assert estimate_page_count(1501) == 2


class TestTextChunker:
    def test_empty_text_yields_no_chunks(self) -> None:
        assert TextChunker().chunk("", "empty.txt") == []

    def test_rejects_non_positive_size(self) -> None:
        with pytest.raises(ValueError):
            TextChunker(chunk_size=0)
        with pytest.raises(ValueError):
            TextChunker().chunk("abc", "a.txt", chunk_size=-1)

    def test_3000_chars_split_1200_1200_600(self) -> None:
        text = "x" * 3000
        chunks = TextChunker().chunk(text, "report.txt")

        assert [len(c.text) for c in chunks] == [1200, 1200, 600]
        assert [(c.source.start, c.source.end) for c in chunks] == [
            (0, 1200),
            (1200, 2400),
            (2400, 3000),
        ]
        assert [c.source.page for c in chunks] == [1, 1, 2]
        assert all(c.source.filename == "report.txt" for c in chunks)

    @pytest.mark.parametrize("length", [1, 7, 1199, 1200, 1201, 5000])
    @pytest.mark.parametrize("size", [1, 13, 1200])
    def test_chunks_partition_the_text(self, length: int, size: int) -> None:
        text = "".join(chr(ord("a") + i % 26) for i in range(length))
        chunks = TextChunker().chunk(text, "t.txt", chunk_size=size)

        assert "".join(c.text for c in chunks) == text
        assert len(chunks) == math.ceil(length / size)
        assert chunks[0].source.start == 0
        assert chunks[-1].source.end == length
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev.source.end == nxt.source.start
        assert all(len(c.text) <= size for c in chunks)
        assert all(len(c.text) == size for c in chunks[:-1])

    def test_deterministic(self) -> None:
        text = "The quick brown fox. " * 200
        chunker = TextChunker(chunk_size=500)
        assert chunker.chunk(text, "a.txt") == chunker.chunk(text, "a.txt")

    def test_offsets_index_original_text(self) -> None:
        text = "alpha beta gamma delta " * 100
        for chunk in TextChunker(chunk_size=97).chunk(text, "a.txt"):
            assert text[chunk.source.start : chunk.source.end] == chunk.text
