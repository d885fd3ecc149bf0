"""Prompt construction for document Q&A and summarization.

Context is selected purely by position: the first few chunks of each
document, each truncated, in the order the documents were given.  There is
no relevance ranking, so the prompt size is bounded by the configuration
alone (see :meth:`PromptAssembler.max_question_prompt_length`).

Three shapes are produced::

    question  Based on these documents, answer the question concisely:

              Doc1 "a.pdf": <chunk>\\n\\n<chunk>...
              ---
              Doc2 "b.txt": ...

              Q: <question>
              A:

    summary   Summarize these documents briefly: ... Summary:
    minimal   <name>: <first 200 chars> lines, then Q/A (fallback only)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from docchat.models.chat import ResponseMode
from docchat.models.document import Document

QUESTION_PREAMBLE = "Based on these documents, answer the question concisely:"
SUMMARY_PREAMBLE = "Summarize these documents briefly:"
DOCUMENT_SEPARATOR = "\n---\n"
QUESTION_CHUNK_SEPARATOR = "\n\n"
SUMMARY_CHUNK_SEPARATOR = "\n"


def _label(index: int, name: str) -> str:
    return f'Doc{index} "{name}": '


class PromptAssembler:
    """Builds generation prompts from documents.

    Parameters
    ----------
    max_documents:
        Documents beyond this many are ignored.
    question_chunks_per_document, question_chunk_chars:
        How much of each document a question prompt includes.
    summary_chunks_per_document, summary_chunk_chars:
        The same for summary prompts.
    minimal_chunk_chars:
        Truncation of the single chunk used by the minimal prompt.
    """

    def __init__(
        self,
        max_documents: int = 5,
        question_chunks_per_document: int = 4,
        question_chunk_chars: int = 500,
        summary_chunks_per_document: int = 5,
        summary_chunk_chars: int = 400,
        minimal_chunk_chars: int = 200,
    ) -> None:
        self._max_documents = max_documents
        self._question_chunks = question_chunks_per_document
        self._question_chars = question_chunk_chars
        self._summary_chunks = summary_chunks_per_document
        self._summary_chars = summary_chunk_chars
        self._minimal_chars = minimal_chunk_chars

    @classmethod
    def from_config(cls, prompt_config: dict[str, Any]) -> PromptAssembler:
        """Build from the ``prompt`` section of config.yaml."""
        return cls(
            max_documents=prompt_config.get("max_documents", 5),
            question_chunks_per_document=prompt_config.get("question_chunks_per_document", 4),
            question_chunk_chars=prompt_config.get("question_chunk_chars", 500),
            summary_chunks_per_document=prompt_config.get("summary_chunks_per_document", 5),
            summary_chunk_chars=prompt_config.get("summary_chunk_chars", 400),
            minimal_chunk_chars=prompt_config.get("minimal_chunk_chars", 200),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, mode: ResponseMode, question: str, documents: Sequence[Document]) -> str:
        if mode is ResponseMode.SUMMARY:
            return self.summary_prompt(documents)
        return self.question_prompt(question, documents)

    def question_prompt(self, question: str, documents: Sequence[Document]) -> str:
        context = self._context(
            documents,
            chunks_per_document=self._question_chunks,
            chunk_chars=self._question_chars,
            chunk_separator=QUESTION_CHUNK_SEPARATOR,
        )
        return f"{QUESTION_PREAMBLE}\n\n{context}\n\nQ: {question}\nA:"

    def summary_prompt(self, documents: Sequence[Document]) -> str:
        content = self._context(
            documents,
            chunks_per_document=self._summary_chunks,
            chunk_chars=self._summary_chars,
            chunk_separator=SUMMARY_CHUNK_SEPARATOR,
        )
        return f"{SUMMARY_PREAMBLE}\n\n{content}\n\nSummary:"

    def minimal_prompt(self, question: str, documents: Sequence[Document]) -> str:
        """Degraded prompt: one short excerpt per document."""
        lines = []
        for doc in documents[: self._max_documents]:
            excerpt = doc.chunks[0].text[: self._minimal_chars] if doc.chunks else ""
            lines.append(f"{doc.original_name}: {excerpt}")
        return "\n".join(lines) + f"\n\nQ: {question}\nA:"

    def max_question_prompt_length(self, question: str, names: Iterable[str]) -> int:
        """Upper bound on ``len(question_prompt(question, docs))`` for documents named *names*.

        Reached exactly when every document has at least
        ``question_chunks_per_document`` chunks of at least
        ``question_chunk_chars`` characters.
        """
        capped = list(names)[: self._max_documents]
        per_document = (
            self._question_chunks * self._question_chars
            + max(0, self._question_chunks - 1) * len(QUESTION_CHUNK_SEPARATOR)
        )
        context = (
            sum(len(_label(i, name)) for i, name in enumerate(capped, start=1))
            + len(capped) * per_document
            + max(0, len(capped) - 1) * len(DOCUMENT_SEPARATOR)
        )
        return (
            len(QUESTION_PREAMBLE)
            + len("\n\n")
            + context
            + len("\n\nQ: ")
            + len(question)
            + len("\nA:")
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _context(
        self,
        documents: Sequence[Document],
        chunks_per_document: int,
        chunk_chars: int,
        chunk_separator: str,
    ) -> str:
        sections = []
        for i, doc in enumerate(documents[: self._max_documents], start=1):
            body = chunk_separator.join(
                chunk.text[:chunk_chars] for chunk in doc.chunks[:chunks_per_document]
            )
            sections.append(_label(i, doc.original_name) + body)
        return DOCUMENT_SEPARATOR.join(sections)
