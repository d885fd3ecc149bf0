"""Unit tests for PromptAssembler."""

from __future__ import annotations

import pytest

from docchat.models.chat import ResponseMode
from docchat.services.prompt_assembler import PromptAssembler
from tests.conftest import make_document


@pytest.fixture
def assembler() -> PromptAssembler:
    return PromptAssembler()


class TestQuestionPrompt:
    def test_single_document_exact_format(self, assembler: PromptAssembler) -> None:
        doc = make_document("d1", "Revenue grew 12%.", name="report.pdf")

        prompt = assembler.question_prompt("How much did revenue grow?", [doc])

        assert prompt == (
            "Based on these documents, answer the question concisely:\n\n"
            'Doc1 "report.pdf": Revenue grew 12%.\n\n'
            "Q: How much did revenue grow?\nA:"
        )

    def test_two_documents_are_separated_and_numbered(
        self, assembler: PromptAssembler
    ) -> None:
        first = make_document("d1", "alpha", name="a.txt")
        second = make_document("d2", "beta", name="b.txt")

        prompt = assembler.question_prompt("What?", [first, second])

        assert 'Doc1 "a.txt": alpha\n---\nDoc2 "b.txt": beta' in prompt
        assert prompt.index("Doc1") < prompt.index("Doc2")

    def test_first_four_chunks_truncated_to_500(self, assembler: PromptAssembler) -> None:
        text = "".join(ch * 1000 for ch in "abcdef")
        doc = make_document("d1", text, name="long.txt", chunk_size=1000)

        prompt = assembler.question_prompt("q", [doc])

        body = prompt.split('Doc1 "long.txt": ', 1)[1].split("\n\nQ: ", 1)[0]
        assert body.split("\n\n") == ["a" * 500, "b" * 500, "c" * 500, "d" * 500]
        assert "e" not in body

    def test_documents_beyond_max_are_ignored(self) -> None:
        assembler = PromptAssembler(max_documents=2)
        docs = [make_document(f"d{i}", f"text{i}", name=f"{i}.txt") for i in range(4)]

        prompt = assembler.question_prompt("q", docs)

        assert "Doc2" in prompt
        assert "Doc3" not in prompt

    def test_length_bound_is_tight(self, assembler: PromptAssembler) -> None:
        names = [f"document-{i}.pdf" for i in range(5)]
        docs = [
            make_document(f"d{i}", "z" * 5000, name=name, chunk_size=600)
            for i, name in enumerate(names)
        ]
        question = "What are the main risks?"

        prompt = assembler.question_prompt(question, docs)

        assert len(prompt) == assembler.max_question_prompt_length(question, names)

    def test_short_documents_stay_under_bound(self, assembler: PromptAssembler) -> None:
        docs = [make_document("d1", "tiny", name="t.txt")]
        prompt = assembler.question_prompt("q", docs)
        assert len(prompt) < assembler.max_question_prompt_length("q", ["t.txt"])

    def test_build_dispatches_on_mode(self, assembler: PromptAssembler) -> None:
        doc = make_document("d1", "text", name="a.txt")
        assert assembler.build(ResponseMode.QUESTION, "q", [doc]).endswith("Q: q\nA:")
        assert assembler.build(ResponseMode.SUMMARY, "q", [doc]).endswith("Summary:")


class TestSummaryPrompt:
    def test_exact_format(self, assembler: PromptAssembler) -> None:
        doc = make_document("d1", "x" * 900, name="a.txt", chunk_size=300)

        prompt = assembler.summary_prompt([doc])

        assert prompt == (
            "Summarize these documents briefly:\n\n"
            'Doc1 "a.txt": ' + "\n".join(["x" * 300] * 3) + "\n\nSummary:"
        )

    def test_five_chunks_truncated_to_400(self, assembler: PromptAssembler) -> None:
        doc = make_document("d1", "y" * 6000, name="a.txt", chunk_size=1000)
        body = assembler.summary_prompt([doc]).split('Doc1 "a.txt": ', 1)[1]
        assert body.split("\n\nSummary:")[0].split("\n") == ["y" * 400] * 5


class TestMinimalPrompt:
    def test_one_excerpt_per_document(self, assembler: PromptAssembler) -> None:
        first = make_document("d1", "a" * 1000, name="a.txt")
        second = make_document("d2", "short", name="b.txt")

        prompt = assembler.minimal_prompt("Why?", [first, second])

        assert prompt == f"a.txt: {'a' * 200}\nb.txt: short\n\nQ: Why?\nA:"

    def test_document_without_chunks(self, assembler: PromptAssembler) -> None:
        empty = make_document("d1", "", name="empty.txt")
        assert assembler.minimal_prompt("q", [empty]) == "empty.txt: \n\nQ: q\nA:"


class TestFromConfig:
    def test_reads_prompt_section(self) -> None:
        assembler = PromptAssembler.from_config(
            {"max_documents": 1, "question_chunks_per_document": 1, "question_chunk_chars": 3}
        )
        docs = [
            make_document("d1", "abcdef", name="a.txt"),
            make_document("d2", "ghi", name="b.txt"),
        ]
        assert assembler.question_prompt("q", docs) == (
            "Based on these documents, answer the question concisely:\n\n"
            'Doc1 "a.txt": abc\n\nQ: q\nA:'
        )
