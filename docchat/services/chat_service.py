"""Request orchestration for the chat endpoints.

Flow for one question::

    resolve documents -> build prompt -> generate -> map failures
                                                  -> record history / stats

Documents are either the caller's explicit ids (caller order, owned and
active only) or the owner's most recent uploads.  Prompts that exceed
``max_prompt_chars`` are replaced by the minimal prompt up front, and a
primary attempt that exhausts its retries on timeouts gets one more try
with the minimal prompt (the answer is then flagged ``degraded``).

History and per-document stats are written after a successful answer and
only for known owners.  Those writes are best-effort: a failure is logged
and the answer is still returned.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

import structlog

from docchat.interfaces.document_store import IDocumentStore
from docchat.models.chat import (
    AnswerResult,
    ChatHistoryEntry,
    ChatMessage,
    ResponseMode,
    SourceDocument,
    StreamEvent,
)
from docchat.models.document import Document
from docchat.models.generation import GenerationOptions, GenerationResult
from docchat.services.generation.generation_client import GenerationClient
from docchat.services.ingestion.ingestion_service import UPLOAD_COUNTER_FIELD
from docchat.services.prompt_assembler import PromptAssembler
from docchat.utils.errors import (
    AuthenticationFailedError,
    ChatHistoryNotFoundError,
    ErrorKind,
    GenerationError,
    GenerationFailedError,
    InvalidRequestError,
    NoDocumentsError,
    QuotaExceededError,
    ServiceOverloadedError,
    ServiceUnavailableError,
    generation_error_for,
)

logger = structlog.get_logger(logger_name=__name__)

SUMMARY_QUESTION = "Please summarize these documents"
DEFAULT_RETRY_AFTER = 30.0
TITLE_CHARS = 50
HISTORY_SUMMARY_CHARS = 200

# Chat defaults: slower first retry than the client default.
DEFAULT_CHAT_OPTIONS = GenerationOptions(
    temperature=0.2,
    top_p=0.8,
    top_k=40,
    max_tokens=1000,
    max_attempts=3,
    base_delay=1.5,
)


def make_history_title(text: str) -> str:
    if len(text) > TITLE_CHARS:
        return text[:TITLE_CHARS] + "..."
    return text


def _source_documents(documents: Sequence[Document]) -> list[SourceDocument]:
    return [
        SourceDocument(id=doc.id, name=doc.original_name, chunks=doc.chunk_count)
        for doc in documents
    ]


class ChatService:
    """Answers questions about an owner's documents.

    Parameters
    ----------
    store:
        Document and chat-history persistence.
    assembler:
        Prompt construction.
    client:
        Resilient generation client (retries + circuit breaker).
    chat_options:
        Sampling and retry policy for chat calls.
    max_documents:
        Documents used per answer (default 5).
    stream_max_documents:
        Documents used per streamed answer (default 3).
    max_prompt_chars:
        Prompts longer than this fall back to the minimal prompt.
    """

    def __init__(
        self,
        store: IDocumentStore,
        assembler: PromptAssembler,
        client: GenerationClient,
        chat_options: GenerationOptions = DEFAULT_CHAT_OPTIONS,
        max_documents: int = 5,
        stream_max_documents: int = 3,
        max_prompt_chars: int = 12000,
    ) -> None:
        self._store = store
        self._assembler = assembler
        self._client = client
        self._options = chat_options
        self._max_documents = max_documents
        self._stream_max_documents = stream_max_documents
        self._max_prompt_chars = max_prompt_chars

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def answer(
        self,
        owner_id: str | None,
        question: str | None,
        document_ids: list[str] | None = None,
        mode: ResponseMode = ResponseMode.QUESTION,
    ) -> AnswerResult:
        """Answer *question* (or summarize) over the owner's documents.

        Raises
        ------
        InvalidRequestError
            Question mode without a question.
        NoDocumentsError
            When no documents resolve.
        ServiceOverloadedError, QuotaExceededError, AuthenticationFailedError,
        GenerationFailedError
            Mapped generation failures.
        """
        question = (question or "").strip()
        asked = question
        if mode is ResponseMode.QUESTION and not question:
            raise InvalidRequestError("Question is required for Q&A mode")
        if mode is ResponseMode.SUMMARY and not question:
            question = SUMMARY_QUESTION

        documents = await self._resolve_documents(owner_id, document_ids, self._max_documents)
        prompt, degraded = self._build_prompt(mode, question, documents)

        logger.info(
            "chat_request",
            owner_id=owner_id,
            mode=mode.value,
            documents=len(documents),
            prompt_chars=len(prompt),
            degraded=degraded,
        )

        try:
            try:
                result = await self._client.generate(prompt, self._options)
            except GenerationFailedError as exc:
                if degraded or exc.kind is not ErrorKind.DEADLINE_EXCEEDED:
                    raise
                logger.warning("chat_degraded_retry", owner_id=owner_id, attempts=exc.attempts)
                degraded = True
                result = await self._client.generate(
                    self._assembler.minimal_prompt(question, documents),
                    self._options.model_copy(update={"max_attempts": 1}),
                )
        except GenerationError as exc:
            raise self._map_failure(exc) from exc

        await self._record_exchange(
            owner_id, question, asked or mode.value, mode, documents, result
        )

        return AnswerResult(
            text=result.text,
            mode=mode,
            source_documents=_source_documents(documents),
            tokens_used=result.tokens_used,
            elapsed_ms=result.elapsed_ms,
            model_id=result.model_id,
            attempts=result.attempt_count,
            degraded=degraded,
        )

    async def summarize(
        self,
        owner_id: str | None,
        document_ids: list[str] | None = None,
    ) -> AnswerResult:
        """Summary-mode :meth:`answer`."""
        return await self.answer(
            owner_id,
            None,
            document_ids=document_ids,
            mode=ResponseMode.SUMMARY,
        )

    async def open_stream(
        self,
        owner_id: str | None,
        question: str | None,
        document_ids: list[str] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Resolve documents, then return an iterator of stream events.

        Precondition failures (missing question, no documents) raise here,
        before any event is produced, so the HTTP layer can answer with a
        normal error response instead of an event stream.
        """
        question = (question or "").strip()
        if not question:
            raise InvalidRequestError("Question is required")

        documents = await self._resolve_documents(
            owner_id, document_ids, self._stream_max_documents
        )
        prompt, _ = self._build_prompt(ResponseMode.QUESTION, question, documents)
        logger.info(
            "chat_stream_opened",
            owner_id=owner_id,
            documents=len(documents),
            prompt_chars=len(prompt),
        )
        return self._stream_events(prompt, documents)

    async def list_history(self, owner_id: str | None, limit: int = 20) -> list[ChatHistoryEntry]:
        """Return the owner's chat history, newest first.  Anonymous callers have none."""
        if owner_id is None:
            return []
        return await self._store.list_chat_history(owner_id, limit=limit)

    async def get_history(self, owner_id: str | None, history_id: str) -> ChatHistoryEntry:
        """Return one active history entry.

        Raises
        ------
        ChatHistoryNotFoundError
            Unknown, deleted, foreign, or the caller is anonymous.
        """
        entry = None
        if owner_id is not None:
            entry = await self._store.get_chat_history(owner_id, history_id)
        if entry is None:
            raise ChatHistoryNotFoundError(history_id)
        return entry

    async def delete_history(self, owner_id: str | None, history_id: str) -> None:
        """Soft-delete one history entry; it disappears from every listing."""
        deleted = False
        if owner_id is not None:
            deleted = await self._store.delete_chat_history(owner_id, history_id)
        if not deleted:
            raise ChatHistoryNotFoundError(history_id)

    async def history_stats(self, owner_id: str | None) -> dict[str, int]:
        """Totals over the owner's active history plus lifetime upload count."""
        if owner_id is None:
            return {
                "total_chats": 0,
                "total_tokens": 0,
                "total_messages": 0,
                "documents_uploaded": 0,
            }
        stats = await self._store.chat_history_stats(owner_id)
        counters = await self._store.get_owner_counters(owner_id)
        return {**stats, "documents_uploaded": counters.get(UPLOAD_COUNTER_FIELD, 0)}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _resolve_documents(
        self,
        owner_id: str | None,
        document_ids: list[str] | None,
        limit: int,
    ) -> list[Document]:
        if document_ids:
            documents = await self._store.find_documents(
                owner_id, document_ids=document_ids, limit=limit
            )
        else:
            documents = await self._store.find_documents(owner_id, limit=limit)
        if not documents:
            raise NoDocumentsError()
        return documents

    def _build_prompt(
        self,
        mode: ResponseMode,
        question: str,
        documents: Sequence[Document],
    ) -> tuple[str, bool]:
        prompt = self._assembler.build(mode, question, documents)
        if len(prompt) <= self._max_prompt_chars:
            return prompt, False
        logger.warning(
            "prompt_too_long",
            prompt_chars=len(prompt),
            limit=self._max_prompt_chars,
        )
        return self._assembler.minimal_prompt(question, documents), True

    async def _stream_events(
        self,
        prompt: str,
        documents: Sequence[Document],
    ) -> AsyncIterator[StreamEvent]:
        sources = [SourceDocument(id=doc.id, name=doc.original_name) for doc in documents]
        events = self._client.stream(prompt, self._options)
        try:
            async for event in events:
                if event.is_error:
                    yield self._map_stream_failure(event)
                elif event.done:
                    yield event.model_copy(update={"source_documents": sources})
                else:
                    yield event
        finally:
            await events.aclose()

    def _map_stream_failure(self, event: StreamEvent) -> StreamEvent:
        """Give a terminal stream error the same code ``answer`` would raise."""
        error = generation_error_for(
            event.kind or ErrorKind.UNKNOWN,
            event.error or "AI streaming failed",
        )
        mapped = self._map_failure(error)
        retry_after = None
        if isinstance(mapped, ServiceUnavailableError):
            retry_after = max(1, round(mapped.retry_after))
        return StreamEvent(
            done=True,
            error=mapped.message,
            code=mapped.code,
            kind=mapped.kind,
            retry_after=retry_after,
        )

    def _map_failure(self, exc: GenerationError) -> GenerationError:
        if isinstance(exc, (QuotaExceededError, AuthenticationFailedError)):
            return exc
        if isinstance(exc, ServiceUnavailableError) or exc.kind.overload:
            retry_after = self._client.breaker.retry_after() or DEFAULT_RETRY_AFTER
            return ServiceOverloadedError(retry_after=retry_after, provider_name=exc.provider_name)
        if isinstance(exc, GenerationFailedError):
            return exc
        return GenerationFailedError(last_error=exc, attempts=1)

    async def _record_exchange(
        self,
        owner_id: str | None,
        question: str,
        title: str,
        mode: ResponseMode,
        documents: Sequence[Document],
        result: GenerationResult,
    ) -> None:
        if owner_id is None:
            return

        entry = ChatHistoryEntry(
            owner_id=owner_id,
            document_id=documents[0].id,
            document_ids=[doc.id for doc in documents],
            title=make_history_title(title),
            messages=[
                ChatMessage(role="user", content=question),
                ChatMessage(
                    role="assistant",
                    content=result.text,
                    tokens=result.tokens_used,
                    model=result.model_id,
                ),
            ],
            total_tokens=result.tokens_used,
            summary=(result.text if mode is ResponseMode.SUMMARY else question)[
                :HISTORY_SUMMARY_CHARS
            ],
        )
        try:
            await self._store.append_chat_history(entry)
            for doc in documents:
                await self._store.increment_document_stats(doc.id, chats=1)
        except Exception as exc:
            logger.warning("chat_history_save_failed", owner_id=owner_id, error=str(exc))
