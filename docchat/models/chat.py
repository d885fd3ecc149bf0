"""Chat request/answer models, chat history records and stream events."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docchat.utils.errors import ErrorKind


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ResponseMode(str, Enum):
    """Which prompt shape the orchestrator builds."""

    QUESTION = "question"
    SUMMARY = "summary"


class SourceDocument(BaseModel):
    """A document that contributed context to an answer."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    chunks: int = 0


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str = Field(pattern="^(user|assistant)$")
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    tokens: int = 0
    model: str | None = None


class ChatHistoryEntry(BaseModel):
    """One question/answer exchange persisted for an owner."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    owner_id: str
    document_id: str = Field(description="Primary (first) source document.")
    document_ids: list[str] = Field(default_factory=list)
    title: str = "New Chat"
    messages: list[ChatMessage] = Field(default_factory=list)
    total_tokens: int = 0
    summary: str = ""
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)


class AnswerResult(BaseModel):
    """What the orchestrator hands back to the HTTP layer on success."""

    model_config = ConfigDict(frozen=True)

    text: str
    mode: ResponseMode = ResponseMode.QUESTION
    source_documents: list[SourceDocument] = Field(default_factory=list)
    tokens_used: int = 0
    elapsed_ms: int = 0
    model_id: str = ""
    attempts: int = 1
    degraded: bool = Field(
        default=False,
        description="True when the minimal fallback prompt produced the answer.",
    )


class StreamEvent(BaseModel):
    """One event of a streamed answer.

    Fragment events carry ``chunk``.  The terminal event has ``done=True``
    and either ``full_response`` + ``source_documents`` or ``error`` + ``code``.
    Error events also keep the failure ``kind`` for mapping, and
    ``retry_after`` (seconds) when the caller should back off.
    """

    model_config = ConfigDict(frozen=True)

    chunk: str = ""
    done: bool = False
    full_response: str | None = None
    source_documents: list[SourceDocument] | None = None
    error: str | None = None
    code: str | None = None
    kind: ErrorKind | None = None
    retry_after: int | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_payload(self) -> dict[str, Any]:
        """Wire form used by the SSE endpoint (camelCase keys)."""
        payload: dict[str, Any]
        if self.error is not None:
            payload = {"error": self.error, "code": self.code, "done": True}
            if self.retry_after is not None:
                payload["retryAfter"] = self.retry_after
            return payload
        payload = {"chunk": self.chunk, "done": self.done}
        if self.done:
            payload["fullResponse"] = self.full_response or ""
            payload["sourceDocuments"] = [
                {"id": d.id, "name": d.name} for d in (self.source_documents or [])
            ]
        return payload
