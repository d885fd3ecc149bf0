"""Abstract base class for document and chat-history persistence.

Implementations may use SQLite (local), a document database, or any other
backend.  Every operation is atomic per document id only; callers must not
rely on multi-document transactions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from docchat.models.chat import ChatHistoryEntry
from docchat.models.document import Document


class IDocumentStore(ABC):
    """Contract for document, owner-counter and chat-history storage.

    All operations are async to support network-backed stores.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / indexes if they do not exist."""

    @abstractmethod
    async def create_document(self, document: Document) -> str:
        """Persist a new document and return its id."""

    @abstractmethod
    async def find_documents(
        self,
        owner_id: str | None,
        document_ids: list[str] | None = None,
        active_only: bool = True,
        limit: int | None = None,
    ) -> list[Document]:
        """Return documents belonging to *owner_id*.

        Parameters
        ----------
        owner_id:
            Owner to filter by.  ``None`` matches anonymous documents.
        document_ids:
            When given, only these ids are returned, in the order listed
            (unknown or foreign ids are silently skipped).  Otherwise the
            newest documents come first.
        active_only:
            Exclude soft-deleted documents.
        limit:
            Maximum number of documents to return.
        """

    @abstractmethod
    async def count_active_documents(self, owner_id: str) -> int:
        """Return the number of non-deleted documents owned by *owner_id*."""

    @abstractmethod
    async def update_document_fields(self, document_id: str, fields: dict[str, Any]) -> bool:
        """Set lifecycle fields (``is_active``, ``deleted_at``) on one document.

        Returns ``True`` when a document was updated.
        """

    @abstractmethod
    async def increment_document_stats(
        self,
        document_id: str,
        views: int = 0,
        chats: int = 0,
    ) -> None:
        """Add to the usage counters and stamp ``last_accessed``."""

    @abstractmethod
    async def increment_owner_counter(self, owner_id: str, field: str, delta: int = 1) -> None:
        """Add *delta* to a named per-owner counter, creating it at zero."""

    @abstractmethod
    async def get_owner_counters(self, owner_id: str) -> dict[str, int]:
        """Return every counter recorded for *owner_id*."""

    @abstractmethod
    async def append_chat_history(self, entry: ChatHistoryEntry) -> str:
        """Persist one question/answer exchange and return its id."""

    @abstractmethod
    async def list_chat_history(self, owner_id: str, limit: int = 20) -> list[ChatHistoryEntry]:
        """Return the owner's active chat history, newest first."""

    @abstractmethod
    async def get_chat_history(self, owner_id: str, history_id: str) -> ChatHistoryEntry | None:
        """Return one active entry owned by *owner_id*, or ``None``."""

    @abstractmethod
    async def delete_chat_history(self, owner_id: str, history_id: str) -> bool:
        """Soft-delete one active entry.  Returns ``True`` when an entry was hidden."""

    @abstractmethod
    async def chat_history_stats(self, owner_id: str) -> dict[str, int]:
        """Totals over the owner's active history.

        Keys: ``total_chats``, ``total_tokens``, ``total_messages``.
        """
