"""SQLite-backed document store.

Persists documents, per-owner counters and chat history to a local SQLite
database at ``data/docchat.db``.  Uses ``aiosqlite`` for async I/O.

Chunks and metadata are stored as JSON columns: a document's chunk list is
written once and never updated, so there is no need for a chunk table.
Recency ordering uses the autoincrement ``seq`` column rather than
timestamps, which can collide within the same millisecond.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from docchat.interfaces.document_store import IDocumentStore
from docchat.models.chat import ChatHistoryEntry, ChatMessage
from docchat.models.document import Chunk, Document, DocumentMetadata, DocumentStats
from docchat.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/docchat.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS documents (
    seq            INTEGER PRIMARY KEY AUTOINCREMENT,
    id             TEXT    NOT NULL UNIQUE,
    owner_id       TEXT,
    filename       TEXT    NOT NULL,
    original_name  TEXT    NOT NULL,
    mime_type      TEXT    NOT NULL,
    size           INTEGER NOT NULL,
    chunks         TEXT    NOT NULL DEFAULT '[]',
    metadata       TEXT    NOT NULL DEFAULT '{}',
    views          INTEGER NOT NULL DEFAULT 0,
    chats          INTEGER NOT NULL DEFAULT 0,
    last_accessed  TEXT    NOT NULL,
    is_active      INTEGER NOT NULL DEFAULT 1,
    deleted_at     TEXT,
    created_at     TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS owner_counters (
    owner_id  TEXT    NOT NULL,
    field     TEXT    NOT NULL,
    value     INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (owner_id, field)
);
""",
    """\
CREATE TABLE IF NOT EXISTS chat_history (
    seq           INTEGER PRIMARY KEY AUTOINCREMENT,
    id            TEXT    NOT NULL UNIQUE,
    owner_id      TEXT    NOT NULL,
    document_id   TEXT    NOT NULL,
    document_ids  TEXT    NOT NULL DEFAULT '[]',
    title         TEXT    NOT NULL,
    messages      TEXT    NOT NULL DEFAULT '[]',
    total_tokens  INTEGER NOT NULL DEFAULT 0,
    summary       TEXT    NOT NULL DEFAULT '',
    is_active     INTEGER NOT NULL DEFAULT 1,
    deleted_at    TEXT,
    created_at    TEXT    NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner_id, is_active);",
    "CREATE INDEX IF NOT EXISTS idx_chat_history_owner ON chat_history(owner_id);",
]

_INSERT_DOCUMENT_SQL = """\
INSERT INTO documents (
    id, owner_id, filename, original_name, mime_type, size, chunks, metadata,
    views, chats, last_accessed, is_active, deleted_at, created_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_DOCUMENT_COLUMNS = (
    "SELECT id, owner_id, filename, original_name, mime_type, size, chunks, metadata, "
    "views, chats, last_accessed, is_active, deleted_at, created_at FROM documents"
)

_INCREMENT_STATS_SQL = """\
UPDATE documents
SET views = views + ?, chats = chats + ?, last_accessed = ?
WHERE id = ?;
"""

_UPSERT_COUNTER_SQL = """\
INSERT INTO owner_counters (owner_id, field, value)
VALUES (?, ?, ?)
ON CONFLICT(owner_id, field)
DO UPDATE SET value = value + excluded.value;
"""

_INSERT_HISTORY_SQL = """\
INSERT INTO chat_history (
    id, owner_id, document_id, document_ids, title, messages,
    total_tokens, summary, is_active, created_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_HISTORY_COLUMNS = (
    "SELECT id, owner_id, document_id, document_ids, title, messages, "
    "total_tokens, summary, is_active, created_at FROM chat_history"
)

_SOFT_DELETE_HISTORY_SQL = """\
UPDATE chat_history
SET is_active = 0, deleted_at = ?
WHERE id = ? AND owner_id = ? AND is_active = 1;
"""

_HISTORY_STATS_SQL = """\
SELECT COUNT(*) AS total_chats,
       COALESCE(SUM(total_tokens), 0) AS total_tokens,
       COALESCE(SUM(json_array_length(messages)), 0) AS total_messages
FROM chat_history
WHERE owner_id = ? AND is_active = 1;
"""

# Only lifecycle fields may be updated; chunks and metadata are write-once.
_UPDATABLE_FIELDS = frozenset({"is_active", "deleted_at"})


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _encode_field(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SQLiteDocumentStore(IDocumentStore):
    """SQLite-backed document, counter and chat-history persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as exc:
            logger.error("document_store_error", path=str(self._db_path), error=str(exc))
            raise StorageError(message=f"SQLite error: {exc}", provider_name="sqlite") from exc

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, document: Document) -> str:
        chunks_json = json.dumps([c.model_dump(mode="json") for c in document.chunks])
        metadata_json = json.dumps(document.metadata.model_dump(mode="json"))
        async with self._connect() as db:
            await db.execute(
                _INSERT_DOCUMENT_SQL,
                (
                    document.id,
                    document.owner_id,
                    document.filename,
                    document.original_name,
                    document.mime_type,
                    document.size,
                    chunks_json,
                    metadata_json,
                    document.stats.views,
                    document.stats.chats,
                    document.stats.last_accessed.isoformat(),
                    int(document.is_active),
                    document.deleted_at.isoformat() if document.deleted_at else None,
                    document.created_at.isoformat(),
                ),
            )
            await db.commit()
        logger.info(
            "document_created",
            document_id=document.id,
            owner_id=document.owner_id,
            chunks=document.chunk_count,
        )
        return document.id

    async def find_documents(
        self,
        owner_id: str | None,
        document_ids: list[str] | None = None,
        active_only: bool = True,
        limit: int | None = None,
    ) -> list[Document]:
        clauses = ["owner_id IS ?"]
        params: list[Any] = [owner_id]
        if active_only:
            clauses.append("is_active = 1")

        wanted: list[str] = []
        if document_ids is not None:
            wanted = list(dict.fromkeys(document_ids))
            if not wanted:
                return []
            clauses.append(f"id IN ({', '.join('?' for _ in wanted)})")
            params.extend(wanted)

        sql = f"{_SELECT_DOCUMENT_COLUMNS} WHERE {' AND '.join(clauses)} ORDER BY seq DESC"
        if limit is not None and document_ids is None:
            sql += " LIMIT ?"
            params.append(limit)

        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()

        documents = [self._row_to_document(row) for row in rows]
        if document_ids is not None:
            by_id = {doc.id: doc for doc in documents}
            documents = [by_id[doc_id] for doc_id in wanted if doc_id in by_id]
            if limit is not None:
                documents = documents[:limit]
        return documents

    async def count_active_documents(self, owner_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM documents WHERE owner_id = ? AND is_active = 1",
                (owner_id,),
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def update_document_fields(self, document_id: str, fields: dict[str, Any]) -> bool:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Cannot update document fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        if not fields:
            return False

        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [_encode_field(value) for value in fields.values()]
        params.append(document_id)
        async with self._connect() as db:
            cursor = await db.execute(
                f"UPDATE documents SET {assignments} WHERE id = ?",
                params,
            )
            await db.commit()
            updated = cursor.rowcount > 0
        logger.info("document_updated", document_id=document_id, fields=sorted(fields), updated=updated)
        return updated

    async def increment_document_stats(
        self,
        document_id: str,
        views: int = 0,
        chats: int = 0,
    ) -> None:
        async with self._connect() as db:
            await db.execute(_INCREMENT_STATS_SQL, (views, chats, _now_iso(), document_id))
            await db.commit()

    # ------------------------------------------------------------------
    # Owner counters
    # ------------------------------------------------------------------

    async def increment_owner_counter(self, owner_id: str, field: str, delta: int = 1) -> None:
        async with self._connect() as db:
            await db.execute(_UPSERT_COUNTER_SQL, (owner_id, field, delta))
            await db.commit()

    async def get_owner_counters(self, owner_id: str) -> dict[str, int]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT field, value FROM owner_counters WHERE owner_id = ?",
                (owner_id,),
            )
            rows = await cursor.fetchall()
        return {row["field"]: row["value"] for row in rows}

    # ------------------------------------------------------------------
    # Chat history
    # ------------------------------------------------------------------

    async def append_chat_history(self, entry: ChatHistoryEntry) -> str:
        entry_id = entry.id or uuid.uuid4().hex
        async with self._connect() as db:
            await db.execute(
                _INSERT_HISTORY_SQL,
                (
                    entry_id,
                    entry.owner_id,
                    entry.document_id,
                    json.dumps(entry.document_ids),
                    entry.title,
                    json.dumps([m.model_dump(mode="json") for m in entry.messages]),
                    entry.total_tokens,
                    entry.summary,
                    int(entry.is_active),
                    entry.created_at.isoformat(),
                ),
            )
            await db.commit()
        logger.info("chat_history_appended", history_id=entry_id, owner_id=entry.owner_id)
        return entry_id

    async def list_chat_history(self, owner_id: str, limit: int = 20) -> list[ChatHistoryEntry]:
        async with self._connect() as db:
            cursor = await db.execute(
                f"{_SELECT_HISTORY_COLUMNS} "
                "WHERE owner_id = ? AND is_active = 1 ORDER BY seq DESC LIMIT ?",
                (owner_id, limit),
            )
            rows = await cursor.fetchall()
        return [self._row_to_history(row) for row in rows]

    async def get_chat_history(self, owner_id: str, history_id: str) -> ChatHistoryEntry | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"{_SELECT_HISTORY_COLUMNS} WHERE id = ? AND owner_id = ? AND is_active = 1",
                (history_id, owner_id),
            )
            row = await cursor.fetchone()
        return self._row_to_history(row) if row else None

    async def delete_chat_history(self, owner_id: str, history_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                _SOFT_DELETE_HISTORY_SQL, (_now_iso(), history_id, owner_id)
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        logger.info("chat_history_deleted", history_id=history_id, deleted=deleted)
        return deleted

    async def chat_history_stats(self, owner_id: str) -> dict[str, int]:
        async with self._connect() as db:
            cursor = await db.execute(_HISTORY_STATS_SQL, (owner_id,))
            row = await cursor.fetchone()
        return {
            "total_chats": int(row["total_chats"]),
            "total_tokens": int(row["total_tokens"]),
            "total_messages": int(row["total_messages"]),
        }

    def get_provider_name(self) -> str:
        return "sqlite_document_store"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        return Document(
            id=row["id"],
            owner_id=row["owner_id"],
            filename=row["filename"],
            original_name=row["original_name"],
            mime_type=row["mime_type"],
            size=row["size"],
            chunks=tuple(Chunk.model_validate(c) for c in json.loads(row["chunks"])),
            metadata=DocumentMetadata.model_validate(json.loads(row["metadata"])),
            stats=DocumentStats(
                views=row["views"],
                chats=row["chats"],
                last_accessed=row["last_accessed"],
            ),
            is_active=bool(row["is_active"]),
            deleted_at=row["deleted_at"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_history(row: aiosqlite.Row) -> ChatHistoryEntry:
        return ChatHistoryEntry(
            id=row["id"],
            owner_id=row["owner_id"],
            document_id=row["document_id"],
            document_ids=json.loads(row["document_ids"]),
            title=row["title"],
            messages=[ChatMessage.model_validate(m) for m in json.loads(row["messages"])],
            total_tokens=row["total_tokens"],
            summary=row["summary"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
        )
