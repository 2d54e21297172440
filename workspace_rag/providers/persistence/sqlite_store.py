"""SQLite-backed persistence store.

Persists pages, conversations and messages to a local SQLite database using
``aiosqlite`` for async I/O.  The database runs in WAL journal mode so that
background indexing tasks and conversation writes do not block readers.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from workspace_rag.interfaces.persistence_store import IPersistenceStore
from workspace_rag.models.content import PageRecord
from workspace_rag.models.conversation import (
    Citation,
    Conversation,
    ConversationListing,
    ConversationMode,
    Message,
    MessageRole,
)
from workspace_rag.utils.errors import PersistenceError
from workspace_rag.utils.text import extract_content_text

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/workspace_rag.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS pages (
    id                  TEXT PRIMARY KEY,
    workspace_id        TEXT NOT NULL,
    title               TEXT NOT NULL DEFAULT '',
    content             TEXT,
    body_text           TEXT NOT NULL DEFAULT '',
    tags                TEXT NOT NULL DEFAULT '[]',
    summary             TEXT,
    summary_hash        TEXT,
    summary_updated_at  TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS conversations (
    id            TEXT PRIMARY KEY,
    workspace_id  TEXT NOT NULL,
    user_id       TEXT NOT NULL,
    title         TEXT NOT NULL,
    mode          TEXT NOT NULL,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS messages (
    id               TEXT PRIMARY KEY,
    conversation_id  TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    role             TEXT NOT NULL,
    content          TEXT NOT NULL,
    citations        TEXT NOT NULL DEFAULT '[]',
    created_at       TEXT NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_pages_workspace ON pages(workspace_id);",
    "CREATE INDEX IF NOT EXISTS idx_conversations_owner ON conversations(workspace_id, user_id);",
    "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, created_at);",
]

_UPSERT_PAGE_SQL = """\
INSERT INTO pages (id, workspace_id, title, content, body_text, tags, summary,
                   summary_hash, summary_updated_at, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id)
DO UPDATE SET workspace_id       = excluded.workspace_id,
              title              = excluded.title,
              content            = excluded.content,
              body_text          = excluded.body_text,
              tags               = excluded.tags,
              summary            = excluded.summary,
              summary_hash       = excluded.summary_hash,
              summary_updated_at = excluded.summary_updated_at,
              updated_at         = excluded.updated_at;
"""

_PAGE_COLUMNS = (
    "id, workspace_id, title, content, tags, summary, summary_hash, "
    "summary_updated_at, created_at, updated_at"
)


class SQLitePersistenceStore(IPersistenceStore):
    """SQLite persistence for pages and conversations."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection with row access by name and cascading deletes."""
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA foreign_keys = ON")
                yield db
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"SQLite operation failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def initialize(self) -> None:
        """Create all tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def upsert_page(self, page: PageRecord) -> None:
        async with self._connect() as db:
            await db.execute(
                _UPSERT_PAGE_SQL,
                (
                    page.id,
                    page.workspace_id,
                    page.title,
                    json.dumps(page.content),
                    extract_content_text(page.content),
                    json.dumps(page.tags),
                    page.summary,
                    page.summary_hash,
                    _iso(page.summary_updated_at),
                    _iso(page.created_at),
                    _iso(page.updated_at),
                ),
            )
            await db.commit()

    async def get_page(self, page_id: str) -> PageRecord | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_PAGE_COLUMNS} FROM pages WHERE id = ?", (page_id,)
            )
            row = await cursor.fetchone()
        return _row_to_page(row) if row else None

    async def list_workspace_pages(
        self,
        workspace_id: str,
        with_summary_only: bool = False,
        limit: int | None = None,
    ) -> list[PageRecord]:
        sql = f"SELECT {_PAGE_COLUMNS} FROM pages WHERE workspace_id = ?"
        params: list[Any] = [workspace_id]
        if with_summary_only:
            sql += " AND summary IS NOT NULL"
        sql += " ORDER BY updated_at DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [_row_to_page(r) for r in rows]

    async def delete_page(self, page_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM pages WHERE id = ?", (page_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def update_page_summary(
        self,
        page_id: str,
        summary: str | None,
        summary_hash: str | None,
        generated_at: datetime | None,
    ) -> None:
        async with self._connect() as db:
            await db.execute(
                "UPDATE pages SET summary = ?, summary_hash = ?, summary_updated_at = ? "
                "WHERE id = ?",
                (summary, summary_hash, _iso(generated_at), page_id),
            )
            await db.commit()

    async def keyword_search(self, workspace_id: str, query: str, limit: int) -> list[PageRecord]:
        pattern = f"%{_escape_like(query.strip())}%"
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_PAGE_COLUMNS} FROM pages "
                "WHERE workspace_id = ? "
                "AND (title LIKE ? ESCAPE '\\' OR body_text LIKE ? ESCAPE '\\') "
                "ORDER BY updated_at DESC LIMIT ?",
                (workspace_id, pattern, pattern, limit),
            )
            rows = await cursor.fetchall()
        return [_row_to_page(r) for r in rows]

    # ------------------------------------------------------------------
    # Conversations and messages
    # ------------------------------------------------------------------

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO conversations (id, workspace_id, user_id, title, mode, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    conversation.id,
                    conversation.workspace_id,
                    conversation.user_id,
                    conversation.title,
                    conversation.mode.value,
                    _iso(conversation.created_at),
                    _iso(conversation.updated_at),
                ),
            )
            await db.commit()
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, workspace_id, user_id, title, mode, created_at, updated_at "
                "FROM conversations WHERE id = ?",
                (conversation_id,),
            )
            row = await cursor.fetchone()
        return _row_to_conversation(row) if row else None

    async def update_conversation_title(self, conversation_id: str, title: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE conversations SET title = ?, "
                "updated_at = strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now') WHERE id = ?",
                (title, conversation_id),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def delete_conversation(self, conversation_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def list_conversations(
        self, workspace_id: str, user_id: str, limit: int, offset: int
    ) -> list[ConversationListing]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT c.id, c.workspace_id, c.user_id, c.title, c.mode, c.created_at, "
                "c.updated_at, COUNT(m.id) AS message_count "
                "FROM conversations c LEFT JOIN messages m ON m.conversation_id = c.id "
                "WHERE c.workspace_id = ? AND c.user_id = ? "
                "GROUP BY c.id ORDER BY c.updated_at DESC LIMIT ? OFFSET ?",
                (workspace_id, user_id, limit, offset),
            )
            rows = await cursor.fetchall()
        return [
            ConversationListing(
                conversation=_row_to_conversation(r), message_count=r["message_count"]
            )
            for r in rows
        ]

    async def count_conversations(self, workspace_id: str, user_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT COUNT(*) AS total FROM conversations WHERE workspace_id = ? AND user_id = ?",
                (workspace_id, user_id),
            )
            row = await cursor.fetchone()
        return int(row["total"]) if row else 0

    async def add_message(self, message: Message) -> Message:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT 1 FROM conversations WHERE id = ?", (message.conversation_id,)
            )
            if await cursor.fetchone() is None:
                raise PersistenceError(
                    message=f"Conversation {message.conversation_id} does not exist",
                    provider_name=self.get_provider_name(),
                )
            await db.execute(
                "INSERT INTO messages (id, conversation_id, role, content, citations, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    message.id,
                    message.conversation_id,
                    message.role.value,
                    message.content,
                    json.dumps([c.model_dump(mode="json") for c in message.citations]),
                    _iso(message.created_at),
                ),
            )
            await db.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (_iso(message.created_at), message.conversation_id),
            )
            await db.commit()
        return message

    async def list_messages(self, conversation_id: str) -> list[Message]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, conversation_id, role, content, citations, created_at "
                "FROM messages WHERE conversation_id = ? ORDER BY created_at ASC, rowid ASC",
                (conversation_id,),
            )
            rows = await cursor.fetchall()
        return [
            Message(
                id=r["id"],
                conversation_id=r["conversation_id"],
                role=MessageRole(r["role"]),
                content=r["content"],
                citations=[Citation(**c) for c in json.loads(r["citations"] or "[]")],
                created_at=datetime.fromisoformat(r["created_at"]),
            )
            for r in rows
        ]

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
        return "sqlite"


# ---------------------------------------------------------------------------
# Row mapping helpers
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_page(row: aiosqlite.Row) -> PageRecord:
    return PageRecord(
        id=row["id"],
        workspace_id=row["workspace_id"],
        title=row["title"],
        content=json.loads(row["content"]) if row["content"] else None,
        tags=json.loads(row["tags"] or "[]"),
        summary=row["summary"],
        summary_hash=row["summary_hash"],
        summary_updated_at=_parse_dt(row["summary_updated_at"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_conversation(row: aiosqlite.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        workspace_id=row["workspace_id"],
        user_id=row["user_id"],
        title=row["title"],
        mode=ConversationMode(row["mode"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
