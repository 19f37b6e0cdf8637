"""SQLite conversation history backend.

Provides persistent conversation storage using a SQLite database file.
Uses aiosqlite for async access.
"""

from collections.abc import Callable
from pathlib import Path

import aiosqlite

from ..llm.models import MessageRole, now_ms
from .base import DEFAULT_PAGE_SIZE, SEARCH_LIMIT, HistoryStore
from .models import Conversation, HistoryMessage


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteHistoryStore(HistoryStore):
    """SQLite-backed conversation history.

    Stores conversations and messages in a SQLite database file.
    Messages are removed with their conversation via ON DELETE CASCADE.
    """

    def __init__(
        self,
        path: str | Path = "./history.db",
        clock: Callable[[], int] = now_ms,
    ):
        self._db_path = Path(path)
        self._clock = clock
        self._connection: aiosqlite.Connection | None = None

    @property
    def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("History store is not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._create_schema()

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)

        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            )
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_conversation
            ON messages(conversation_id, created_at)
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_conversations_updated
            ON conversations(updated_at DESC)
        """)

        await self._conn.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def create_conversation(self, conversation_id: str, title: str) -> Conversation:
        now = self._clock()
        await self._conn.execute(
            "INSERT INTO conversations (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (conversation_id, title, now, now),
        )
        await self._conn.commit()
        return Conversation(id=conversation_id, title=title, created_at=now, updated_at=now)

    async def add_message(
        self,
        message_id: str,
        conversation_id: str,
        role: str,
        content: str,
    ) -> HistoryMessage:
        now = self._clock()
        message = HistoryMessage(
            id=message_id,
            conversation_id=conversation_id,
            role=MessageRole(role),
            content=content,
            created_at=now,
        )

        await self._conn.execute(
            """
            INSERT INTO messages (id, conversation_id, role, content, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (message.id, conversation_id, message.role.value, content, now),
        )

        # Bump recency so the conversation moves to the top of the history list
        await self._conn.execute(
            "UPDATE conversations SET updated_at = ? WHERE id = ?",
            (now, conversation_id),
        )

        await self._conn.commit()
        return message

    async def get_conversations(
        self,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[Conversation]:
        async with self._conn.execute(
            """
            SELECT id, title, created_at, updated_at
            FROM conversations
            ORDER BY updated_at DESC
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
        ) as cursor:
            rows = await cursor.fetchall()
        return [Conversation(**dict(row)) for row in rows]

    async def search_conversations(self, query: str) -> list[Conversation]:
        async with self._conn.execute(
            """
            SELECT id, title, created_at, updated_at
            FROM conversations
            WHERE title LIKE ? ESCAPE '\\'
            ORDER BY updated_at DESC
            LIMIT ?
            """,
            (f"%{_escape_like(query)}%", SEARCH_LIMIT),
        ) as cursor:
            rows = await cursor.fetchall()
        return [Conversation(**dict(row)) for row in rows]

    async def get_messages(self, conversation_id: str) -> list[HistoryMessage]:
        async with self._conn.execute(
            """
            SELECT id, conversation_id, role, content, created_at
            FROM messages
            WHERE conversation_id = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (conversation_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [HistoryMessage(**dict(row)) for row in rows]

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        await self._conn.commit()

    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        await self._conn.execute(
            "UPDATE conversations SET title = ? WHERE id = ?",
            (title, conversation_id),
        )
        await self._conn.commit()

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
