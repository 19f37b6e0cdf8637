"""History panel state.

Holds what a history view shows (open flag, loaded conversations, search
query, selection) on top of a HistoryStore. Store failures are logged and
leave the current state untouched, so the panel never breaks the chat.
"""

import logging
from datetime import datetime

from .base import HistoryStore
from .grouping import group_conversations
from .models import Conversation, GroupedHistory, HistoryMessage

logger = logging.getLogger(__name__)


class HistoryBrowser:
    """Browse, search and delete stored conversations."""

    def __init__(self, store: HistoryStore):
        self._store = store
        self.is_open = False
        self.conversations: list[Conversation] = []
        self.search_query = ""
        self.loading = False
        self.current_conversation_id: str | None = None

    @property
    def has_conversations(self) -> bool:
        return bool(self.conversations)

    def grouped(self, now: datetime | None = None) -> GroupedHistory:
        """Loaded conversations grouped by recency."""
        return group_conversations(self.conversations, now=now)

    async def open(self) -> None:
        """Open the panel, always reloading so it shows fresh data."""
        self.is_open = True
        await self.load_conversations()

    def close(self) -> None:
        self.is_open = False
        self.search_query = ""

    async def toggle(self) -> None:
        if self.is_open:
            self.close()
        else:
            await self.open()

    async def load_conversations(self) -> None:
        """Load the most recently updated conversations."""
        self.loading = True
        try:
            self.conversations = await self._store.get_conversations()
        except Exception:
            logger.exception("Failed to load conversations")
        finally:
            self.loading = False

    async def search(self, query: str) -> None:
        """Filter conversations by title. A blank query reloads everything."""
        self.search_query = query
        if not query.strip():
            await self.load_conversations()
            return

        self.loading = True
        try:
            self.conversations = await self._store.search_conversations(query.strip())
        except Exception:
            logger.exception("Failed to search conversations")
        finally:
            self.loading = False

    async def load_messages(self, conversation_id: str) -> list[HistoryMessage]:
        """Messages of one conversation, or an empty list on failure."""
        try:
            messages = await self._store.get_messages(conversation_id)
        except Exception:
            logger.exception("Failed to load conversation %s", conversation_id)
            return []
        self.current_conversation_id = conversation_id
        return messages

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation from the store and the loaded list."""
        try:
            await self._store.delete_conversation(conversation_id)
        except Exception:
            logger.exception("Failed to delete conversation %s", conversation_id)
            return False

        self.conversations = [c for c in self.conversations if c.id != conversation_id]
        if self.current_conversation_id == conversation_id:
            self.current_conversation_id = None
        return True

    def start_new_conversation(self) -> None:
        self.current_conversation_id = None
