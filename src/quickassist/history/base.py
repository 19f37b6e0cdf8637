"""Abstract base class for conversation history backends.

This module defines the interface for conversation history storage.
The abstraction hides:
- Storage format (SQLite, in-memory)
- Persistence mechanism (file, database, in-memory)
- Connection management
"""

from abc import ABC, abstractmethod

from .models import Conversation, HistoryMessage

DEFAULT_PAGE_SIZE = 50
SEARCH_LIMIT = 50


class HistoryStore(ABC):
    """Abstract conversation history backend.

    Provides CRUD and title search over conversations and their messages.
    Every operation may raise a backend-specific error; callers that treat
    writes as best-effort are responsible for catching it.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the history backend."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the history backend gracefully."""

    @abstractmethod
    async def create_conversation(self, conversation_id: str, title: str) -> Conversation:
        """Create a conversation with the given provisional title."""

    @abstractmethod
    async def add_message(
        self,
        message_id: str,
        conversation_id: str,
        role: str,
        content: str,
    ) -> HistoryMessage:
        """Store a message and bump the conversation's ``updated_at``."""

    @abstractmethod
    async def get_conversations(
        self,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[Conversation]:
        """List conversations, most recently updated first."""

    @abstractmethod
    async def search_conversations(self, query: str) -> list[Conversation]:
        """Case-insensitive substring search on titles, most recent first."""

    @abstractmethod
    async def get_messages(self, conversation_id: str) -> list[HistoryMessage]:
        """Messages of a conversation in chronological order."""

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and all of its messages."""

    @abstractmethod
    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        """Replace a conversation's title."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "HistoryStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
