"""In-memory conversation history backend.

Simple dict-based storage for session-only history.
Data is lost when the application exits.
"""

from collections.abc import Callable

from ..llm.models import MessageRole, now_ms
from .base import DEFAULT_PAGE_SIZE, SEARCH_LIMIT, HistoryStore
from .models import Conversation, HistoryMessage


class InMemoryHistoryStore(HistoryStore):
    """In-memory conversation history (session-only).

    Data is stored in memory and lost when the app exits.
    Suitable for single-session use or testing.
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[HistoryMessage]] = {}

    async def connect(self) -> None:
        """Initialize storage (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close storage (no-op for in-memory)."""
        pass

    def _require(self, conversation_id: str) -> Conversation:
        try:
            return self._conversations[conversation_id]
        except KeyError:
            raise ValueError(f"Unknown conversation: {conversation_id}") from None

    def _by_recency(self, conversations: list[Conversation]) -> list[Conversation]:
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    async def create_conversation(self, conversation_id: str, title: str) -> Conversation:
        if conversation_id in self._conversations:
            raise ValueError(f"Conversation already exists: {conversation_id}")
        now = self._clock()
        conversation = Conversation(id=conversation_id, title=title, created_at=now, updated_at=now)
        self._conversations[conversation_id] = conversation
        self._messages[conversation_id] = []
        return conversation

    async def add_message(
        self,
        message_id: str,
        conversation_id: str,
        role: str,
        content: str,
    ) -> HistoryMessage:
        conversation = self._require(conversation_id)
        now = self._clock()
        message = HistoryMessage(
            id=message_id,
            conversation_id=conversation_id,
            role=MessageRole(role),
            content=content,
            created_at=now,
        )
        self._messages[conversation_id].append(message)
        conversation.updated_at = now
        return message

    async def get_conversations(
        self,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[Conversation]:
        ordered = self._by_recency(list(self._conversations.values()))
        return [c.model_copy() for c in ordered[offset:offset + limit]]

    async def search_conversations(self, query: str) -> list[Conversation]:
        needle = query.lower()
        matches = [c for c in self._conversations.values() if needle in c.title.lower()]
        return [c.model_copy() for c in self._by_recency(matches)[:SEARCH_LIMIT]]

    async def get_messages(self, conversation_id: str) -> list[HistoryMessage]:
        messages = self._messages.get(conversation_id, [])
        return [m.model_copy() for m in sorted(messages, key=lambda m: m.created_at)]

    async def delete_conversation(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)
        self._messages.pop(conversation_id, None)

    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        self._require(conversation_id).title = title

    @property
    def backend_type(self) -> str:
        return "memory"
