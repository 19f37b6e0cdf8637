"""Data models for conversation history.

These models define the structure of stored conversations and messages,
independent of the storage backend used.
"""

from pydantic import BaseModel, Field

from ..llm.models import MessageRole


class Conversation(BaseModel):
    """A durable, titled grouping of messages.

    ``updated_at`` is bumped by every stored message and drives recency
    ordering and grouping; ``created_at`` never changes.
    """

    id: str = Field(description="Conversation identifier")
    title: str = Field(description="Display title")
    created_at: int = Field(description="Creation time in ms since epoch")
    updated_at: int = Field(description="Last activity time in ms since epoch")


class HistoryMessage(BaseModel):
    """A stored message belonging to a conversation."""

    id: str = Field(description="Message identifier (same as the transcript message id)")
    conversation_id: str = Field(description="Parent conversation identifier")
    role: MessageRole = Field(description="'user' or 'assistant'")
    content: str = Field(description="Message text")
    created_at: int = Field(description="Storage time in ms since epoch")


class GroupedHistory(BaseModel):
    """Conversations bucketed by how recently they were updated."""

    today: list[Conversation] = Field(default_factory=list)
    yesterday: list[Conversation] = Field(default_factory=list)
    last_week: list[Conversation] = Field(default_factory=list)
    older: list[Conversation] = Field(default_factory=list)

    def sections(self) -> list[tuple[str, list[Conversation]]]:
        """Non-empty groups with display labels, newest first."""
        labelled = [
            ("Today", self.today),
            ("Yesterday", self.yesterday),
            ("Last 7 days", self.last_week),
            ("Older", self.older),
        ]
        return [(label, items) for label, items in labelled if items]
