"""Conversation history module for quickassist.

Provides persistent storage, search and recency grouping of conversations.
"""

from .base import HistoryStore
from .browser import HistoryBrowser
from .factory import create_history_store
from .grouping import group_conversations
from .models import Conversation, GroupedHistory, HistoryMessage

__all__ = [
    "HistoryStore",
    "HistoryBrowser",
    "Conversation",
    "GroupedHistory",
    "HistoryMessage",
    "create_history_store",
    "group_conversations",
]
