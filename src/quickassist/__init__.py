"""
Quick Assist: an ask-AI launcher with streaming multi-provider chat and searchable history.

This package follows Parnas's information hiding principles,
where each module hides a specific design decision.
"""

__version__ = "0.1.0"

from .chat import ChatSession
from .history import HistoryStore, create_history_store
from .llm import (
    LLMProviderType,
    Message,
    ProviderConfig,
    ProviderRegistry,
    StreamCallbacks,
    create_provider_registry,
)
from .settings import AppSettings, SettingsStore

__all__ = [
    "ChatSession",
    "HistoryStore",
    "create_history_store",
    "LLMProviderType",
    "Message",
    "ProviderConfig",
    "ProviderRegistry",
    "StreamCallbacks",
    "create_provider_registry",
    "AppSettings",
    "SettingsStore",
]
