from .base import LLMProvider, is_local_endpoint
from .factory import ProviderRegistry, create_provider_registry, parse_provider_type
from .models import (
    CancelToken,
    LLMProviderType,
    Message,
    MessageRole,
    ProviderConfig,
    StreamCallbacks,
    StreamEvent,
)
from .providers import AnthropicProvider, GeminiProvider, OpenAIProvider
from .titles import TitleGenerator, clean_title

__all__ = [
    "LLMProvider",
    "is_local_endpoint",
    "ProviderRegistry",
    "create_provider_registry",
    "parse_provider_type",
    "CancelToken",
    "LLMProviderType",
    "Message",
    "MessageRole",
    "ProviderConfig",
    "StreamCallbacks",
    "StreamEvent",
    "AnthropicProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "TitleGenerator",
    "clean_title",
]
