import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current time as milliseconds since the epoch."""
    return int(time.time() * 1000)


def generate_id() -> str:
    """Generate a unique identifier for messages and conversations."""
    return str(uuid4())


class MessageRole(str, Enum):
    """Role of a transcript message."""

    USER = "user"
    ASSISTANT = "assistant"


class LLMProviderType(str, Enum):
    """Closed set of supported provider protocols.

    CUSTOM is any OpenAI-compatible endpoint reached through a user-supplied base URL.
    """

    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"


class Message(BaseModel):
    """A single message in a chat transcript.

    Only the trailing assistant message of a live transcript is mutated,
    while its response streams in.
    """

    id: str = Field(default_factory=generate_id, description="Unique message identifier")
    role: MessageRole = Field(description="Role of the message sender")
    content: str = Field(default="", description="Message text")
    timestamp: int = Field(default_factory=now_ms, description="Creation time in ms since epoch")


class ProviderConfig(BaseModel):
    """Per-call provider configuration, built fresh from settings for every send."""

    model_config = ConfigDict(frozen=True)

    provider: LLMProviderType = Field(description="Wire protocol to use")
    api_key: str = Field(default="", description="API key; may be empty for local endpoints")
    model: str = Field(description="Model identifier, e.g. 'gpt-4o' or 'gemini-2.0-flash'")
    base_url: str | None = Field(default=None, description="Endpoint override (required for custom)")


@dataclass
class StreamCallbacks:
    """Callbacks driven by a provider while streaming a chat completion.

    Providers call ``on_token`` zero or more times, then exactly one of
    ``on_complete`` or ``on_error``.
    """

    on_token: Callable[[str], None]
    on_complete: Callable[[], None]
    on_error: Callable[[str], None]


@dataclass(frozen=True)
class StreamEvent:
    """A decoded streaming event: either a text delta or an error message."""

    text: str | None = None
    error: str | None = None


class CancelToken:
    """Cooperative cancellation flag checked by providers between tokens."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled
