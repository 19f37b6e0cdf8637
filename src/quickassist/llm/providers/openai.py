"""OpenAI Chat Completions wire protocol.

Streams from ``/chat/completions`` with ``stream: true``. Also serves any
OpenAI-compatible endpoint (Ollama, LM Studio, vLLM) through ``base_url``.
Reference: https://platform.openai.com/docs/api-reference/chat-streaming
"""

from collections.abc import Sequence
from typing import Any

import httpx

from ..base import COMPLETION_MAX_TOKENS, STREAM_MAX_TOKENS, TEMPERATURE, LLMProvider, dig
from ..models import Message, ProviderConfig, StreamEvent

OPENAI_API_BASE = "https://api.openai.com/v1"


def convert_messages(
    messages: Sequence[Message],
    system_prompt: str | None = None,
) -> list[dict[str, str]]:
    """Convert transcript messages to Chat Completions format.

    The system prompt, when present, becomes the first message.
    """
    openai_messages = []
    if system_prompt:
        openai_messages.append({"role": "system", "content": system_prompt})
    for msg in messages:
        openai_messages.append({"role": msg.role.value, "content": msg.content})
    return openai_messages


class OpenAIProvider(LLMProvider):
    """OpenAI Chat Completions provider.

    Also serves any OpenAI-compatible endpoint (Ollama, LM Studio, Groq, ...)
    through ``ProviderConfig.base_url``.

    Hidden design decisions:
    - Bearer authentication, omitted when no key is set (local servers)
    - System prompt as a leading 'system' message
    - ``data: [DONE]`` stream terminator
    """

    default_base_url = OPENAI_API_BASE

    @property
    def name(self) -> str:
        return "openai"

    def _headers(self, config: ProviderConfig) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        return headers

    def build_stream_request(
        self,
        config: ProviderConfig,
        messages: Sequence[Message],
        system_prompt: str | None,
    ) -> httpx.Request:
        body = {
            "model": config.model,
            "messages": convert_messages(messages, system_prompt),
            "stream": True,
            "temperature": TEMPERATURE,
            "max_tokens": STREAM_MAX_TOKENS,
        }
        return self._client.build_request(
            "POST",
            f"{self.base_url(config)}/chat/completions",
            headers=self._headers(config),
            json=body,
        )

    def parse_stream_event(self, data: dict[str, Any]) -> StreamEvent | None:
        if data.get("error"):
            message = dig(data, "error", "message")
            return StreamEvent(error=message or "Unknown error")

        content = dig(data, "choices", 0, "delta", "content")
        if isinstance(content, str) and content:
            return StreamEvent(text=content)
        return None

    def build_completion_request(self, config: ProviderConfig, prompt: str) -> httpx.Request:
        body = {
            "model": config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": TEMPERATURE,
            "max_tokens": COMPLETION_MAX_TOKENS,
        }
        return self._client.build_request(
            "POST",
            f"{self.base_url(config)}/chat/completions",
            headers=self._headers(config),
            json=body,
        )

    def extract_completion_text(self, data: Any) -> str:
        content = dig(data, "choices", 0, "message", "content")
        return content if isinstance(content, str) else ""
