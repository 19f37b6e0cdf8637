"""Anthropic Claude wire protocol.

Streams from the Messages API with ``stream: true``.
Reference: https://docs.anthropic.com/en/api/messages-streaming
"""

from collections.abc import Sequence
from typing import Any

import httpx

from ..base import COMPLETION_MAX_TOKENS, STREAM_MAX_TOKENS, LLMProvider, dig
from ..models import Message, ProviderConfig, StreamEvent

ANTHROPIC_API_BASE = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


def convert_messages(messages: Sequence[Message]) -> list[dict[str, str]]:
    """Convert transcript messages to Anthropic format (system prompt is separate)."""
    return [{"role": msg.role.value, "content": msg.content} for msg in messages]


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider.

    Hidden design decisions:
    - x-api-key header authentication plus a pinned API version header
    - System prompt as a top-level 'system' field
    - Typed event stream (message_start, content_block_delta, error, ...)
    """

    default_base_url = ANTHROPIC_API_BASE

    @property
    def name(self) -> str:
        return "anthropic"

    def _headers(self, config: ProviderConfig) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if config.api_key:
            headers["x-api-key"] = config.api_key
        return headers

    def build_stream_request(
        self,
        config: ProviderConfig,
        messages: Sequence[Message],
        system_prompt: str | None,
    ) -> httpx.Request:
        body: dict[str, Any] = {
            "model": config.model,
            "messages": convert_messages(messages),
            "max_tokens": STREAM_MAX_TOKENS,
            "stream": True,
        }
        if system_prompt:
            body["system"] = system_prompt

        return self._client.build_request(
            "POST",
            f"{self.base_url(config)}/messages",
            headers=self._headers(config),
            json=body,
        )

    def parse_stream_event(self, data: dict[str, Any]) -> StreamEvent | None:
        event_type = data.get("type")

        if event_type == "error":
            message = dig(data, "error", "message")
            return StreamEvent(error=message or "Unknown error")

        if event_type == "content_block_delta":
            text = dig(data, "delta", "text")
            if isinstance(text, str) and text:
                return StreamEvent(text=text)

        # message_start, content_block_start/stop, message_delta, message_stop, ping
        return None

    def build_completion_request(self, config: ProviderConfig, prompt: str) -> httpx.Request:
        body = {
            "model": config.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": COMPLETION_MAX_TOKENS,
        }
        return self._client.build_request(
            "POST",
            f"{self.base_url(config)}/messages",
            headers=self._headers(config),
            json=body,
        )

    def extract_completion_text(self, data: Any) -> str:
        # Join all text blocks
        blocks = dig(data, "content")
        if not isinstance(blocks, list):
            return ""
        return "".join(
            block["text"]
            for block in blocks
            if isinstance(block, dict) and isinstance(block.get("text"), str)
        )
