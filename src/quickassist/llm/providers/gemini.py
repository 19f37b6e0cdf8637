"""Google Gemini wire protocol.

Streams from ``:streamGenerateContent`` with ``alt=sse``.
Reference: https://ai.google.dev/api/generate-content

Note: Gemini authenticates with a ``key`` query parameter rather than a header,
and calls the assistant role ``model``.
"""

from collections.abc import Sequence
from typing import Any

import httpx

from ..base import COMPLETION_MAX_TOKENS, STREAM_MAX_TOKENS, TEMPERATURE, LLMProvider, dig
from ..models import Message, MessageRole, ProviderConfig, StreamEvent

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"


def convert_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert transcript messages to Gemini ``contents``."""
    return [
        {
            "role": "user" if msg.role == MessageRole.USER else "model",
            "parts": [{"text": msg.content}],
        }
        for msg in messages
    ]


class GeminiProvider(LLMProvider):
    """Google Gemini provider.

    Hidden design decisions:
    - Query-parameter authentication
    - 'model' role naming and parts-based content
    - System prompt as a top-level systemInstruction
    """

    default_base_url = GEMINI_API_BASE

    @property
    def name(self) -> str:
        return "gemini"

    def _params(self, config: ProviderConfig, **extra: str) -> dict[str, str]:
        params = dict(extra)
        if config.api_key:
            params["key"] = config.api_key
        return params

    def build_stream_request(
        self,
        config: ProviderConfig,
        messages: Sequence[Message],
        system_prompt: str | None,
    ) -> httpx.Request:
        body: dict[str, Any] = {
            "contents": convert_messages(messages),
            "generationConfig": {
                "temperature": TEMPERATURE,
                "topP": 0.95,
                "topK": 40,
                "maxOutputTokens": STREAM_MAX_TOKENS,
            },
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        return self._client.build_request(
            "POST",
            f"{self.base_url(config)}/{config.model}:streamGenerateContent",
            params=self._params(config, alt="sse"),
            json=body,
        )

    def parse_stream_event(self, data: dict[str, Any]) -> StreamEvent | None:
        if data.get("error"):
            message = dig(data, "error", "message")
            return StreamEvent(error=message or "Unknown error")

        text = dig(data, "candidates", 0, "content", "parts", 0, "text")
        if isinstance(text, str) and text:
            return StreamEvent(text=text)
        return None

    def build_completion_request(self, config: ProviderConfig, prompt: str) -> httpx.Request:
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": TEMPERATURE,
                "maxOutputTokens": COMPLETION_MAX_TOKENS,
            },
        }
        return self._client.build_request(
            "POST",
            f"{self.base_url(config)}/{config.model}:generateContent",
            params=self._params(config),
            json=body,
        )

    def extract_completion_text(self, data: Any) -> str:
        text = dig(data, "candidates", 0, "content", "parts", 0, "text")
        return text if isinstance(text, str) else ""
