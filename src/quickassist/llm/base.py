import ipaddress
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx

from .models import CancelToken, Message, ProviderConfig, StreamCallbacks, StreamEvent
from .sse import SSELineDecoder, iter_payloads

logger = logging.getLogger(__name__)

API_KEY_MISSING_MESSAGE = "API key is not configured. Please add your API key in Settings."
UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"
TIMEOUT_MESSAGE = "Request timed out"
CANCELLED_MESSAGE = "Request cancelled"

DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)
STREAM_MAX_TOKENS = 8192
COMPLETION_MAX_TOKENS = 50  # Only used for short titles
TEMPERATURE = 0.7


def is_local_endpoint(url: str) -> bool:
    """Check whether a URL points at a loopback host (e.g. a local Ollama server)."""
    try:
        host = httpx.URL(url).host
    except httpx.InvalidURL:
        return False
    if not host:
        return False
    if host.lower() == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def dig(data: Any, *path: str | int) -> Any:
    """Walk nested dicts/lists, returning None as soon as a step is missing."""
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
    return current


def extract_error_message(body: bytes, status_code: int) -> str:
    """Best-effort extraction of a human-readable message from an error body.

    All three providers use ``{"error": {"message": ...}}``; Gemini sometimes
    wraps it in a one-element list.
    """
    payload: Any = None
    try:
        payload = json.loads(body)
    except ValueError:
        logger.warning("Non-JSON error body (HTTP %s): %r", status_code, body[:200])

    if isinstance(payload, list) and payload:
        payload = payload[0]

    message = dig(payload, "error", "message")
    if isinstance(message, str) and message:
        return message
    return f"HTTP error {status_code}"


class _TerminalGuard:
    """Enforces the callback contract: tokens, then exactly one terminal call."""

    def __init__(self, callbacks: StreamCallbacks):
        self._callbacks = callbacks
        self.finished = False

    def token(self, text: str) -> None:
        if not self.finished:
            self._callbacks.on_token(text)

    def complete(self) -> None:
        if not self.finished:
            self.finished = True
            self._callbacks.on_complete()

    def error(self, message: str) -> None:
        if not self.finished:
            self.finished = True
            self._callbacks.on_error(message)


class LLMProvider(ABC):
    """Abstract base class for LLM wire protocols.

    This module hides the design decision of which provider protocol is in use.
    Subclasses only describe their protocol:
    - How a request is built (URL, headers, body)
    - How a decoded stream event maps to text or an error
    - Where the text lives in a non-streaming response

    The streaming algorithm itself (HTTP error handling, incremental decoding,
    SSE line framing, callback ordering) is shared here.

    Supports async context manager protocol for proper resource cleanup:
        async with provider:
            await provider.stream_chat(config, messages, callbacks)
        # Automatically cleaned up
    """

    default_base_url: str = ""

    def __init__(self, timeout: httpx.Timeout | float = DEFAULT_TIMEOUT, **client_kwargs: Any):
        """Initialize the provider's HTTP client.

        Args:
            timeout: Request timeout for the underlying httpx client
            **client_kwargs: Additional kwargs for httpx.AsyncClient (e.g. transport)
        """
        self._client = httpx.AsyncClient(timeout=timeout, **client_kwargs)

    @property
    @abstractmethod
    def name(self) -> str:
        """Short protocol name used in log messages."""

    def base_url(self, config: ProviderConfig) -> str:
        """Effective base URL for a call, without trailing slash."""
        return (config.base_url or self.default_base_url).rstrip("/")

    def missing_api_key(self, config: ProviderConfig) -> bool:
        """True when the call needs a key but none is configured."""
        return not config.api_key and not is_local_endpoint(self.base_url(config))

    @abstractmethod
    def build_stream_request(
        self,
        config: ProviderConfig,
        messages: Sequence[Message],
        system_prompt: str | None,
    ) -> httpx.Request:
        """Build the streaming chat request."""

    @abstractmethod
    def parse_stream_event(self, data: dict[str, Any]) -> StreamEvent | None:
        """Map one parsed SSE payload to a text delta, an error, or nothing."""

    @abstractmethod
    def build_completion_request(self, config: ProviderConfig, prompt: str) -> httpx.Request:
        """Build a non-streaming single-prompt completion request."""

    @abstractmethod
    def extract_completion_text(self, data: Any) -> str:
        """Pull the completion text out of a non-streaming response body."""

    async def stream_chat(
        self,
        config: ProviderConfig,
        messages: Sequence[Message],
        callbacks: StreamCallbacks,
        system_prompt: str | None = None,
        cancel_token: CancelToken | None = None,
    ) -> None:
        """Stream a chat completion, reporting progress only through callbacks.

        Args:
            config: Provider configuration for this call
            messages: Conversation history (without the pending assistant placeholder)
            callbacks: Token/complete/error handlers
            system_prompt: Optional system instructions
            cancel_token: Optional token; once cancelled the stream stops
                before the next token and reports CANCELLED_MESSAGE
        """
        guard = _TerminalGuard(callbacks)

        if self.missing_api_key(config):
            guard.error(API_KEY_MISSING_MESSAGE)
            return

        try:
            request = self.build_stream_request(config, messages, system_prompt)
            logger.debug("%s stream request: %s %s", self.name, request.method, request.url.path)
            response = await self._client.send(request, stream=True)
            try:
                if not response.is_success:
                    body = await response.aread()
                    message = extract_error_message(body, response.status_code)
                    logger.warning("%s returned HTTP %s: %s", self.name, response.status_code, message)
                    guard.error(message)
                    return
                await self._consume_stream(response, guard, cancel_token)
            finally:
                await response.aclose()
        except httpx.TimeoutException:
            logger.warning("%s request timed out", self.name)
            guard.error(TIMEOUT_MESSAGE)
        except httpx.HTTPError as e:
            logger.warning("%s transport error: %s", self.name, e)
            guard.error(str(e) or UNKNOWN_ERROR_MESSAGE)
        except httpx.InvalidURL as e:
            logger.warning("%s endpoint is not a valid URL: %s", self.name, e)
            guard.error(f"Invalid endpoint URL: {e}")

    async def _consume_stream(
        self,
        response: httpx.Response,
        guard: _TerminalGuard,
        cancel_token: CancelToken | None,
    ) -> None:
        decoder = SSELineDecoder()

        async for chunk in response.aiter_bytes():
            if cancel_token is not None and cancel_token.cancelled:
                guard.error(CANCELLED_MESSAGE)
                return
            if self._dispatch(decoder.feed(chunk), guard, cancel_token):
                return

        if self._dispatch(decoder.flush(), guard, cancel_token):
            return
        guard.complete()

    def _dispatch(
        self,
        lines: list[str],
        guard: _TerminalGuard,
        cancel_token: CancelToken | None,
    ) -> bool:
        """Deliver events from complete lines. Returns True once the stream is terminated."""
        for data in iter_payloads(lines):
            event = self.parse_stream_event(data)
            if event is None:
                continue
            if event.error is not None:
                logger.warning("%s stream error: %s", self.name, event.error)
                guard.error(event.error)
                return True
            if event.text:
                if cancel_token is not None and cancel_token.cancelled:
                    guard.error(CANCELLED_MESSAGE)
                    return True
                guard.token(event.text)
        return False

    async def simple_completion(self, config: ProviderConfig, prompt: str) -> str:
        """Run a short non-streaming completion.

        Returns:
            The trimmed completion text, or an empty string on any failure
        """
        if self.missing_api_key(config):
            logger.warning("%s completion skipped: no API key configured", self.name)
            return ""

        try:
            request = self.build_completion_request(config, prompt)
            response = await self._client.send(request)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("%s simple completion failed: %s", self.name, e)
            return ""

        if not response.is_success:
            logger.warning("%s simple completion returned HTTP %s", self.name, response.status_code)
            return ""

        try:
            data = response.json()
        except ValueError:
            logger.warning("%s simple completion returned non-JSON body", self.name)
            return ""

        return self.extract_completion_text(data).strip()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "LLMProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
