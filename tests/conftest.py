"""Pytest configuration and shared fixtures."""
import asyncio
import json
from collections.abc import Callable, Iterable
from typing import Any

import httpx
import pytest

from quickassist.chat import ChatSession, Clipboard
from quickassist.history.in_memory import InMemoryHistoryStore
from quickassist.llm import (
    LLMProviderType,
    ProviderConfig,
    StreamCallbacks,
    create_provider_registry,
)

BASIC_ARITHMETIC_REPLY = 'Title: "Basic Arithmetic"'


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in exactly the given chunks."""

    def __init__(self, chunks: Iterable[bytes]):
        self._chunks = list(chunks)

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk

    async def aclose(self) -> None:
        pass


class GatedStream(httpx.AsyncByteStream):
    """Yields the first chunk, then waits for ``gate`` before the rest."""

    def __init__(self, first: bytes, rest: Iterable[bytes], gate: asyncio.Event):
        self._first = first
        self._rest = list(rest)
        self._gate = gate

    async def __aiter__(self):
        yield self._first
        await self._gate.wait()
        for chunk in self._rest:
            yield chunk

    async def aclose(self) -> None:
        pass


def sse(*payloads: Any, done: bool = False) -> bytes:
    """Encode payloads as SSE ``data:`` frames."""
    frames = "".join(f"data: {json.dumps(p)}\n\n" for p in payloads)
    if done:
        frames += "data: [DONE]\n\n"
    return frames.encode("utf-8")


def split_at(data: bytes, cuts: Iterable[int]) -> list[bytes]:
    """Split bytes at the given offsets (duplicates and order don't matter)."""
    points = sorted({c for c in cuts if 0 < c < len(data)})
    bounds = [0, *points, len(data)]
    return [data[a:b] for a, b in zip(bounds, bounds[1:])]


def gemini_chunk(text: str) -> dict[str, Any]:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def openai_chunk(text: str) -> dict[str, Any]:
    return {"id": "chatcmpl-1", "choices": [{"index": 0, "delta": {"content": text}}]}


def anthropic_delta(text: str) -> dict[str, Any]:
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


def gemini_completion(text: str) -> dict[str, Any]:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def sse_response(chunks: Iterable[bytes]) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream"},
        stream=ChunkedStream(chunks),
    )


class CallbackRecorder:
    """Records every callback a provider makes."""

    def __init__(self):
        self.events: list[tuple[str, str | None]] = []

    def callbacks(self) -> StreamCallbacks:
        return StreamCallbacks(
            on_token=lambda t: self.events.append(("token", t)),
            on_complete=lambda: self.events.append(("complete", None)),
            on_error=lambda m: self.events.append(("error", m)),
        )

    @property
    def tokens(self) -> list[str]:
        return [value for kind, value in self.events if kind == "token"]

    @property
    def text(self) -> str:
        return "".join(self.tokens)

    @property
    def completions(self) -> int:
        return sum(1 for kind, _ in self.events if kind == "complete")

    @property
    def errors(self) -> list[str]:
        return [value for kind, value in self.events if kind == "error"]


class FakeGeminiAPI:
    """MockTransport handler that answers like the Gemini endpoints.

    Streams ``chunks`` (or ``stream`` if given) for streamGenerateContent and
    answers generateContent with ``title_reply``.
    """

    def __init__(
        self,
        chunks: Iterable[bytes] = (),
        status_code: int = 200,
        error_body: dict[str, Any] | None = None,
        title_reply: str = BASIC_ARITHMETIC_REPLY,
    ):
        self.chunks = list(chunks)
        self.stream: httpx.AsyncByteStream | None = None
        self.status_code = status_code
        self.error_body = error_body
        self.title_reply = title_reply
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith(":streamGenerateContent"):
            if self.status_code != 200:
                return httpx.Response(self.status_code, json=self.error_body or {})
            if self.stream is not None:
                return httpx.Response(200, stream=self.stream)
            return sse_response(self.chunks)
        return httpx.Response(200, json=gemini_completion(self.title_reply))

    def requests_to(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def prompts_sent(self) -> list[str]:
        """User texts of every title completion request."""
        bodies = [json.loads(r.content) for r in self.requests_to(":generateContent")]
        return [b["contents"][0]["parts"][0]["text"] for b in bodies]


class FakeClipboard(Clipboard):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.text: str | None = None

    async def write_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("no clipboard available")
        self.text = text


class StepClock:
    """Deterministic millisecond clock advancing one step per call."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


@pytest.fixture
def gemini_config():
    """Gemini configuration pointing at the (mocked) public endpoint."""
    return ProviderConfig(
        provider=LLMProviderType.GEMINI,
        api_key="test-key",
        model="gemini-2.0-flash",
    )


@pytest.fixture
def fake_api():
    return FakeGeminiAPI()


@pytest.fixture
def history_store():
    return InMemoryHistoryStore(clock=StepClock())


@pytest.fixture
def clipboard():
    return FakeClipboard()


@pytest.fixture
async def registry(fake_api: Callable[[httpx.Request], httpx.Response]):
    """Provider registry whose HTTP traffic goes to ``fake_api``."""
    registry = create_provider_registry(transport=httpx.MockTransport(fake_api))
    yield registry
    await registry.close()


@pytest.fixture
async def session(registry, history_store, clipboard):
    session = ChatSession(registry=registry, history=history_store, clipboard=clipboard)
    yield session
    await session.wait_for_pending()
