"""Unit tests for the provider wire protocols."""
import asyncio
import json
from collections.abc import Callable

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from quickassist.llm import (
    AnthropicProvider,
    CancelToken,
    GeminiProvider,
    LLMProvider,
    LLMProviderType,
    Message,
    MessageRole,
    OpenAIProvider,
    ProviderConfig,
    is_local_endpoint,
)
from quickassist.llm.base import (
    API_KEY_MISSING_MESSAGE,
    CANCELLED_MESSAGE,
    TIMEOUT_MESSAGE,
    extract_error_message,
)

from conftest import (
    CallbackRecorder,
    anthropic_delta,
    gemini_chunk,
    openai_chunk,
    split_at,
    sse,
    sse_response,
)

PARTS = ["Hé", "llo, ", "wörld ", "✓ ", "日本"]
FULL_TEXT = "".join(PARTS)


def anthropic_stream(parts: list[str], error: dict | None = None) -> bytes:
    """A Messages API event stream with ``event:`` lines, as Anthropic sends it."""
    events = [
        ("message_start", {"type": "message_start", "message": {"id": "msg_1", "role": "assistant", "content": []}}),
        ("content_block_start", {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}}),
        ("ping", {"type": "ping"}),
        *[("content_block_delta", anthropic_delta(p)) for p in parts],
    ]
    if error is not None:
        events.append(("error", error))
    else:
        events += [
            ("content_block_stop", {"type": "content_block_stop", "index": 0}),
            ("message_delta", {"type": "message_delta", "delta": {"stop_reason": "end_turn"}}),
            ("message_stop", {"type": "message_stop"}),
        ]
    return "".join(f"event: {name}\ndata: {json.dumps(data)}\n\n" for name, data in events).encode("utf-8")


def gemini_stream(parts: list[str]) -> bytes:
    return sse(*[gemini_chunk(p) for p in parts])


def openai_stream(parts: list[str]) -> bytes:
    finish = {"id": "chatcmpl-1", "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]}
    role = {"id": "chatcmpl-1", "choices": [{"index": 0, "delta": {"role": "assistant"}}]}
    return sse(role, *[openai_chunk(p) for p in parts], finish, done=True)


PROVIDERS: dict[str, tuple[type[LLMProvider], ProviderConfig, Callable[[list[str]], bytes]]] = {
    "gemini": (
        GeminiProvider,
        ProviderConfig(provider=LLMProviderType.GEMINI, api_key="test-key", model="gemini-2.0-flash"),
        gemini_stream,
    ),
    "openai": (
        OpenAIProvider,
        ProviderConfig(provider=LLMProviderType.OPENAI, api_key="test-key", model="gpt-4o-mini"),
        openai_stream,
    ),
    "anthropic": (
        AnthropicProvider,
        ProviderConfig(provider=LLMProviderType.ANTHROPIC, api_key="test-key", model="claude-3-5-haiku-latest"),
        anthropic_stream,
    ),
}

MID_STREAM_ERRORS = {
    "gemini": lambda parts: sse(*[gemini_chunk(p) for p in parts], {"error": {"code": 429, "message": "Quota exceeded"}}),
    "openai": lambda parts: sse(*[openai_chunk(p) for p in parts], {"error": {"message": "Quota exceeded"}}),
    "anthropic": lambda parts: anthropic_stream(
        parts, error={"type": "error", "error": {"type": "overloaded_error", "message": "Quota exceeded"}}
    ),
}

INVALID_BASE_URL = "http://localhost:abc/v1"

HISTORY = [
    Message(role=MessageRole.USER, content="Hi"),
    Message(role=MessageRole.ASSISTANT, content="Hello! How can I help?"),
    Message(role=MessageRole.USER, content="What is 2+2?"),
]


async def run_stream(
    kind: str,
    handler: Callable[[httpx.Request], httpx.Response],
    config: ProviderConfig | None = None,
    system_prompt: str | None = None,
    cancel_token: CancelToken | None = None,
) -> tuple[CallbackRecorder, list[httpx.Request]]:
    """Stream HISTORY through one provider against a mock transport."""
    provider_cls, default_config, _ = PROVIDERS[kind]
    requests: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    recorder = CallbackRecorder()
    async with provider_cls(transport=httpx.MockTransport(recording_handler)) as provider:
        await provider.stream_chat(
            config or default_config,
            HISTORY,
            recorder.callbacks(),
            system_prompt=system_prompt,
            cancel_token=cancel_token,
        )
    return recorder, requests


class TestStreamDecoding:
    """Tests shared by all three wire protocols."""

    @pytest.mark.parametrize("kind", list(PROVIDERS))
    @settings(max_examples=40, deadline=None)
    @given(cuts=st.lists(st.integers(min_value=0, max_value=2000), max_size=20))
    def test_arbitrary_chunk_splits_yield_full_text(self, kind: str, cuts: list[int]):
        """Property test: splits anywhere (mid-JSON, mid-UTF-8) keep the text and one completion."""
        body = PROVIDERS[kind][2](PARTS)
        chunks = split_at(body, cuts)

        recorder, _ = asyncio.run(run_stream(kind, lambda request: sse_response(chunks)))

        assert recorder.text == FULL_TEXT
        assert recorder.completions == 1
        assert recorder.errors == []
        assert recorder.events[-1] == ("complete", None)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_one_byte_chunks(self, kind: str):
        """Test the degenerate split where every byte is its own chunk."""
        body = PROVIDERS[kind][2](PARTS)
        chunks = [body[i:i + 1] for i in range(len(body))]

        recorder, _ = await run_stream(kind, lambda request: sse_response(chunks))

        assert recorder.text == FULL_TEXT
        assert recorder.completions == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_non_success_status_reports_one_error(self, kind: str):
        """Test that HTTP 401 yields exactly one on_error and no tokens."""
        def handler(request):
            return httpx.Response(401, json={"error": {"code": 401, "message": "Invalid API key"}})

        recorder, _ = await run_stream(kind, handler)

        assert recorder.events == [("error", "Invalid API key")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_non_json_error_body_falls_back_to_status(self, kind: str):
        def handler(request):
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        recorder, _ = await run_stream(kind, handler)

        assert recorder.events == [("error", "HTTP error 502")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_missing_api_key_fails_without_network_call(self, kind: str):
        """Test that an empty key against a remote endpoint never reaches the network."""
        config = PROVIDERS[kind][1].model_copy(update={"api_key": ""})

        recorder, requests = await run_stream(kind, lambda request: sse_response([]), config=config)

        assert requests == []
        assert recorder.events == [("error", API_KEY_MISSING_MESSAGE)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_mid_stream_error_keeps_earlier_tokens(self, kind: str):
        """Test that an error event after two tokens ends the stream with one error."""
        body = MID_STREAM_ERRORS[kind](["Two ", "tokens"])

        recorder, _ = await run_stream(kind, lambda request: sse_response([body]))

        assert recorder.tokens == ["Two ", "tokens"]
        assert recorder.errors == ["Quota exceeded"]
        assert recorder.completions == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_malformed_frame_is_skipped(self, kind: str):
        """Test that one unparseable frame does not stop the stream."""
        body = PROVIDERS[kind][2](PARTS)
        broken = b"data: {\"candidates\": [\n\n" + body

        recorder, _ = await run_stream(kind, lambda request: sse_response([broken]))

        assert recorder.text == FULL_TEXT
        assert recorder.completions == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_unterminated_last_line_is_delivered(self, kind: str):
        """Test that a final frame without a trailing newline still counts."""
        body = PROVIDERS[kind][2](PARTS).rstrip(b"\n")

        recorder, _ = await run_stream(kind, lambda request: sse_response([body]))

        assert recorder.text == FULL_TEXT
        assert recorder.completions == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_connection_failure_reports_error(self, kind: str):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        recorder, _ = await run_stream(kind, handler)

        assert recorder.events == [("error", "Connection refused")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_timeout_reports_timeout_message(self, kind: str):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        recorder, _ = await run_stream(kind, handler)

        assert recorder.events == [("error", TIMEOUT_MESSAGE)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_cancelled_token_stops_before_first_token(self, kind: str):
        token = CancelToken()
        token.cancel()
        body = PROVIDERS[kind][2](PARTS)

        recorder, _ = await run_stream(kind, lambda request: sse_response([body]), cancel_token=token)

        assert recorder.events == [("error", CANCELLED_MESSAGE)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_invalid_base_url_reports_one_error(self, kind: str):
        config = PROVIDERS[kind][1].model_copy(update={"base_url": INVALID_BASE_URL})

        recorder, requests = await run_stream(kind, lambda request: httpx.Response(200), config=config)

        assert len(recorder.errors) == 1
        assert recorder.completions == 0
        assert recorder.tokens == []
        assert requests == []


class TestGeminiRequests:
    """Tests for Gemini request construction."""

    @pytest.mark.asyncio
    async def test_stream_request_shape(self):
        recorder, requests = await run_stream(
            "gemini", lambda request: sse_response([gemini_stream(["ok"])]), system_prompt="Be brief."
        )

        request = requests[0]
        body = json.loads(request.content)
        assert request.url.path == "/v1beta/models/gemini-2.0-flash:streamGenerateContent"
        assert request.url.params["alt"] == "sse"
        assert request.url.params["key"] == "test-key"
        assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
        assert body["contents"][2]["parts"] == [{"text": "What is 2+2?"}]
        assert body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert body["generationConfig"]["maxOutputTokens"] == 8192
        assert recorder.text == "ok"

    @pytest.mark.asyncio
    async def test_no_system_instruction_without_prompt(self):
        _, requests = await run_stream("gemini", lambda request: sse_response([gemini_stream(["ok"])]))

        assert "systemInstruction" not in json.loads(requests[0].content)

    @pytest.mark.asyncio
    async def test_local_endpoint_sends_no_key(self):
        config = ProviderConfig(
            provider=LLMProviderType.GEMINI,
            model="gemma",
            base_url="http://127.0.0.1:8080/models/",
        )

        recorder, requests = await run_stream(
            "gemini", lambda request: sse_response([gemini_stream(["ok"])]), config=config
        )

        assert requests[0].url.host == "127.0.0.1"
        assert requests[0].url.path == "/models/gemma:streamGenerateContent"
        assert "key" not in requests[0].url.params
        assert recorder.text == "ok"


class TestOpenAIRequests:
    """Tests for OpenAI (and OpenAI-compatible) request construction."""

    @pytest.mark.asyncio
    async def test_stream_request_shape(self):
        _, requests = await run_stream(
            "openai", lambda request: sse_response([openai_stream(["ok"])]), system_prompt="Be brief."
        )

        request = requests[0]
        body = json.loads(request.content)
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer test-key"
        assert body["stream"] is True
        assert body["model"] == "gpt-4o-mini"
        assert body["messages"][0] == {"role": "system", "content": "Be brief."}
        assert [m["role"] for m in body["messages"][1:]] == ["user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_local_server_without_key_omits_authorization(self):
        """Test that an Ollama-style local endpoint works with no key."""
        config = ProviderConfig(
            provider=LLMProviderType.CUSTOM,
            model="llama3.2",
            base_url="http://localhost:11434/v1",
        )

        recorder, requests = await run_stream(
            "openai", lambda request: sse_response([openai_stream(["local"])]), config=config
        )

        assert str(requests[0].url) == "http://localhost:11434/v1/chat/completions"
        assert "Authorization" not in requests[0].headers
        assert recorder.text == "local"


class TestAnthropicRequests:
    """Tests for Anthropic request construction."""

    @pytest.mark.asyncio
    async def test_stream_request_shape(self):
        _, requests = await run_stream(
            "anthropic", lambda request: sse_response([anthropic_stream(["ok"])]), system_prompt="Be brief."
        )

        request = requests[0]
        body = json.loads(request.content)
        assert str(request.url) == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "test-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert body["system"] == "Be brief."
        assert body["max_tokens"] == 8192
        assert body["stream"] is True
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]


class TestSimpleCompletion:
    """Tests for the non-streaming completion used for titles."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kind,payload",
        [
            ("gemini", {"candidates": [{"content": {"parts": [{"text": "  Basic Arithmetic \n"}]}}]}),
            ("openai", {"choices": [{"message": {"role": "assistant", "content": "  Basic Arithmetic \n"}}]}),
            ("anthropic", {"content": [{"type": "text", "text": "  Basic "}, {"type": "text", "text": "Arithmetic \n"}]}),
        ],
    )
    async def test_returns_trimmed_text(self, kind: str, payload: dict):
        provider_cls, config, _ = PROVIDERS[kind]
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=payload)

        async with provider_cls(transport=httpx.MockTransport(handler)) as provider:
            text = await provider.simple_completion(config, "Summarize")

        assert text == "Basic Arithmetic"
        body = json.loads(requests[0].content)
        assert body.get("max_tokens", body.get("generationConfig", {}).get("maxOutputTokens")) == 50
        assert "stream" not in body

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_http_error_returns_empty_string(self, kind: str):
        provider_cls, config, _ = PROVIDERS[kind]
        transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": {"message": "boom"}}))

        async with provider_cls(transport=transport) as provider:
            assert await provider.simple_completion(config, "Summarize") == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_network_error_returns_empty_string(self, kind: str):
        provider_cls, config, _ = PROVIDERS[kind]

        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        async with provider_cls(transport=httpx.MockTransport(handler)) as provider:
            assert await provider.simple_completion(config, "Summarize") == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(PROVIDERS))
    async def test_invalid_base_url_returns_empty_string(self, kind: str):
        provider_cls, config, _ = PROVIDERS[kind]
        config = config.model_copy(update={"base_url": INVALID_BASE_URL})
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))

        async with provider_cls(transport=transport) as provider:
            assert await provider.simple_completion(config, "Summarize") == ""

    @pytest.mark.asyncio
    async def test_missing_key_skips_request(self):
        requests = []
        transport = httpx.MockTransport(lambda request: requests.append(request) or httpx.Response(200, json={}))
        config = ProviderConfig(provider=LLMProviderType.OPENAI, model="gpt-4o-mini")

        async with OpenAIProvider(transport=transport) as provider:
            assert await provider.simple_completion(config, "Summarize") == ""
        assert requests == []


class TestHelpers:
    """Tests for shared provider helpers."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("http://localhost:11434/v1", True),
            ("http://127.0.0.1:1234", True),
            ("http://[::1]:8080/v1", True),
            ("https://api.openai.com/v1", False),
            ("https://localhost.example.com", False),
            ("not a url", False),
        ],
    )
    def test_is_local_endpoint(self, url: str, expected: bool):
        assert is_local_endpoint(url) is expected

    def test_extract_error_message_unwraps_list(self):
        body = json.dumps([{"error": {"code": 400, "message": "API key not valid"}}]).encode()

        assert extract_error_message(body, 400) == "API key not valid"

    def test_extract_error_message_without_message(self):
        assert extract_error_message(b'{"detail": "nope"}', 404) == "HTTP error 404"

    def test_provider_is_abstract(self):
        """Test that LLMProvider cannot be instantiated directly."""
        with pytest.raises(TypeError):
            LLMProvider()  # type: ignore
