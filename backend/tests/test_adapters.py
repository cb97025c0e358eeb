"""
Tests for provider adapters against mocked vendor endpoints.
"""
import json

import httpx
import pytest

from app.services.adapter import (
    ChatMessage,
    MissingCredentialError,
    ProviderAPIError,
    ProviderConnectionError,
    ProviderResponseError,
    ProviderTag,
    ProviderTimeoutError,
    SSEProviderAdapter,
    UnsupportedProviderError,
    create_adapter,
    stream_completion,
    token_limit_field,
)

from conftest import RecordingTransport, openai_frames, openai_reply, sse_body, status_reply

API_KEY = "sk-test-secret-123"
MESSAGES = [
    ChatMessage("user", "Hello"),
    ChatMessage("assistant", "Hi there"),
    ChatMessage("user", "How are you?"),
]


async def collect(stream):
    return [fragment async for fragment in stream]


# ========================================
# Factory
# ========================================

def test_create_adapter_requires_key():
    with pytest.raises(MissingCredentialError):
        create_adapter(ProviderTag.OPENAI, "", "gpt-4o")
    with pytest.raises(MissingCredentialError):
        create_adapter(ProviderTag.OPENAI, "   ", "gpt-4o")


def test_create_adapter_rejects_unknown_provider():
    with pytest.raises(UnsupportedProviderError):
        create_adapter("cohere", API_KEY, "command-r")


async def test_empty_conversation_is_rejected():
    adapter = create_adapter(ProviderTag.OPENAI, API_KEY, "gpt-4o", transport=openai_reply("x"))
    with pytest.raises(ValueError):
        await collect(adapter.chat_completion_stream([]))


# ========================================
# OpenAI
# ========================================

def test_token_limit_field():
    assert token_limit_field("o3-mini") == "max_completion_tokens"
    assert token_limit_field("gpt-4") == "max_tokens"
    assert token_limit_field("o1-preview") == "max_tokens"


async def test_openai_streams_fragments_in_order():
    transport = openai_reply("Hel", "lo", "!")
    adapter = create_adapter(ProviderTag.OPENAI, API_KEY, "gpt-4", transport=transport)

    assert await collect(adapter.chat_completion_stream(MESSAGES)) == ["Hel", "lo", "!"]

    request = transport.requests[0]
    assert request.url.path.endswith("/chat/completions")
    assert request.headers["authorization"] == f"Bearer {API_KEY}"
    body = transport.last_json
    assert body["stream"] is True
    assert body["model"] == "gpt-4"
    assert body["messages"][2] == {"role": "user", "content": "How are you?"}
    assert "max_tokens" in body
    assert "max_completion_tokens" not in body
    assert body["temperature"] == 0.7


async def test_o3_uses_max_completion_tokens():
    transport = openai_reply("ok")
    adapter = create_adapter(
        ProviderTag.OPENAI, API_KEY, "o3-mini", max_tokens=512, transport=transport
    )

    await collect(adapter.chat_completion_stream(MESSAGES))

    body = transport.last_json
    assert body["max_completion_tokens"] == 512
    assert "max_tokens" not in body
    assert "temperature" not in body


async def test_malformed_frames_are_skipped():
    body = (
        b'data: {"choices": [{"delta": {"content": "a"}}]}\n\n'
        b"data: {broken\n\n"
        b'data: {"choices": []}\n\n'
        b'data: {"choices": [{"delta": {"content": "b"}}]}\n\n'
        b"data: [DONE]\n\n"
    )
    transport = RecordingTransport(lambda request: httpx.Response(200, content=body))
    adapter = create_adapter(ProviderTag.OPENAI, API_KEY, "gpt-4o", transport=transport)

    assert await collect(adapter.chat_completion_stream(MESSAGES)) == ["a", "b"]


async def test_error_status_raises_api_error_with_vendor_message():
    transport = status_reply(401, {"error": {"message": "Incorrect API key provided"}})
    adapter = create_adapter(ProviderTag.OPENAI, API_KEY, "gpt-4o", transport=transport)

    with pytest.raises(ProviderAPIError) as exc_info:
        await collect(adapter.chat_completion_stream(MESSAGES))

    assert exc_info.value.status_code == 401
    assert str(exc_info.value) == "AI API Error: 401 - Incorrect API key provided"
    assert exc_info.value.provider == "openai"


async def test_timeout_is_mapped():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    adapter = create_adapter(
        ProviderTag.OPENAI, API_KEY, "gpt-4o", transport=httpx.MockTransport(handler)
    )
    with pytest.raises(ProviderTimeoutError):
        await collect(adapter.chat_completion_stream(MESSAGES))


async def test_mid_stream_failure_after_partial_output():
    async def body():
        yield sse_body(*openai_frames("par", "tial"), done=False)
        raise httpx.ReadError("connection reset")

    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=body()))
    adapter = create_adapter(ProviderTag.OPENAI, API_KEY, "gpt-4o", transport=transport)

    received = []
    with pytest.raises(ProviderConnectionError):
        async for fragment in adapter.chat_completion_stream(MESSAGES):
            received.append(fragment)

    assert received == ["par", "tial"]


async def test_connection_error_does_not_leak_key():
    def handler(request):
        raise httpx.ConnectError(f"failed for {request.url}", request=request)

    adapter = create_adapter(
        ProviderTag.GOOGLE, API_KEY, "gemini-1.5-pro", transport=httpx.MockTransport(handler)
    )
    with pytest.raises(ProviderConnectionError) as exc_info:
        await collect(adapter.chat_completion_stream(MESSAGES))

    assert API_KEY not in str(exc_info.value)


# ========================================
# Anthropic
# ========================================

async def test_anthropic_extracts_text_deltas():
    body = sse_body(
        {"type": "message_start", "message": {"id": "msg_1"}},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Bon"}},
        {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "jour"}},
        {"type": "message_delta", "delta": {"stop_reason": "end_turn"}},
        {"type": "message_stop"},
        done=False,
    )
    transport = RecordingTransport(lambda request: httpx.Response(200, content=body))
    adapter = create_adapter(
        ProviderTag.ANTHROPIC, API_KEY, "claude-3-5-sonnet-20240620", transport=transport
    )

    assert await collect(adapter.chat_completion_stream(MESSAGES)) == ["Bon", "jour"]

    request = transport.requests[0]
    assert request.url.path.endswith("/messages")
    assert request.headers["x-api-key"] == API_KEY
    assert request.headers["anthropic-version"] == "2023-06-01"
    assert "authorization" not in request.headers
    assert transport.last_json["max_tokens"] == 4096


async def test_anthropic_error_event_fails_the_stream():
    body = sse_body(
        {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Bon"}},
        {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "jour"}},
        done=False,
    )
    transport = RecordingTransport(lambda request: httpx.Response(200, content=body))
    adapter = create_adapter(
        ProviderTag.ANTHROPIC, API_KEY, "claude-3-5-sonnet-20240620", transport=transport
    )

    received = []
    with pytest.raises(ProviderAPIError) as exc_info:
        async for fragment in adapter.chat_completion_stream(MESSAGES):
            received.append(fragment)

    assert received == ["Bon"]
    assert exc_info.value.status_code == 529
    assert exc_info.value.vendor_message == "Overloaded"


def test_sse_adapters_must_extract_fragments():
    class NoFrames(SSEProviderAdapter):
        def _stream(self, messages, call):
            return self._stream_sse(call, self.base_url, headers={}, body={})

    with pytest.raises(TypeError):
        NoFrames(API_KEY, "gpt-4o", base_url="http://vendor.test", max_tokens=10)


# ========================================
# Google
# ========================================

async def test_google_flattens_roles_and_passes_key_as_param():
    body = sse_body(
        {"candidates": [{"content": {"parts": [{"text": "Ciao"}]}}]},
        {"candidates": [{"content": {"parts": [{"text": " a tutti"}]}}]},
        done=False,
    )
    transport = RecordingTransport(lambda request: httpx.Response(200, content=body))
    adapter = create_adapter(ProviderTag.GOOGLE, API_KEY, "gemini-1.5-pro", transport=transport)

    assert await collect(adapter.chat_completion_stream(MESSAGES)) == ["Ciao", " a tutti"]

    request = transport.requests[0]
    assert request.url.path.endswith("/models/gemini-1.5-pro:streamGenerateContent")
    assert request.url.params["key"] == API_KEY
    assert request.url.params["alt"] == "sse"
    payload = json.loads(request.content)
    assert payload["contents"][0]["parts"] == [
        {"text": "user: Hello"},
        {"text": "assistant: Hi there"},
        {"text": "user: How are you?"},
    ]
    assert payload["generationConfig"]["maxOutputTokens"] == 1024


# ========================================
# Hugging Face
# ========================================

@pytest.mark.parametrize("turns", [1, 3, 12])
async def test_huggingface_yields_single_fragment(turns):
    history = [
        ChatMessage("user" if i % 2 == 0 else "assistant", f"turn {i}")
        for i in range(turns)
    ]
    transport = RecordingTransport(
        lambda request: httpx.Response(200, json=[{"generated_text": "A whole reply."}])
    )
    adapter = create_adapter(
        ProviderTag.HUGGINGFACE, API_KEY, "mistralai/Mistral-7B-Instruct-v0.2", transport=transport
    )

    assert await collect(adapter.chat_completion_stream(history)) == ["A whole reply."]

    request = transport.requests[0]
    assert request.url.path.endswith("/mistralai/Mistral-7B-Instruct-v0.2")
    payload = transport.last_json
    assert payload["inputs"] == "\n".join(f"turn {i}" for i in range(turns))
    assert payload["parameters"]["max_new_tokens"] == 250
    assert payload["parameters"]["return_full_text"] is False


async def test_huggingface_unexpected_body():
    transport = RecordingTransport(lambda request: httpx.Response(200, json={"oops": True}))
    adapter = create_adapter(ProviderTag.HUGGINGFACE, API_KEY, "gpt2", transport=transport)

    with pytest.raises(ProviderResponseError):
        await collect(adapter.chat_completion_stream(MESSAGES))


async def test_huggingface_error_body_as_plain_error_string():
    transport = status_reply(503, {"error": "Model gpt2 is currently loading"})
    adapter = create_adapter(ProviderTag.HUGGINGFACE, API_KEY, "gpt2", transport=transport)

    with pytest.raises(ProviderAPIError) as exc_info:
        await collect(adapter.chat_completion_stream(MESSAGES))

    assert exc_info.value.vendor_message == "Model gpt2 is currently loading"


# ========================================
# Routing helper
# ========================================

async def test_stream_completion_routes_by_model_id():
    transport = openai_reply("routed")
    fragments = await collect(
        stream_completion(API_KEY, "gpt-4o-mini", MESSAGES, transport=transport)
    )

    assert fragments == ["routed"]
    assert transport.requests[0].url.host == "api.openai.com"


async def test_chat_completion_joins_fragments():
    adapter = create_adapter(
        ProviderTag.OPENAI, API_KEY, "gpt-4o", transport=openai_reply("a", "b", "c")
    )
    response = await adapter.chat_completion(MESSAGES)

    assert response.content == "abc"
    assert response.fragment_count == 3
