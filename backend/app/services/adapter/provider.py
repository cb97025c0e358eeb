"""
AI Provider Adapter - Abstract layer for multiple LLM providers.
Supports OpenAI, Anthropic Claude, Google Gemini and Hugging Face
inference, all normalized to one lazy stream of text fragments.

Adapters are built per call with the caller's API key; there are no
module-level clients.
"""
import json
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

import httpx

from app.core.config import settings
from app.core.logging import get_logger, redact, AIDebugLogger, AICallTracker
from app.services.adapter.errors import (
    MissingCredentialError,
    ProviderAPIError,
    ProviderConnectionError,
    ProviderResponseError,
    ProviderTimeoutError,
)
from app.services.adapter.router import ProviderTag, parse_provider_tag, resolve_provider
from app.services.adapter.sse import iter_sse_data

logger = get_logger(__name__)
debug_logger = AIDebugLogger(logger)

# Frame shapes that are skipped rather than failing the stream
MALFORMED_FRAME_ERRORS = (ValueError, KeyError, IndexError, TypeError, AttributeError)


class ChatMessage:
    """Chat message structure."""

    def __init__(self, role: str, content: str):
        self.role = role
        self.content = content

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}

    def __repr__(self) -> str:
        return f"ChatMessage(role={self.role!r}, chars={len(self.content)})"


class AIResponse:
    """Completed (non-streaming) response."""

    def __init__(self, content: str, fragment_count: int = 0):
        self.content = content
        self.fragment_count = fragment_count


def token_limit_field(model: str) -> str:
    """
    Name of the OpenAI request field carrying the output token limit.

    o3 reasoning models reject `max_tokens` and take
    `max_completion_tokens` instead.
    """
    if model.startswith("o3-"):
        return "max_completion_tokens"
    return "max_tokens"


def _vendor_error_message(body: bytes, fallback: str) -> str:
    """Pull the human-readable message out of a vendor error body."""
    try:
        data = json.loads(body)
    except ValueError:
        text = body.decode("utf-8", errors="replace").strip()
        return text[:500] or fallback

    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if data.get("message"):
            return str(data["message"])
    return fallback


class AIProviderAdapter(ABC):
    """
    Abstract base class for AI provider adapters.

    Subclasses implement `_stream`, which issues the vendor request and
    yields fragments. The base class wraps it with call tracking and maps
    httpx failures to provider errors.
    """

    provider_name: str = "unknown"
    endpoint_name: str = ""
    streaming: bool = True

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        max_tokens: int,
        temperature: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.temperature = settings.AI_TEMPERATURE if temperature is None else temperature
        self.transport = transport
        self.timeout = timeout or settings.AI_REQUEST_TIMEOUT

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def chat_completion(self, messages: list[ChatMessage]) -> AIResponse:
        """Run a request to completion and return the joined text."""
        fragments = [fragment async for fragment in self.chat_completion_stream(messages)]
        return AIResponse(content="".join(fragments), fragment_count=len(fragments))

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
    ) -> AsyncIterator[str]:
        """
        Send a chat request and yield response text fragments.

        Args:
            messages: Non-empty, ordered conversation turns

        Yields:
            Text fragments in the order the provider produced them

        Raises:
            ProviderAPIError: Non-success HTTP status
            ProviderTimeoutError: Request timed out
            ProviderConnectionError: Network failure
            ProviderResponseError: Unparseable non-streaming body
        """
        if not messages:
            raise ValueError("At least one message is required")

        with debug_logger.track_call(
            provider=self.provider_name,
            model=self.model,
            endpoint=self.endpoint_name,
            streaming=self.streaming,
        ) as call:
            call.add_messages([m.to_dict() for m in messages])
            call.set_request_params(temperature=self.temperature, max_tokens=self.max_tokens)

            try:
                async for fragment in self._stream(messages, call):
                    call.add_fragment(fragment)
                    yield fragment
            except httpx.TimeoutException:
                call.set_error("timeout", f"Request timed out after {self.timeout}s")
                raise ProviderTimeoutError(
                    f"AI request timed out after {self.timeout}s",
                    self.provider_name,
                ) from None
            except httpx.HTTPError as e:
                message = redact(f"{type(e).__name__}: {e}", self.api_key)
                call.set_error("connection", message)
                raise ProviderConnectionError(message, self.provider_name) from None

    @abstractmethod
    def _stream(
        self,
        messages: list[ChatMessage],
        call: AICallTracker,
    ) -> AsyncIterator[str]:
        """Issue the vendor request and yield fragments."""

    async def _raise_for_status(self, response: httpx.Response, call: AICallTracker) -> None:
        if response.is_success:
            return
        body = await response.aread()
        message = redact(
            _vendor_error_message(body, response.reason_phrase or str(response.status_code)),
            self.api_key,
        )
        call.set_error("api_error", f"HTTP {response.status_code}: {message}", response.status_code)
        raise ProviderAPIError(response.status_code, message, self.provider_name)


class SSEProviderAdapter(AIProviderAdapter):
    """
    Base for providers that stream Server-Sent Events.

    Subclasses build the request in `_stream` through `_stream_sse` and
    pick the text out of each decoded frame in `_extract_fragment`.
    """

    @abstractmethod
    def _extract_fragment(self, frame: dict) -> Optional[str]:
        """Pull the text delta out of one decoded SSE frame."""

    async def _stream_sse(
        self,
        call: AICallTracker,
        url: str,
        headers: dict,
        body: dict,
        params: Optional[dict] = None,
    ) -> AsyncIterator[str]:
        """POST a streaming request and yield fragments from its SSE frames."""
        async with self._client() as client:
            async with client.stream(
                "POST",
                url,
                headers=headers,
                params=params,
                json=body,
            ) as response:
                await self._raise_for_status(response, call)

                async for payload in iter_sse_data(response.aiter_text()):
                    try:
                        fragment = self._extract_fragment(json.loads(payload))
                    except MALFORMED_FRAME_ERRORS as e:
                        logger.warning(
                            "Skipping malformed stream frame",
                            provider=self.provider_name,
                            model=self.model,
                            error=str(e),
                        )
                        continue
                    if fragment:
                        yield fragment


class OpenAIAdapter(SSEProviderAdapter):
    """Adapter for the OpenAI chat completions API."""

    provider_name = "openai"
    endpoint_name = "chat/completions"

    def __init__(self, api_key: str, model: str, max_tokens: Optional[int] = None, **kwargs):
        kwargs.setdefault("base_url", settings.OPENAI_BASE_URL)
        super().__init__(api_key, model, max_tokens=max_tokens or settings.AI_MAX_TOKENS, **kwargs)

    def build_request_body(self, messages: list[ChatMessage]) -> dict:
        body = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "stream": True,
            token_limit_field(self.model): self.max_tokens,
        }
        # Reasoning models only accept the default temperature
        if token_limit_field(self.model) == "max_tokens":
            body["temperature"] = self.temperature
        return body

    def _stream(self, messages, call):
        return self._stream_sse(
            call,
            f"{self.base_url}/chat/completions",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            body=self.build_request_body(messages),
        )

    def _extract_fragment(self, frame: dict) -> Optional[str]:
        choices = frame.get("choices") or []
        if not choices:
            return None
        delta = choices[0].get("delta") or {}
        return delta.get("content")


# HTTP status Anthropic documents for each error type; errors can also
# arrive as an `error` event after the stream has started
ANTHROPIC_ERROR_STATUS = {
    "invalid_request_error": 400,
    "authentication_error": 401,
    "permission_error": 403,
    "not_found_error": 404,
    "request_too_large": 413,
    "rate_limit_error": 429,
    "api_error": 500,
    "overloaded_error": 529,
}


class AnthropicAdapter(SSEProviderAdapter):
    """Adapter for the Anthropic messages API."""

    provider_name = "anthropic"
    endpoint_name = "messages"

    def __init__(self, api_key: str, model: str, max_tokens: Optional[int] = None, **kwargs):
        kwargs.setdefault("base_url", settings.ANTHROPIC_BASE_URL)
        super().__init__(api_key, model, max_tokens=max_tokens or settings.AI_MAX_TOKENS, **kwargs)

    def build_request_body(self, messages: list[ChatMessage]) -> dict:
        return {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": True,
        }

    def _stream(self, messages, call):
        return self._stream_sse(
            call,
            f"{self.base_url}/messages",
            headers={
                "Content-Type": "application/json",
                "x-api-key": self.api_key,
                "anthropic-version": settings.ANTHROPIC_VERSION,
            },
            body=self.build_request_body(messages),
        )

    def _extract_fragment(self, frame: dict) -> Optional[str]:
        if frame.get("type") == "error":
            error = frame.get("error") or {}
            error_type = error.get("type", "api_error")
            raise ProviderAPIError(
                ANTHROPIC_ERROR_STATUS.get(error_type, 500),
                redact(error.get("message") or error_type, self.api_key),
                self.provider_name,
            )
        # Only content_block_delta events carry delta.text
        delta = frame.get("delta") or {}
        return delta.get("text")


class GoogleAdapter(SSEProviderAdapter):
    """
    Adapter for the Google Gemini API.

    Each turn is flattened to a "<role>: <text>" part of a single content
    entry instead of using Gemini's own role model.
    """

    provider_name = "google"
    endpoint_name = "streamGenerateContent"

    def __init__(self, api_key: str, model: str, max_tokens: Optional[int] = None, **kwargs):
        kwargs.setdefault("base_url", settings.GOOGLE_BASE_URL)
        super().__init__(
            api_key,
            model,
            max_tokens=max_tokens or settings.GOOGLE_MAX_OUTPUT_TOKENS,
            **kwargs,
        )

    def build_request_body(self, messages: list[ChatMessage]) -> dict:
        return {
            "contents": [
                {
                    "parts": [{"text": f"{m.role}: {m.content}"} for m in messages]
                }
            ],
            "generationConfig": {
                "maxOutputTokens": self.max_tokens,
                "temperature": self.temperature,
            },
        }

    def _stream(self, messages, call):
        return self._stream_sse(
            call,
            f"{self.base_url}/models/{self.model}:streamGenerateContent",
            headers={"Content-Type": "application/json"},
            params={"key": self.api_key, "alt": "sse"},
            body=self.build_request_body(messages),
        )

    def _extract_fragment(self, frame: dict) -> Optional[str]:
        candidates = frame.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        if not parts:
            return None
        return parts[0].get("text")


class HuggingFaceAdapter(AIProviderAdapter):
    """
    Adapter for the Hugging Face inference API.

    Non-streaming: the conversation is joined into one prompt and the
    generated text comes back as exactly one fragment.
    """

    provider_name = "huggingface"
    endpoint_name = "inference"
    streaming = False

    def __init__(self, api_key: str, model: str, max_tokens: Optional[int] = None, **kwargs):
        kwargs.setdefault("base_url", settings.HUGGINGFACE_BASE_URL)
        super().__init__(
            api_key,
            model,
            max_tokens=max_tokens or settings.HUGGINGFACE_MAX_NEW_TOKENS,
            **kwargs,
        )

    def build_request_body(self, messages: list[ChatMessage]) -> dict:
        return {
            "inputs": "\n".join(m.content for m in messages),
            "parameters": {
                "max_new_tokens": self.max_tokens,
                "temperature": self.temperature,
                "return_full_text": False,
            },
        }

    async def _stream(self, messages, call):
        async with self._client() as client:
            response = await client.post(
                f"{self.base_url}/{self.model}",
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json=self.build_request_body(messages),
            )
            await self._raise_for_status(response, call)

            try:
                generated = response.json()[0]["generated_text"]
            except MALFORMED_FRAME_ERRORS as e:
                call.set_error("bad_response", str(e))
                raise ProviderResponseError(
                    f"Unexpected Hugging Face response: {type(e).__name__}",
                    self.provider_name,
                ) from None

        if not isinstance(generated, str):
            raise ProviderResponseError("Hugging Face returned non-text output", self.provider_name)
        yield generated


ADAPTERS: dict[ProviderTag, type[AIProviderAdapter]] = {
    ProviderTag.OPENAI: OpenAIAdapter,
    ProviderTag.ANTHROPIC: AnthropicAdapter,
    ProviderTag.GOOGLE: GoogleAdapter,
    ProviderTag.HUGGINGFACE: HuggingFaceAdapter,
}


def create_adapter(
    provider: ProviderTag | str,
    api_key: str,
    model: str,
    *,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AIProviderAdapter:
    """
    Build an adapter for one call.

    Args:
        provider: Provider tag (or its string value)
        api_key: Caller-supplied credential; never logged
        model: Vendor model identifier
        max_tokens: Override of the provider's default output limit
        temperature: Override of the default temperature
        transport: Optional httpx transport (tests inject a mock here)

    Raises:
        UnsupportedProviderError: Unknown provider
        MissingCredentialError: Empty API key
    """
    tag = parse_provider_tag(provider)

    if not api_key or not api_key.strip():
        raise MissingCredentialError(f"API key not set for provider '{tag.value}'")

    logger.info(
        "Initializing AI adapter",
        provider=tag.value,
        model=model,
    )

    return ADAPTERS[tag](
        api_key=api_key.strip(),
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        transport=transport,
    )


def stream_completion(
    api_key: str,
    model: str,
    messages: list[ChatMessage],
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **options,
) -> AsyncIterator[str]:
    """Route a model id to its provider and stream the reply."""
    adapter = create_adapter(
        resolve_provider(model),
        api_key,
        model,
        transport=transport,
        **options,
    )
    return adapter.chat_completion_stream(messages)
