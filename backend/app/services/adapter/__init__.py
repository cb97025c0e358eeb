"""
AI Adapter module - Provider abstraction layer.

Supports multiple AI providers behind one fragment-stream contract:
- OpenAI
- Anthropic Claude
- Google Gemini
- Hugging Face inference (single fragment)
"""
from app.services.adapter.errors import (
    ProviderError,
    ProviderAPIError,
    ProviderTimeoutError,
    ProviderConnectionError,
    ProviderResponseError,
    UnsupportedProviderError,
    MissingCredentialError,
)
from app.services.adapter.provider import (
    AIProviderAdapter,
    SSEProviderAdapter,
    ChatMessage,
    AIResponse,
    create_adapter,
    stream_completion,
    token_limit_field,
)
from app.services.adapter.router import (
    ProviderTag,
    resolve_provider,
    parse_provider_tag,
)

__all__ = [
    "AIProviderAdapter",
    "SSEProviderAdapter",
    "ChatMessage",
    "AIResponse",
    "create_adapter",
    "stream_completion",
    "token_limit_field",
    "ProviderTag",
    "resolve_provider",
    "parse_provider_tag",
    "ProviderError",
    "ProviderAPIError",
    "ProviderTimeoutError",
    "ProviderConnectionError",
    "ProviderResponseError",
    "UnsupportedProviderError",
    "MissingCredentialError",
]
