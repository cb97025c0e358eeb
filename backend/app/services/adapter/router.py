"""
Provider Router - maps a vendor model identifier to a provider tag.

Routing is decided by model-id prefix alone, using one ordered rule
table. Identifiers that match no rule fall back to Hugging Face, whose
inference API hosts arbitrary model names.
"""
from enum import Enum

from app.services.adapter.errors import UnsupportedProviderError


class ProviderTag(str, Enum):
    """Known provider backends."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    HUGGINGFACE = "huggingface"


# Ordered (prefix, provider) rules; first match wins
PROVIDER_RULES: tuple[tuple[str, ProviderTag], ...] = (
    ("gpt-", ProviderTag.OPENAI),
    ("o1-", ProviderTag.OPENAI),
    ("o2-", ProviderTag.OPENAI),
    ("o3-", ProviderTag.OPENAI),
    ("claude-", ProviderTag.ANTHROPIC),
    ("gemini-", ProviderTag.GOOGLE),
)

DEFAULT_PROVIDER = ProviderTag.HUGGINGFACE


def resolve_provider(model_id: str) -> ProviderTag:
    """
    Resolve the provider for a vendor model identifier.

    Args:
        model_id: Vendor model id, e.g. "gpt-4o" or "gemini-1.5-pro"

    Returns:
        Matching provider tag, or DEFAULT_PROVIDER when no prefix matches
    """
    for prefix, provider in PROVIDER_RULES:
        if model_id.startswith(prefix):
            return provider
    return DEFAULT_PROVIDER


def parse_provider_tag(value: str | ProviderTag) -> ProviderTag:
    """
    Convert a stored or user-supplied provider string to a tag.

    Raises:
        UnsupportedProviderError: If the value is not a known provider
    """
    if isinstance(value, ProviderTag):
        return value
    try:
        return ProviderTag(value.strip().lower())
    except ValueError:
        raise UnsupportedProviderError(f"Unsupported provider: {value}") from None
