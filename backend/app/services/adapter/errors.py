"""
Provider error types.

Transport and vendor failures derive from ProviderError; configuration
problems (unknown provider, missing key) are ValueErrors since they are
detected before any request is made.
"""
from typing import Optional


class ProviderError(Exception):
    """Base class for failures talking to an AI provider."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


class ProviderAPIError(ProviderError):
    """Provider answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: str, provider: Optional[str] = None):
        super().__init__(f"AI API Error: {status_code} - {message}", provider)
        self.status_code = status_code
        self.vendor_message = message


class ProviderTimeoutError(ProviderError):
    """Request to the provider timed out."""


class ProviderConnectionError(ProviderError):
    """Network failure before or during the response."""


class ProviderResponseError(ProviderError):
    """Response body did not have the expected shape."""


class UnsupportedProviderError(ValueError):
    """Provider tag is not one the router knows about."""


class MissingCredentialError(ValueError):
    """No API key was supplied for the call."""
