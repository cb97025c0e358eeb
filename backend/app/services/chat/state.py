"""
Generation state definitions.
Defines the send/generate lifecycle, the deferred task payload and the
user-facing error notices.
"""
import uuid
from dataclasses import dataclass, field
from enum import Enum

from app.services.adapter.errors import (
    MissingCredentialError,
    ProviderAPIError,
    ProviderConnectionError,
    ProviderResponseError,
    ProviderTimeoutError,
    UnsupportedProviderError,
)


class GenerationState(str, Enum):
    """Lifecycle of one `send` call."""
    RECEIVED = "received"
    PERSISTED_USER_MSG = "persisted_user_msg"
    PLACEHOLDER_CREATED = "placeholder_created"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class GenerationTask:
    """
    Payload of the deferred generation job.

    Executed once; a failed task is never retried.
    """
    chat_id: uuid.UUID
    message_id: uuid.UUID
    user_id: str
    model_id: str
    api_key: str = field(repr=False)


class ChatAccessError(Exception):
    """Chat does not exist or belongs to another user."""


class ChatNotFoundError(LookupError):
    """Chat vanished between scheduling and generation."""


# User-facing notices written into the assistant message
NOTICE_CHAT_NOT_FOUND = "Error: Chat not found."
NOTICE_MISSING_KEY = "Error: API key not configured. Please provide an API key for this model."
NOTICE_UNSUPPORTED_PROVIDER = "Error: Unsupported AI model provider. Please contact support."
NOTICE_SERVICE_FAILURE = "Error: Failed to connect to the AI service. Please check your API key and try again."
NOTICE_TIMEOUT = "Error: The AI service timed out. Please try again."
NOTICE_GENERIC = "Sorry, I encountered an error while generating a response."

_NOTICES: tuple[tuple[type[BaseException], str], ...] = (
    (ChatNotFoundError, NOTICE_CHAT_NOT_FOUND),
    (MissingCredentialError, NOTICE_MISSING_KEY),
    (UnsupportedProviderError, NOTICE_UNSUPPORTED_PROVIDER),
    (ProviderTimeoutError, NOTICE_TIMEOUT),
    (ProviderAPIError, NOTICE_SERVICE_FAILURE),
    (ProviderConnectionError, NOTICE_SERVICE_FAILURE),
    (ProviderResponseError, NOTICE_SERVICE_FAILURE),
)


def describe_error(error: BaseException) -> str:
    """Map an exception to the fixed notice shown to the user."""
    for error_type, notice in _NOTICES:
        if isinstance(error, error_type):
            return notice
    return NOTICE_GENERIC
