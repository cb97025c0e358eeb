"""
Chat module - message send and generation orchestration.
"""
from app.services.chat.orchestrator import MessageOrchestrator
from app.services.chat.ownership import get_owned_chat
from app.services.chat.state import (
    ChatAccessError,
    ChatNotFoundError,
    GenerationState,
    GenerationTask,
    describe_error,
)

__all__ = [
    "MessageOrchestrator",
    "get_owned_chat",
    "ChatAccessError",
    "ChatNotFoundError",
    "GenerationState",
    "GenerationTask",
    "describe_error",
]
