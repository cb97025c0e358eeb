"""
Services module - Application business logic layer.

Modules:
- adapter: AI provider abstraction layer and model-id routing
- streaming: Incremental message persistence and change events
- chat: Send/generate orchestration
- logs: Persisted audit entries
"""
from app.services.adapter import create_adapter, resolve_provider
from app.services.chat import MessageOrchestrator
from app.services.logs import LogStore
from app.services.streaming import StreamAccumulator, event_bus

__all__ = [
    "create_adapter",
    "resolve_provider",
    "MessageOrchestrator",
    "LogStore",
    "StreamAccumulator",
    "event_bus",
]
