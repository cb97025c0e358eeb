"""
Streaming module - incremental persistence of generated text.
"""
from app.services.streaming.accumulator import StreamAccumulator
from app.services.streaming.events import (
    EventKind,
    MessageEvent,
    MessageEventBus,
    event_bus,
)

__all__ = [
    "StreamAccumulator",
    "EventKind",
    "MessageEvent",
    "MessageEventBus",
    "event_bus",
]
