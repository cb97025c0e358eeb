"""
Message Event Bus - in-process change notifications for messages.

Every append to a message publishes an event to the subscribers of its
chat, which is how clients follow a generation without polling.
"""
import asyncio
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Set

from app.core.logging import get_logger

logger = get_logger(__name__)


class EventKind:
    """Kinds of message events."""
    APPEND = "append"
    DONE = "done"
    ERROR = "error"


@dataclass
class MessageEvent:
    """One change to a message's content."""
    kind: str
    chat_id: uuid.UUID
    message_id: uuid.UUID
    fragment: str = ""
    content: str = ""

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "chatId": str(self.chat_id),
            "messageId": str(self.message_id),
            "fragment": self.fragment,
            "content": self.content,
        }


class MessageEventBus:
    """
    Publish/subscribe hub keyed by chat id.

    Each subscriber owns an unbounded asyncio.Queue; publishing never
    blocks the writer.
    """

    def __init__(self):
        self._subscribers: Dict[uuid.UUID, Set[asyncio.Queue]] = defaultdict(set)

    def publish(self, event: MessageEvent) -> int:
        """
        Deliver an event to every subscriber of its chat.

        Returns:
            Number of subscribers notified
        """
        queues = list(self._subscribers.get(event.chat_id, ()))
        for queue in queues:
            queue.put_nowait(event)
        return len(queues)

    @asynccontextmanager
    async def subscribe(self, chat_id: uuid.UUID) -> AsyncIterator[asyncio.Queue]:
        """Subscribe to a chat's events for the duration of the context."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[chat_id].add(queue)
        logger.debug("Subscriber added", chat_id=str(chat_id))
        try:
            yield queue
        finally:
            subscribers = self._subscribers.get(chat_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[chat_id]
            logger.debug("Subscriber removed", chat_id=str(chat_id))

    def subscriber_count(self, chat_id: uuid.UUID) -> int:
        return len(self._subscribers.get(chat_id, ()))


event_bus = MessageEventBus()
