"""
Streaming Accumulator - appends streamed fragments to a persisted message.

Each fragment is one committed `content = content || fragment` update,
so readers see the message grow one whole fragment at a time.
"""
import uuid
from datetime import datetime
from typing import AsyncIterator, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.models.message import Message
from app.services.streaming.events import EventKind, MessageEvent, MessageEventBus

logger = get_logger(__name__)

ERROR_SEPARATOR = "\n\n"


class StreamAccumulator:
    """
    Sole writer of an assistant message while its generation runs.

    Not idempotent: applying the same fragments twice appends them twice.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        event_bus: MessageEventBus,
    ):
        self.session_factory = session_factory
        self.event_bus = event_bus

    async def _append_text(self, message_id: uuid.UUID, text: str) -> Optional[Message]:
        async with self.session_factory() as session:
            result = await session.execute(
                update(Message)
                .where(Message.id == message_id)
                .values(
                    content=Message.content + text,
                    updated_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                logger.warning("Append target missing", message_id=str(message_id))
                return None

            row = await session.execute(
                select(Message).where(Message.id == message_id)
            )
            message = row.scalar_one()
            await session.commit()
            return message

    async def append(self, message_id: uuid.UUID, fragment: str) -> Optional[str]:
        """
        Append one fragment and notify subscribers.

        Args:
            message_id: Target message
            fragment: Text to append

        Returns:
            The message's full content after the append, or None when the
            message no longer exists
        """
        if not fragment:
            return None

        message = await self._append_text(message_id, fragment)
        if message is None:
            return None

        self.event_bus.publish(MessageEvent(
            kind=EventKind.APPEND,
            chat_id=message.chat_id,
            message_id=message_id,
            fragment=fragment,
            content=message.content,
        ))
        return message.content

    async def consume(
        self,
        message_id: uuid.UUID,
        fragments: AsyncIterator[str],
    ) -> str:
        """
        Apply every fragment of a stream in receipt order.

        Errors raised by the stream propagate to the caller; fragments
        already applied stay in place.

        Returns:
            Concatenation of the fragments applied
        """
        applied: list[str] = []
        content = ""
        chat_id: Optional[uuid.UUID] = None

        async for fragment in fragments:
            if await self.append(message_id, fragment) is not None:
                applied.append(fragment)

        text = "".join(applied)
        async with self.session_factory() as session:
            message = await session.get(Message, message_id)
            if message is not None:
                chat_id = message.chat_id
                content = message.content

        if chat_id is not None:
            self.event_bus.publish(MessageEvent(
                kind=EventKind.DONE,
                chat_id=chat_id,
                message_id=message_id,
                content=content,
            ))

        logger.debug(
            "Stream consumed",
            message_id=str(message_id),
            fragments=len(applied),
            chars=len(text),
        )
        return text

    async def append_error(self, message_id: uuid.UUID, notice: str) -> Optional[str]:
        """
        Append a terminal error notice.

        Partial content is preserved; the notice follows it after a
        blank line.

        Returns:
            Final content, or None when the message no longer exists
        """
        async with self.session_factory() as session:
            message = await session.get(Message, message_id)
            if message is None:
                logger.warning("Error target missing", message_id=str(message_id))
                return None
            has_partial = bool(message.content)

        text = f"{ERROR_SEPARATOR}{notice}" if has_partial else notice
        message = await self._append_text(message_id, text)
        if message is None:
            return None

        self.event_bus.publish(MessageEvent(
            kind=EventKind.ERROR,
            chat_id=message.chat_id,
            message_id=message_id,
            fragment=text,
            content=message.content,
        ))
        return message.content
