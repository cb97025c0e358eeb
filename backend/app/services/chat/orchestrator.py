"""
Message Orchestrator - drives one `send` from user input to a finished
assistant reply.

send:      received -> persisted_user_msg -> placeholder_created
generate:  generating -> completed | failed

`send` runs inside the caller's request and returns a GenerationTask;
`generate` runs later as a background job with its own sessions.
Concurrent sends on one chat are not serialized: each gets its own
placeholder and generation.
"""
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger, redact
from app.models.ai_model import AIModel
from app.models.chat import Chat
from app.models.message import Message, MessageRole
from app.services.adapter import (
    ChatMessage,
    ProviderTag,
    create_adapter,
    resolve_provider,
)
from app.services.chat.ownership import get_owned_chat
from app.services.chat.state import (
    ChatNotFoundError,
    GenerationState,
    GenerationTask,
    describe_error,
)
from app.services.logs import LogStore
from app.services.streaming import MessageEventBus, StreamAccumulator

logger = get_logger(__name__)


class MessageOrchestrator:
    """
    Coordinates message persistence, provider routing and streaming.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        event_bus: MessageEventBus,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.accumulator = StreamAccumulator(session_factory, event_bus)
        self.transport = transport

    # ========================================
    # send
    # ========================================

    async def send(
        self,
        db: AsyncSession,
        user_id: str,
        chat_id: uuid.UUID,
        content: str,
        api_key: str,
        model_id: str,
    ) -> GenerationTask:
        """
        Persist a user message and an empty assistant placeholder.

        Nothing is written when the ownership check fails. The caller
        commits `db` and then schedules `generate(task)`.

        Args:
            db: Request-scoped session
            user_id: Authenticated caller
            chat_id: Target chat
            content: User's message text
            api_key: Caller's provider key (kept out of logs and storage)
            model_id: Vendor model id to answer with

        Returns:
            Task payload for the deferred generation

        Raises:
            ChatAccessError: Chat missing or owned by someone else
        """
        log = logger.bind(chat_id=str(chat_id), user_id=user_id, model=model_id)
        log.debug("Send received", state=GenerationState.RECEIVED.value)

        chat = await get_owned_chat(db, chat_id, user_id)

        now = datetime.utcnow()
        if chat.model_id != model_id:
            log.info("Chat model reselected", previous_model=chat.model_id)
            chat.model_id = model_id
        chat.updated_at = now

        user_message = Message(
            chat_id=chat.id,
            role=MessageRole.USER.value,
            content=content,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        db.add(user_message)
        await db.flush()
        log.debug("User message stored", state=GenerationState.PERSISTED_USER_MSG.value)

        # Placeholder sorts after the user message
        placeholder_time = now + timedelta(microseconds=1)
        placeholder = Message(
            chat_id=chat.id,
            role=MessageRole.ASSISTANT.value,
            content="",
            created_at=placeholder_time,
            updated_at=placeholder_time,
        )
        db.add(placeholder)
        await db.flush()
        log.debug(
            "Placeholder created",
            state=GenerationState.PLACEHOLDER_CREATED.value,
            message_id=str(placeholder.id),
        )

        await LogStore(db).user_action(
            user_id,
            "message_sent",
            chatId=str(chat.id),
            messageId=str(user_message.id),
            model=model_id,
        )

        return GenerationTask(
            chat_id=chat.id,
            message_id=placeholder.id,
            user_id=user_id,
            model_id=model_id,
            api_key=api_key,
        )

    # ========================================
    # generate
    # ========================================

    async def generate(self, task: GenerationTask) -> GenerationState:
        """
        Run one generation attempt into the task's placeholder.

        Every failure is mapped to a fixed notice appended to the
        placeholder and recorded as an `error` log entry. Never retries.

        Returns:
            COMPLETED or FAILED
        """
        log = logger.bind(
            chat_id=str(task.chat_id),
            message_id=str(task.message_id),
            model=task.model_id,
        )
        log.info("Generation started", state=GenerationState.GENERATING.value)

        provider: Optional[ProviderTag] = None
        try:
            history, descriptor = await self._load_context(task)
            provider = resolve_provider(task.model_id)

            adapter = create_adapter(
                provider,
                task.api_key,
                task.model_id,
                max_tokens=descriptor.max_tokens if descriptor else None,
                temperature=descriptor.temperature if descriptor else None,
                transport=self.transport,
            )
            text = await self.accumulator.consume(
                task.message_id,
                adapter.chat_completion_stream(history),
            )
        except Exception as e:
            await self._fail(task, e, provider)
            return GenerationState.FAILED

        log.info(
            "Generation completed",
            state=GenerationState.COMPLETED.value,
            provider=provider.value,
            chars=len(text),
        )
        return GenerationState.COMPLETED

    async def _load_context(
        self,
        task: GenerationTask,
    ) -> tuple[List[ChatMessage], Optional[AIModel]]:
        """
        Load the conversation history and the model descriptor.

        History is every message of the chat in creation order, minus the
        placeholder being filled and any empty messages (other
        placeholders still in flight).
        """
        async with self.session_factory() as session:
            chat = await session.get(Chat, task.chat_id)
            if chat is None:
                raise ChatNotFoundError(f"Chat {task.chat_id} not found")

            result = await session.execute(
                select(Message)
                .where(Message.chat_id == task.chat_id)
                .order_by(Message.created_at)
            )
            history = [
                ChatMessage(role=m.role, content=m.content)
                for m in result.scalars().all()
                if m.id != task.message_id and m.content
            ]

            result = await session.execute(
                select(AIModel).where(AIModel.model_id == task.model_id)
            )
            descriptor = result.scalar_one_or_none()

        return history, descriptor

    async def _fail(
        self,
        task: GenerationTask,
        error: Exception,
        provider: Optional[ProviderTag],
    ) -> None:
        """Write the user-facing notice and the error log entry."""
        notice = describe_error(error)
        error_message = redact(str(error), task.api_key)

        logger.error(
            "Generation failed",
            state=GenerationState.FAILED.value,
            chat_id=str(task.chat_id),
            message_id=str(task.message_id),
            model=task.model_id,
            provider=provider.value if provider else None,
            error_type=type(error).__name__,
            error=error_message,
        )

        await self.accumulator.append_error(task.message_id, notice)

        async with self.session_factory() as session:
            await LogStore(session).error(
                task.user_id,
                action="generate_response",
                chatId=str(task.chat_id),
                messageId=str(task.message_id),
                provider=provider.value if provider else None,
                model=task.model_id,
                errorType=type(error).__name__,
                errorMessage=error_message,
                statusCode=getattr(error, "status_code", None),
            )
            await session.commit()
