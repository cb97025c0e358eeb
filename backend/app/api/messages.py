"""
Messages API endpoints.
"""
import json
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.chats import load_owned_chat
from app.api.deps import (
    get_current_user_id,
    get_event_bus,
    get_orchestrator,
    get_session_factory,
)
from app.core.database import get_db
from app.core.logging import get_logger
from app.models.message import Message
from app.services.chat import ChatAccessError, MessageOrchestrator
from app.services.streaming import MessageEventBus

logger = get_logger(__name__)
router = APIRouter()


# ========================================
# Request/Response Schemas
# ========================================

class SendMessageRequest(BaseModel):
    """Request to send a message and generate a reply."""
    content: str = Field(..., min_length=1, description="Message text")
    apiKey: str = Field(..., min_length=1, description="Provider API key for this call")
    modelId: str = Field(..., min_length=1, max_length=255, description="Vendor model id")


class SendMessageResponse(BaseModel):
    """Id of the assistant message that will receive the reply."""
    messageId: str


class MessageResponse(BaseModel):
    """Message response."""
    id: str
    chatId: str
    role: str
    content: str
    userId: str | None = None
    createdAt: int
    updatedAt: int


# ========================================
# API Endpoints
# ========================================

@router.get("/{chat_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    chat_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Get all messages of a chat in creation order.
    """
    await load_owned_chat(db, chat_id, user_id)

    result = await db.execute(
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(Message.created_at)
    )
    return [MessageResponse(**message.to_dict()) for message in result.scalars().all()]


@router.post("/{chat_id}/messages", response_model=SendMessageResponse, status_code=202)
async def send_message(
    chat_id: UUID,
    request: SendMessageRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    orchestrator: MessageOrchestrator = Depends(get_orchestrator),
):
    """
    Store the user's message and schedule the assistant reply.

    Returns as soon as the reply is scheduled; its text streams into the
    returned message id.
    """
    try:
        task = await orchestrator.send(
            db,
            user_id=user_id,
            chat_id=chat_id,
            content=request.content,
            api_key=request.apiKey,
            model_id=request.modelId,
        )
    except ChatAccessError:
        raise HTTPException(status_code=404, detail="Chat not found")

    # Rows must be visible to the background job's own sessions
    await db.commit()

    background_tasks.add_task(orchestrator.generate, task)

    logger.info(
        "Generation scheduled",
        chat_id=str(chat_id),
        message_id=str(task.message_id),
        model=task.model_id,
    )
    return SendMessageResponse(messageId=str(task.message_id))


@router.get("/{chat_id}/messages/stream")
async def stream_message_events(
    chat_id: UUID,
    user_id: str = Depends(get_current_user_id),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    bus: MessageEventBus = Depends(get_event_bus),
):
    """
    Follow message changes of a chat.

    Returns Server-Sent Events (SSE) stream, one event per append plus
    a `done` or `error` event when a generation ends. The stream stays
    open until the client disconnects.
    """
    # Short-lived session; the stream itself holds no connection
    async with session_factory() as session:
        await load_owned_chat(session, chat_id, user_id)

    async def generate():
        async with bus.subscribe(chat_id) as queue:
            while True:
                event = await queue.get()
                yield f"data: {json.dumps(event.to_dict())}\n\n"

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )
