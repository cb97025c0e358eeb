"""
Chats API endpoints.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id
from app.core.database import get_db
from app.core.logging import get_logger
from app.models.chat import Chat
from app.services.chat import ChatAccessError, get_owned_chat
from app.services.logs import LogStore

logger = get_logger(__name__)
router = APIRouter()


# ========================================
# Request/Response Schemas
# ========================================

class CreateChatRequest(BaseModel):
    """Request to create a chat."""
    title: str = Field(..., min_length=1, max_length=255, description="Chat title")
    modelId: str = Field(..., min_length=1, max_length=255, description="Vendor model id")


class UpdateChatRequest(BaseModel):
    """Request to rename a chat or pick another model."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    modelId: Optional[str] = Field(None, min_length=1, max_length=255)


class ChatResponse(BaseModel):
    """Chat response."""
    id: str
    userId: str
    title: str
    modelId: str
    isArchived: bool
    createdAt: int
    updatedAt: int


class CreateChatResponse(BaseModel):
    id: str


async def load_owned_chat(db: AsyncSession, chat_id: UUID, user_id: str) -> Chat:
    """Fetch the caller's chat or answer 404."""
    try:
        return await get_owned_chat(db, chat_id, user_id)
    except ChatAccessError:
        raise HTTPException(status_code=404, detail="Chat not found")


# ========================================
# API Endpoints
# ========================================

@router.get("", response_model=list[ChatResponse])
async def list_chats(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the caller's chats that are not archived, newest first.
    """
    result = await db.execute(
        select(Chat)
        .where(Chat.user_id == user_id, Chat.is_archived.is_(False))
        .order_by(Chat.created_at.desc())
    )
    return [ChatResponse(**chat.to_dict()) for chat in result.scalars().all()]


@router.post("", response_model=CreateChatResponse, status_code=201)
async def create_chat(
    request: CreateChatRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a new chat bound to a model.
    """
    chat = Chat(user_id=user_id, title=request.title, model_id=request.modelId)
    db.add(chat)
    await db.flush()

    await LogStore(db).user_action(user_id, "chat_created", chatId=str(chat.id), model=chat.model_id)

    logger.info("Chat created", chat_id=str(chat.id), model=chat.model_id)
    return CreateChatResponse(id=str(chat.id))


@router.get("/{chat_id}", response_model=ChatResponse)
async def get_chat(
    chat_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Get one of the caller's chats.
    """
    chat = await load_owned_chat(db, chat_id, user_id)
    return ChatResponse(**chat.to_dict())


@router.patch("/{chat_id}", response_model=ChatResponse)
async def update_chat(
    chat_id: UUID,
    request: UpdateChatRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Rename a chat and/or reselect its model.
    """
    chat = await load_owned_chat(db, chat_id, user_id)

    changes = {}
    if request.title is not None and request.title != chat.title:
        chat.title = request.title
        changes["title"] = request.title
    if request.modelId is not None and request.modelId != chat.model_id:
        chat.model_id = request.modelId
        changes["model"] = request.modelId

    if changes:
        chat.updated_at = datetime.utcnow()
        await db.flush()
        await LogStore(db).user_action(user_id, "chat_updated", chatId=str(chat.id), **changes)
        logger.info("Chat updated", chat_id=str(chat.id), fields=list(changes))

    return ChatResponse(**chat.to_dict())


@router.post("/{chat_id}/archive", status_code=204)
async def archive_chat(
    chat_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Archive a chat. Chats are never deleted.
    """
    chat = await load_owned_chat(db, chat_id, user_id)

    if not chat.is_archived:
        chat.is_archived = True
        chat.updated_at = datetime.utcnow()
        await db.flush()
        await LogStore(db).user_action(user_id, "chat_archived", chatId=str(chat.id))
        logger.info("Chat archived", chat_id=str(chat.id))
