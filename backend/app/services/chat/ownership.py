"""
Chat ownership checks shared by the API and the orchestrator.
"""
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.chat import Chat
from app.services.chat.state import ChatAccessError


async def get_owned_chat(db: AsyncSession, chat_id: uuid.UUID, user_id: str) -> Chat:
    """
    Load a chat the caller owns.

    Missing and foreign chats are indistinguishable to the caller.

    Raises:
        ChatAccessError: Chat missing or owned by someone else
    """
    chat = await db.get(Chat, chat_id)
    if chat is None or chat.user_id != user_id:
        raise ChatAccessError("Chat not found")
    return chat
