from app.models.chat import Chat
from app.models.message import Message, MessageRole
from app.models.ai_model import AIModel
from app.models.log import LogEntry, LogType

__all__ = [
    "Chat",
    "Message",
    "MessageRole",
    "AIModel",
    "LogEntry",
    "LogType",
]
