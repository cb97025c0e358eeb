"""
Shared test fixtures.

The application engine is pointed at an in-memory SQLite database
before any app module is imported.
"""
import json
import os
import uuid

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ADMIN_USER_IDS"] = json.dumps(["admin-user"])
os.environ["LOG_FORMAT"] = "console"

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base
import app.models  # noqa: F401
from app.models.chat import Chat
from app.services.streaming import MessageEventBus

ADMIN_ID = "admin-user"


@pytest.fixture
async def session_factory():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def bus():
    return MessageEventBus()


@pytest.fixture
def user_id():
    return f"user-{uuid.uuid4().hex[:8]}"


@pytest.fixture
async def chat(session_factory, user_id):
    async with session_factory() as session:
        chat = Chat(user_id=user_id, title="Test chat", model_id="gpt-4o")
        session.add(chat)
        await session.commit()
        return chat


# ========================================
# Provider response builders
# ========================================

def sse_body(*frames, done: bool = True) -> bytes:
    """Encode JSON frames as an SSE body."""
    lines = [f"data: {json.dumps(frame)}\n\n" for frame in frames]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def openai_frames(*texts):
    return [{"choices": [{"delta": {"content": text}}]} for text in texts]


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def openai_reply(*texts) -> RecordingTransport:
    """Transport answering every request with a streamed OpenAI reply."""
    body = sse_body(*openai_frames(*texts))
    return RecordingTransport(
        lambda request: httpx.Response(
            200,
            content=body,
            headers={"content-type": "text/event-stream"},
        )
    )


def status_reply(status_code: int, payload: dict) -> RecordingTransport:
    return RecordingTransport(lambda request: httpx.Response(status_code, json=payload))
