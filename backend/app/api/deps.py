"""
Shared API dependencies.

Authentication is handled upstream by the identity provider, which
forwards the signed-in user's id in the X-User-Id header.
"""
from typing import Optional

import httpx
from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import async_session_factory
from app.services.chat import MessageOrchestrator
from app.services.streaming import MessageEventBus, event_bus


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None),
) -> str:
    """Resolve the caller's id, or reject the request."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()


async def require_admin(
    user_id: str = Depends(get_current_user_id),
) -> str:
    """Allow only configured admin ids."""
    if not settings.is_admin(user_id):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user_id


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Factory for sessions that outlive a single request."""
    return async_session_factory


def get_event_bus() -> MessageEventBus:
    return event_bus


def get_http_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport for provider calls; None means the network."""
    return None


def get_orchestrator(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    bus: MessageEventBus = Depends(get_event_bus),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> MessageOrchestrator:
    return MessageOrchestrator(session_factory, bus, transport=transport)
