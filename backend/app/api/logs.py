"""
Log API endpoints.
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id, require_admin
from app.core.database import get_db
from app.models.log import LogType
from app.services.logs import LogStore
from app.services.logs.store import MAX_LIMIT

router = APIRouter()


class LogEntryResponse(BaseModel):
    """Log entry response."""
    id: str
    type: str
    timestamp: int
    userId: Optional[str] = None
    details: dict[str, Any]


@router.get("", response_model=list[LogEntryResponse])
async def list_logs(
    type: Optional[LogType] = Query(None, description="Filter by entry kind"),
    limit: int = Query(100, ge=1, le=MAX_LIMIT),
    admin_id: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Get log entries of all users, newest first (admin only).
    """
    entries = await LogStore(db).list(log_type=type, limit=limit)
    return [LogEntryResponse(**entry.to_dict()) for entry in entries]


@router.get("/me", response_model=list[LogEntryResponse])
async def list_my_logs(
    limit: int = Query(100, ge=1, le=MAX_LIMIT),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the caller's own log entries, newest first.
    """
    entries = await LogStore(db).list(user_id=user_id, limit=limit)
    return [LogEntryResponse(**entry.to_dict()) for entry in entries]
