"""
Log Store - append-only audit trail in the database.

Records:
- Generation errors (provider, model, status, redacted message)
- User actions (chat created/archived/renamed, message sent)
- Admin actions (model descriptor changes)

Process logs go through structlog; these entries are the persisted,
queryable record.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.models.log import LogEntry, LogType

logger = get_logger(__name__)

MAX_LIMIT = 500


class LogStore:
    """Database-backed log entries. Entries are never updated or deleted."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        log_type: LogType,
        details: Dict[str, Any],
        user_id: Optional[str] = None,
    ) -> LogEntry:
        """
        Append a log entry.

        The entry is flushed but not committed; it becomes durable with
        the caller's transaction.

        Args:
            log_type: Entry kind
            details: Free-form payload (must be JSON-serializable)
            user_id: Acting user, if any
        """
        entry = LogEntry(
            type=LogType(log_type).value,
            user_id=user_id,
            details=details,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.debug(
            "Log entry recorded",
            log_type=entry.type,
            user_id=user_id,
            action=details.get("action"),
        )
        return entry

    async def user_action(self, user_id: str, action: str, **details: Any) -> LogEntry:
        return await self.record(LogType.USER_ACTION, {"action": action, **details}, user_id)

    async def admin_action(self, user_id: str, action: str, **details: Any) -> LogEntry:
        return await self.record(LogType.ADMIN_ACTION, {"action": action, **details}, user_id)

    async def error(self, user_id: Optional[str], **details: Any) -> LogEntry:
        return await self.record(LogType.ERROR, details, user_id)

    async def list(
        self,
        log_type: Optional[LogType] = None,
        user_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[LogEntry]:
        """
        Get entries, newest first.

        Args:
            log_type: Filter by kind
            user_id: Filter by acting user
            limit: Maximum entries (capped at MAX_LIMIT)
        """
        stmt = select(LogEntry)

        if log_type is not None:
            stmt = stmt.where(LogEntry.type == LogType(log_type).value)
        if user_id is not None:
            stmt = stmt.where(LogEntry.user_id == user_id)

        stmt = stmt.order_by(LogEntry.timestamp.desc()).limit(max(1, min(limit, MAX_LIMIT)))

        result = await self.db.execute(stmt)
        return list(result.scalars().all())
