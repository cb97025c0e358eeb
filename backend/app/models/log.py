"""
Audit log database model. Append-only.
"""
import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import String, DateTime, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class LogType(str, Enum):
    """Kinds of log entries."""
    ERROR = "error"
    USER_ACTION = "user_action"
    ADMIN_ACTION = "admin_action"


class LogEntry(Base):
    """Log entry stored in database."""

    __tablename__ = "logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        index=True
    )
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    details: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict
    )

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "id": str(self.id),
            "type": self.type,
            "timestamp": int(self.timestamp.timestamp() * 1000),
            "userId": self.user_id,
            "details": self.details,
        }
