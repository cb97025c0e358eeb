"""
Logs module - persisted audit entries.
"""
from app.services.logs.store import LogStore

__all__ = ["LogStore"]
