"""
Application configuration.
All sensitive values loaded from environment variables.

Vendor API keys are not configured here: callers supply their own key
with every message, and it is handed straight to the provider adapter.
"""
from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/polychat"
    DATABASE_ECHO: bool = False

    # Provider endpoints
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    ANTHROPIC_BASE_URL: str = "https://api.anthropic.com/v1"
    ANTHROPIC_VERSION: str = "2023-06-01"
    GOOGLE_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    HUGGINGFACE_BASE_URL: str = "https://api-inference.huggingface.co/models"

    # Generation defaults (a model descriptor may override tokens/temperature)
    AI_REQUEST_TIMEOUT: float = 300.0
    AI_TEMPERATURE: float = 0.7
    AI_MAX_TOKENS: int = 4096
    GOOGLE_MAX_OUTPUT_TOKENS: int = 1024
    HUGGINGFACE_MAX_NEW_TOKENS: int = 250

    # Caller ids allowed to manage model descriptors and read all logs
    ADMIN_USER_IDS: List[str] = []

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or console

    # AI Debug Logging - enables detailed message content logging
    # WARNING: Set to True only for debugging, logs may contain sensitive data
    AI_DEBUG_LOG: bool = False
    # Maximum length of message content to log (0 = unlimited)
    AI_DEBUG_LOG_MAX_LENGTH: int = 2000

    def is_admin(self, user_id: str | None) -> bool:
        """Check whether a caller id has admin rights."""
        return bool(user_id) and user_id in self.ADMIN_USER_IDS

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
