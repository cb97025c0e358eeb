"""
Structured logging configuration.
Designed for easy debugging without exposing sensitive data.
"""
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import List, Optional, Generator

import structlog
from structlog.types import Processor

from app.core.config import settings


def setup_logging() -> None:
    """Configure structured logging for the application."""

    # Common processors
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.LOG_FORMAT == "json":
        # JSON format for production
        renderer = structlog.processors.JSONRenderer()
    else:
        # Console format for development
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def redact(text: str, secret: str | None) -> str:
    """Mask every occurrence of a secret (e.g. an API key) in text."""
    if not secret:
        return text
    return text.replace(secret, "***")


def _truncate_content(content: str, max_length: int = 0) -> str:
    """Truncate content if max_length is set."""
    if max_length <= 0:
        return content
    if len(content) <= max_length:
        return content
    return content[:max_length] + f"... [truncated, total {len(content)} chars]"


# ========================================
# Provider call tracking
# ========================================

@dataclass
class AIMessageLog:
    """Structure for logging AI messages."""
    role: str
    content: str
    content_length: int = 0

    def __post_init__(self):
        self.content_length = len(self.content)


@dataclass
class AICallLog:
    """Complete log entry for one provider call."""
    call_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    provider: str = ""
    model: str = ""
    endpoint: str = ""
    streaming: bool = False

    # Request info
    request_messages: List[AIMessageLog] = field(default_factory=list)
    request_temperature: Optional[float] = None
    request_max_tokens: int = 0

    # Response info
    response_content_length: int = 0
    fragment_count: int = 0

    # Timing
    start_time: float = 0.0
    end_time: float = 0.0
    duration_ms: float = 0.0

    # Status
    success: bool = True
    status_code: Optional[int] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class AIDebugLogger:
    """
    Debug logger for provider API calls.

    Usage:
        debug_logger = AIDebugLogger(logger)
        with debug_logger.track_call("openai", "gpt-4o", streaming=True) as call:
            call.add_messages(messages)
            # ... make API call ...
            call.add_fragment(text)

    A summary line is always written when the call finishes. Message and
    response content is only written when AI_DEBUG_LOG is enabled.
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger):
        self.logger = logger
        self.enabled = settings.AI_DEBUG_LOG
        self.max_length = settings.AI_DEBUG_LOG_MAX_LENGTH

    @contextmanager
    def track_call(
        self,
        provider: str,
        model: str,
        endpoint: str = "chat/completions",
        streaming: bool = False,
    ) -> Generator["AICallTracker", None, None]:
        """Context manager for tracking a provider call."""
        tracker = AICallTracker(
            logger=self.logger,
            enabled=self.enabled,
            max_length=self.max_length,
            provider=provider,
            model=model,
            endpoint=endpoint,
            streaming=streaming,
        )
        tracker.start()
        try:
            yield tracker
        except Exception as e:
            if tracker.log.success:
                tracker.set_error(type(e).__name__, str(e))
            raise
        finally:
            tracker.finish()


class AICallTracker:
    """Tracker for a single provider call."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        enabled: bool,
        max_length: int,
        provider: str,
        model: str,
        endpoint: str,
        streaming: bool = False,
    ):
        self.logger = logger
        self.enabled = enabled
        self.max_length = max_length
        self.log = AICallLog(
            provider=provider,
            model=model,
            endpoint=endpoint,
            streaming=streaming,
        )

    def start(self) -> None:
        """Mark the start of the API call."""
        self.log.start_time = time.time()

        if self.enabled:
            self.logger.debug(
                "AI call started",
                call_id=self.log.call_id,
                provider=self.log.provider,
                model=self.log.model,
                endpoint=self.log.endpoint,
                streaming=self.log.streaming,
            )

    def add_message(self, role: str, content: str) -> None:
        """Add a message to the request log."""
        msg = AIMessageLog(role=role, content=content)
        self.log.request_messages.append(msg)

        if self.enabled:
            self.logger.debug(
                "AI request message",
                call_id=self.log.call_id,
                role=role,
                content_length=msg.content_length,
                content=_truncate_content(content, self.max_length),
            )

    def add_messages(self, messages: List[dict]) -> None:
        """Add multiple messages from a list of dicts."""
        for msg in messages:
            self.add_message(msg.get("role", "unknown"), msg.get("content", ""))

    def set_request_params(
        self,
        temperature: Optional[float] = None,
        max_tokens: int = 0
    ) -> None:
        """Set request parameters."""
        self.log.request_temperature = temperature
        self.log.request_max_tokens = max_tokens

    def add_fragment(self, fragment: str) -> None:
        """Count one fragment of response text."""
        self.log.fragment_count += 1
        self.log.response_content_length += len(fragment)

        if self.enabled:
            self.logger.debug(
                "AI response fragment",
                call_id=self.log.call_id,
                index=self.log.fragment_count,
                content=_truncate_content(fragment, self.max_length),
            )

    def set_error(
        self,
        error_type: str,
        error_message: str,
        status_code: Optional[int] = None,
    ) -> None:
        """Set error information."""
        self.log.success = False
        self.log.error_type = error_type
        self.log.error_message = error_message
        self.log.status_code = status_code

    def finish(self) -> None:
        """Mark the end of the API call and log summary."""
        self.log.end_time = time.time()
        self.log.duration_ms = (self.log.end_time - self.log.start_time) * 1000

        total_request_chars = sum(m.content_length for m in self.log.request_messages)
        message_roles = [m.role for m in self.log.request_messages]

        if self.log.success:
            self.logger.info(
                "AI call completed",
                call_id=self.log.call_id,
                provider=self.log.provider,
                model=self.log.model,
                endpoint=self.log.endpoint,
                streaming=self.log.streaming,
                duration_ms=round(self.log.duration_ms, 2),
                message_count=len(message_roles),
                message_roles=message_roles,
                request_chars=total_request_chars,
                response_chars=self.log.response_content_length,
                fragments=self.log.fragment_count,
            )
        else:
            self.logger.error(
                "AI call failed",
                call_id=self.log.call_id,
                provider=self.log.provider,
                model=self.log.model,
                endpoint=self.log.endpoint,
                duration_ms=round(self.log.duration_ms, 2),
                status_code=self.log.status_code,
                error_type=self.log.error_type,
                error_message=self.log.error_message,
                fragments=self.log.fragment_count,
            )

