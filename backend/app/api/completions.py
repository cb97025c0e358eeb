"""
One-shot completion endpoint.

Sends a single message to a model and returns the full reply. Nothing
is stored apart from the log entry.
"""
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id, get_http_transport
from app.core.database import get_db
from app.core.logging import get_logger, redact
from app.services.adapter import (
    ChatMessage,
    MissingCredentialError,
    ProviderError,
    UnsupportedProviderError,
    create_adapter,
    resolve_provider,
)
from app.services.chat.state import describe_error
from app.services.logs import LogStore

logger = get_logger(__name__)
router = APIRouter()


class CompletionRequest(BaseModel):
    message: str = Field(..., min_length=1)
    apiKey: str = Field(..., description="Provider API key for this call")
    modelId: str = Field(..., min_length=1, max_length=255)


class CompletionResponse(BaseModel):
    content: str


@router.post("", response_model=CompletionResponse)
async def create_completion(
    request: CompletionRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
):
    """
    Get a complete reply for a single message.
    """
    provider = resolve_provider(request.modelId)

    try:
        adapter = create_adapter(provider, request.apiKey, request.modelId, transport=transport)
        response = await adapter.chat_completion(
            [ChatMessage(role="user", content=request.message)]
        )
    except (MissingCredentialError, UnsupportedProviderError) as e:
        raise HTTPException(status_code=400, detail=describe_error(e))
    except ProviderError as e:
        error_message = redact(str(e), request.apiKey)
        logger.error(
            "Completion failed",
            provider=provider.value,
            model=request.modelId,
            error_type=type(e).__name__,
            error=error_message,
        )
        await LogStore(db).error(
            user_id,
            action="completion",
            provider=provider.value,
            model=request.modelId,
            errorType=type(e).__name__,
            errorMessage=error_message,
            statusCode=getattr(e, "status_code", None),
        )
        # HTTPException rolls back the request session
        await db.commit()
        raise HTTPException(status_code=502, detail=describe_error(e))

    await LogStore(db).user_action(
        user_id,
        "completion",
        provider=provider.value,
        model=request.modelId,
        chars=len(response.content),
    )
    return CompletionResponse(content=response.content)
