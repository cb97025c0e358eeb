"""
AI model descriptor API endpoints.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id, require_admin
from app.core.config import settings
from app.core.database import get_db
from app.core.logging import get_logger
from app.models.ai_model import AIModel
from app.services.adapter import (
    ProviderTag,
    UnsupportedProviderError,
    parse_provider_tag,
    resolve_provider,
)
from app.services.logs import LogStore

logger = get_logger(__name__)
router = APIRouter()


# ========================================
# Request/Response Schemas
# ========================================

class HelpLink(BaseModel):
    title: str
    url: str
    description: Optional[str] = None


class CreateModelRequest(BaseModel):
    """Request to register a model descriptor."""
    name: str = Field(..., min_length=1, max_length=255)
    provider: str = Field(..., description="openai, anthropic, google or huggingface")
    modelId: str = Field(..., min_length=1, max_length=255, description="Vendor model id")
    description: Optional[str] = None
    maxTokens: Optional[int] = Field(None, gt=0)
    temperature: Optional[float] = Field(None, ge=0, le=2)
    isRestricted: bool = False
    helpLinks: list[HelpLink] = Field(default_factory=list)


class UpdateModelRequest(BaseModel):
    """Partial update of a model descriptor."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    provider: Optional[str] = None
    modelId: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    maxTokens: Optional[int] = Field(None, gt=0)
    temperature: Optional[float] = Field(None, ge=0, le=2)
    isActive: Optional[bool] = None
    isRestricted: Optional[bool] = None
    helpLinks: Optional[list[HelpLink]] = None

    @field_validator("name", "provider", "modelId", "isActive", "isRestricted", "helpLinks")
    @classmethod
    def not_null(cls, value):
        # May be omitted, but only description, maxTokens and temperature can be cleared
        if value is None:
            raise ValueError("must not be null")
        return value


class ModelResponse(BaseModel):
    """Model descriptor response."""
    id: str
    name: str
    provider: str
    modelId: str
    description: Optional[str] = None
    isActive: bool
    isRestricted: bool
    maxTokens: Optional[int] = None
    temperature: Optional[float] = None
    helpLinks: list[dict[str, Any]] = []
    createdAt: int
    updatedAt: int


def validate_provider(provider: str, model_id: str) -> ProviderTag:
    """
    Check a descriptor's provider against the model-id router.

    Raises:
        HTTPException: 400 when unknown or inconsistent with routing
    """
    try:
        tag = parse_provider_tag(provider)
    except UnsupportedProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))

    routed = resolve_provider(model_id)
    if tag != routed:
        raise HTTPException(
            status_code=400,
            detail=f"Model id '{model_id}' routes to '{routed.value}', not '{tag.value}'",
        )
    return tag


async def _load_model(db: AsyncSession, model_uuid: UUID) -> AIModel:
    model = await db.get(AIModel, model_uuid)
    if model is None:
        raise HTTPException(status_code=404, detail="Model not found")
    return model


async def _ensure_unique(db: AsyncSession, model_id: str, exclude: Optional[UUID] = None) -> None:
    stmt = select(AIModel.id).where(AIModel.model_id == model_id)
    if exclude is not None:
        stmt = stmt.where(AIModel.id != exclude)
    if (await db.execute(stmt)).first() is not None:
        raise HTTPException(status_code=400, detail=f"Model id '{model_id}' already registered")


# ========================================
# API Endpoints
# ========================================

@router.get("", response_model=list[ModelResponse])
async def list_active_models(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Get active models. Restricted models are only listed for admins.
    """
    stmt = select(AIModel).where(AIModel.is_active.is_(True))
    if not settings.is_admin(user_id):
        stmt = stmt.where(AIModel.is_restricted.is_(False))

    result = await db.execute(stmt.order_by(AIModel.name))
    return [ModelResponse(**model.to_dict()) for model in result.scalars().all()]


@router.get("/all", response_model=list[ModelResponse])
async def list_all_models(
    admin_id: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Get every model, including inactive ones (admin only).
    """
    result = await db.execute(select(AIModel).order_by(AIModel.name))
    return [ModelResponse(**model.to_dict()) for model in result.scalars().all()]


@router.post("", response_model=ModelResponse, status_code=201)
async def create_model(
    request: CreateModelRequest,
    admin_id: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Register a model descriptor (admin only).
    """
    tag = validate_provider(request.provider, request.modelId)
    await _ensure_unique(db, request.modelId)

    model = AIModel(
        name=request.name,
        provider=tag.value,
        model_id=request.modelId,
        description=request.description,
        max_tokens=request.maxTokens,
        temperature=request.temperature,
        is_restricted=request.isRestricted,
        is_active=True,
        help_links=[link.model_dump() for link in request.helpLinks],
    )
    db.add(model)
    await db.flush()
    await db.refresh(model)

    await LogStore(db).admin_action(admin_id, "model_created", modelId=model.model_id, provider=tag.value)

    logger.info("Model created", model_id=model.model_id, provider=tag.value)
    return ModelResponse(**model.to_dict())


@router.patch("/{model_uuid}", response_model=ModelResponse)
async def update_model(
    model_uuid: UUID,
    request: UpdateModelRequest,
    admin_id: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Update a model descriptor (admin only).
    """
    model = await _load_model(db, model_uuid)
    updates = request.model_dump(exclude_unset=True)

    model_id = updates.get("modelId") or model.model_id
    provider = updates.get("provider") or model.provider
    if "modelId" in updates or "provider" in updates:
        provider = validate_provider(provider, model_id).value
        if model_id != model.model_id:
            await _ensure_unique(db, model_id, exclude=model.id)

    fields = {
        "name": "name",
        "description": "description",
        "maxTokens": "max_tokens",
        "temperature": "temperature",
        "isActive": "is_active",
        "isRestricted": "is_restricted",
    }
    for key, attr in fields.items():
        if key in updates:
            setattr(model, attr, updates[key])
    if updates.get("helpLinks") is not None:
        model.help_links = updates["helpLinks"]

    model.model_id = model_id
    model.provider = provider
    model.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(model)

    await LogStore(db).admin_action(admin_id, "model_updated", modelId=model.model_id, fields=sorted(updates))

    logger.info("Model updated", model_id=model.model_id)
    return ModelResponse(**model.to_dict())


@router.delete("/{model_uuid}", status_code=204)
async def remove_model(
    model_uuid: UUID,
    admin_id: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a model descriptor (admin only).
    Chats keep their model id string.
    """
    model = await _load_model(db, model_uuid)
    await db.delete(model)
    await db.flush()

    await LogStore(db).admin_action(admin_id, "model_removed", modelId=model.model_id)

    logger.info("Model removed", model_id=model.model_id)
