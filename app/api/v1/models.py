"""Model discovery API endpoints.

Serves the model catalog behind the client's model picker.

Endpoints:
    GET /api/v1/models - List selectable models
    GET /api/v1/models/{model_id} - Get model details

Examples:
    >>> GET /api/v1/models?vision=true
    >>> {"models": [{"id": "google/gemini-2.0-flash-exp:free", ...}], "total": 5, ...}

Tests:
    - tests/integration/test_api_chat.py::TestModelsEndpoint
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from app.api.v1.dependencies import get_catalog
from app.core.catalog import ModelCandidate, ModelCatalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/models", tags=["models"])


# Response Models


class ModelListResponse(BaseModel):
    """Response containing list of models."""

    models: list[ModelCandidate]
    total: int
    default_model: str
    text_fallbacks: list[str]
    vision_fallbacks: list[str]


@router.get("", response_model=ModelListResponse)
async def list_models(
    vision: bool = Query(default=False, description="Only models that accept images"),
    catalog: ModelCatalog = Depends(get_catalog),
) -> ModelListResponse:
    """List the models a caller may request."""
    models = [m for m in catalog.models if m.supports_image_input or not vision]
    return ModelListResponse(
        models=models,
        total=len(models),
        default_model=catalog.default_model,
        text_fallbacks=list(catalog.text_fallbacks),
        vision_fallbacks=list(catalog.vision_fallbacks),
    )


@router.get("/{model_id:path}", response_model=ModelCandidate)
async def get_model(
    model_id: str,
    catalog: ModelCatalog = Depends(get_catalog),
) -> ModelCandidate:
    """Details for one catalog model."""
    candidate = catalog.get(model_id)
    if candidate is None:
        raise HTTPException(status_code=404, detail=f"Model not found: {model_id}")
    return candidate
