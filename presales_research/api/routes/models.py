from __future__ import annotations

from fastapi import APIRouter, Depends

from presales_research.api.deps import get_available_models, get_settings
from presales_research.config import Settings
from presales_research.models.schemas import ModelInfo, ModelsResponse

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("", response_model=ModelsResponse)
async def list_models(config: Settings = Depends(get_settings)):
    """List the primary and fallback models used for research."""
    models = get_available_models(config)
    return ModelsResponse(models=[ModelInfo(**m) for m in models])
