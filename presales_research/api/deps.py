from __future__ import annotations

from fastapi import HTTPException, Request

from presales_research.config import Settings, settings
from presales_research.llm_client import ModelService


def get_model_service(request: Request) -> ModelService:
    """Model service built by the application lifespan."""
    service = getattr(request.app.state, "model_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Model service is not configured (OPENAI_API_KEY missing)")
    return service


def get_settings() -> Settings:
    return settings


def get_available_models(config: Settings) -> list[dict[str, str]]:
    """Models the research pipeline calls, in attempt order."""
    return [
        {
            "id": config.primary_model,
            "role": "primary",
            "mode": "responses",
            "description": "Tool-augmented research model with web search and code execution.",
        },
        {
            "id": config.fallback_model,
            "role": "fallback",
            "mode": "chat",
            "description": "Plain chat completion used when the research model is unavailable or too slow.",
        },
    ]
