from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from presales_research.api.deps import get_model_service, get_settings
from presales_research.config import Settings
from presales_research.llm_client import ModelService
from presales_research.models.schemas import ChecklistRequest, ChecklistResponse, ResearchRequest
from presales_research.research.errors import FallbackExhaustedError
from presales_research.research.pipeline import ResearchPipeline, generate_checklist
from presales_research.services import logger as log_service
from presales_research.services.progress import ProgressEmitter, QueueSink

router = APIRouter(prefix="/api", tags=["research"])


@router.post("/research")
async def stream_research(
    request: ResearchRequest,
    service: ModelService = Depends(get_model_service),
    config: Settings = Depends(get_settings),
):
    """SSE endpoint: progress frames followed by exactly one complete or error frame."""
    pipeline = ResearchPipeline(service, config)

    async def event_generator():
        sink = QueueSink()
        task = asyncio.create_task(pipeline.run(request, ProgressEmitter(sink)))
        try:
            async for event in sink.events():
                yield event.to_sse()
        finally:
            sink.disconnect()
            if not task.done():
                log_service.log_event(
                    event_type="stream_closed",
                    message="Client disconnected, cancelling research",
                    company=request.company,
                )
                task.cancel()

    return EventSourceResponse(event_generator())


@router.post("/pre-demo-checklist", response_model=ChecklistResponse)
async def pre_demo_checklist(
    request: ChecklistRequest,
    service: ModelService = Depends(get_model_service),
    config: Settings = Depends(get_settings),
):
    """Generate a sectioned pre-demo checklist in a single response."""
    try:
        return await generate_checklist(service, config, request)
    except FallbackExhaustedError as exc:
        log_service.log_event(
            event_type="checklist_failed",
            message=str(exc),
            company=request.company,
            details=exc.details,
        )
        raise HTTPException(
            status_code=502,
            detail={"message": str(exc), "details": exc.details},
        ) from exc
