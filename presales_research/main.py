from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from presales_research.api.routes import models, research
from presales_research.config import settings
from presales_research.llm_client import ResearchModelService
from presales_research.services.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: one model service for the whole process
    if settings.openai_api_key:
        app.state.model_service = ResearchModelService.from_settings(settings)
    else:
        logger.warning("OPENAI_API_KEY is not set; research endpoints will return 503")
        app.state.model_service = None
    yield
    # Shutdown
    if app.state.model_service is not None:
        await app.state.model_service.aclose()


app = FastAPI(
    title="Presales Research",
    description="AI-assisted company research for sales teams",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(research.router)
app.include_router(models.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "presales-research"}
