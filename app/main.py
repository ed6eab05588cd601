# =============================================================================
# FastAPI Application Entry Point
# =============================================================================
# Run from project root: uvicorn app.main:app --reload
# =============================================================================

import logging

from fastapi import FastAPI

from app.api import ask, catalog
from app.config import settings
from app.models.responses import HealthResponse

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Agentic retrieval: a bounded tool-calling loop that chooses knowledge "
        "sources, weighs their freshness, and delegates multi-domain questions "
        "to specialist agents."
    ),
)
app.include_router(ask.router)
app.include_router(catalog.router)


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)
