# =============================================================================
# Catalog API — Knowledge Sources and Specialists
# =============================================================================
# Read-only listings of the loaded configuration, so clients can see what
# the agent may search and which specialists the orchestrator can use.
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import get_knowledge_base
from app.models.responses import SourceInfo, SpecialistInfo
from app.services.knowledge_config import KnowledgeBase

router = APIRouter(tags=["Catalog"])


@router.get(
    "/sources",
    response_model=list[SourceInfo],
    summary="List knowledge sources",
)
async def list_sources(
    knowledge_base: KnowledgeBase = Depends(get_knowledge_base),
) -> list[SourceInfo]:
    return [
        SourceInfo(id=identifier, description=description, freshness=freshness)
        for identifier, description, freshness
        in knowledge_base.registry.describe_all()
    ]


@router.get(
    "/specialists",
    response_model=list[SpecialistInfo],
    summary="List specialist agents",
)
async def list_specialists(
    knowledge_base: KnowledgeBase = Depends(get_knowledge_base),
) -> list[SpecialistInfo]:
    return [
        SpecialistInfo(id=identifier, description=description, allowed_sources=sources)
        for identifier, description, sources
        in knowledge_base.specialists.describe_all()
    ]
