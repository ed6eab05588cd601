# =============================================================================
# Ask API — Agentic Retrieval Endpoints
# =============================================================================
#
# POST /ask               — one reasoning loop over every knowledge source
# POST /ask/orchestrated  — plan → delegate to specialists → synthesize
#
# These endpoints are thin: request validation, engine invocation, error
# mapping, and response mapping. All retrieval failures (unknown source,
# outage, bad tool arguments) are absorbed INSIDE the engine and show up
# as impoverished evidence, so only configuration and model-service
# failures reach the error handlers here:
#   - bad provider override   → 400
#   - configuration error     → 503
#   - caller-level timeout    → 504
#   - LLM API errors          → 502
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException

from app.agents.orchestrator import Orchestrator
from app.agents.reasoning import ReasoningLoop
from app.agents.tools import ToolCatalog
from app.api.deps import get_dispatcher, get_knowledge_base, get_llm
from app.config import settings
from app.errors import ConfigurationError
from app.models.requests import AskRequest
from app.models.responses import (
    AskResponse,
    EvidenceItem,
    OrchestratedAskResponse,
    PlanEntryResponse,
    SpecialistAnswerResponse,
)
from app.services.dispatcher import RetrievalDispatcher, RetrievalResult
from app.services.knowledge_config import KnowledgeBase
from app.services.llm import LLMProvider, create_provider_from_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Question Answering"])

T = TypeVar("T")


# ---------------------------------------------------------------------------
# POST /ask — Single reasoning loop
# ---------------------------------------------------------------------------


@router.post(
    "/ask",
    response_model=AskResponse,
    summary="Ask a question with agentic retrieval",
    description=(
        "The agent decides which knowledge source to search, judges whether "
        "the evidence is sufficient, and answers citing source freshness. "
        "If the iteration budget runs out it returns a best-effort answer "
        "with state 'exhausted'."
    ),
)
async def ask_endpoint(
    request: AskRequest,
    knowledge_base: KnowledgeBase = Depends(get_knowledge_base),
    dispatcher: RetrievalDispatcher = Depends(get_dispatcher),
    default_llm: LLMProvider = Depends(get_llm),
) -> AskResponse:
    logger.info(
        "Ask request: question='%s', max_iterations=%s, provider=%s",
        request.question[:80], request.max_iterations, request.provider,
    )
    llm = _resolve_llm(request, default_llm)

    async def _run():
        loop = ReasoningLoop(
            question=request.question,
            llm=llm,
            catalog=ToolCatalog(knowledge_base.registry),
            dispatcher=dispatcher,
            max_iterations=request.max_iterations,
        )
        return await loop.run()

    run = await _guarded(_run())

    return AskResponse(
        question=request.question,
        answer=run.answer,
        state=run.state.value,
        iterations=run.iterations,
        tool_calls=run.tool_calls,
        evidence=[_evidence_item(r) for r in run.evidence.results],
    )


# ---------------------------------------------------------------------------
# POST /ask/orchestrated — Multi-agent
# ---------------------------------------------------------------------------


@router.post(
    "/ask/orchestrated",
    response_model=OrchestratedAskResponse,
    summary="Ask a multi-domain question via specialist agents",
    description=(
        "The question is decomposed into sub-questions, each answered by a "
        "specialist restricted to its own knowledge sources, and the answers "
        "are synthesized into one response."
    ),
)
async def ask_orchestrated_endpoint(
    request: AskRequest,
    knowledge_base: KnowledgeBase = Depends(get_knowledge_base),
    dispatcher: RetrievalDispatcher = Depends(get_dispatcher),
    default_llm: LLMProvider = Depends(get_llm),
) -> OrchestratedAskResponse:
    logger.info(
        "Orchestrated ask request: question='%s', provider=%s",
        request.question[:80], request.provider,
    )
    llm = _resolve_llm(request, default_llm)

    orchestrator = Orchestrator(
        llm=llm,
        registry=knowledge_base.registry,
        specialists=knowledge_base.specialists,
        dispatcher=dispatcher,
        max_iterations=request.max_iterations,
    )
    result = await _guarded(orchestrator.answer(request.question))

    return OrchestratedAskResponse(
        question=request.question,
        answer=result.answer,
        plan=[
            PlanEntryResponse(specialist=e.specialist, question=e.question)
            for e in result.plan.entries
        ],
        specialist_answers=[
            SpecialistAnswerResponse(
                specialist=a.specialist,
                question=a.question,
                answer=a.answer,
                state=None if a.failed else a.run.state.value,
                iterations=0 if a.failed else a.run.iterations,
                evidence=(
                    [] if a.failed
                    else [_evidence_item(r) for r in a.run.evidence.results]
                ),
            )
            for a in result.specialist_answers
        ],
        warnings=result.warnings,
    )


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _resolve_llm(request: AskRequest, default_llm: LLMProvider) -> LLMProvider:
    if not request.provider:
        return default_llm
    try:
        return create_provider_from_id(request.provider, allow_base_url=False)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


async def _guarded(run: Awaitable[T]) -> T:
    """Apply the caller-level timeout and map failures to HTTP errors."""
    try:
        return await asyncio.wait_for(run, timeout=settings.request_timeout_seconds)
    except asyncio.TimeoutError as e:
        logger.error("Run timed out after %.0fs", settings.request_timeout_seconds)
        raise HTTPException(
            status_code=504,
            detail="The agent did not finish within the request timeout.",
        ) from e
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e
    except Exception as e:
        logger.exception("Agent run failed: %s", e)
        raise HTTPException(
            status_code=502,
            detail=f"LLM service error: {e}",
        ) from e


def _evidence_item(result: RetrievalResult) -> EvidenceItem:
    return EvidenceItem(
        source=result.source,
        freshness=result.freshness,
        text=result.text,
        origin=result.origin,
        metadata=result.metadata,
        is_error=result.is_error,
    )
