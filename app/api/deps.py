# =============================================================================
# API Dependencies — Engine Wiring via FastAPI Dependency Injection
# =============================================================================
#
# Route handlers never build engine objects themselves. They declare what
# they need (knowledge base, dispatcher, LLM provider) and FastAPI resolves
# it here. Tests swap any of these via app.dependency_overrides.
#
# DESIGN DECISION: One module-level reference to the knowledge base.
# It is loaded once, lazily, and is read-only afterwards. Reloading builds
# a complete new KnowledgeBase and replaces the reference in one
# assignment, so a run that already holds the old registry keeps a
# consistent view until it finishes.
# =============================================================================

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import Depends, HTTPException

from app.config import settings
from app.errors import ConfigurationError
from app.services.dispatcher import RetrievalDispatcher
from app.services.knowledge_config import KnowledgeBase, load_knowledge_base
from app.services.live_search import get_live_search
from app.services.llm import LLMProvider, get_llm_provider

logger = logging.getLogger(__name__)

_knowledge_base: KnowledgeBase | None = None


def reload_knowledge_base(path: str | Path | None = None) -> KnowledgeBase:
    """Build a fresh knowledge base and swap it in whole."""
    global _knowledge_base
    knowledge_base = load_knowledge_base(path or settings.knowledge_config_path)
    _knowledge_base = knowledge_base
    return knowledge_base


def get_knowledge_base() -> KnowledgeBase:
    """
    FastAPI dependency returning the loaded knowledge base.

    Raises:
        HTTPException 503: the knowledge config is missing or invalid.
    """
    if _knowledge_base is not None:
        return _knowledge_base
    try:
        return reload_knowledge_base()
    except ConfigurationError as e:
        logger.error("Knowledge base unavailable: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e


def get_dispatcher(
    knowledge_base: KnowledgeBase = Depends(get_knowledge_base),
) -> RetrievalDispatcher:
    return RetrievalDispatcher(
        knowledge_base.registry,
        live_search=get_live_search(),
    )


def get_llm() -> LLMProvider:
    """
    FastAPI dependency returning the configured LLM provider.

    Raises:
        HTTPException 503: no API key is configured.
    """
    try:
        return get_llm_provider()
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e
