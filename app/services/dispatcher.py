# =============================================================================
# Retrieval Dispatcher — Route (source, query) to a Backend, Normalise Hits
# =============================================================================
#
# The reasoning loop never talks to a backend directly. It hands the
# dispatcher a source identifier chosen by the model and a query string,
# and always gets back a list of RetrievalResult:
#
#   live source (no backend)  → live search, freshness "real-time"
#   registered source         → backend.query(), freshness from the source
#   unknown source            → ONE error result, never an exception
#   backend / search failure  → ONE error result, logged as a warning
#
# DESIGN DECISION: Errors become results, not exceptions.
# The model picked the source; the model should see the failure as a tool
# result and recover (pick another source). Raising would abort the run.
#
# DESIGN DECISION: No retries here. Retry policy belongs to the backend
# client (the Anthropic/OpenAI/Chroma/httpx clients each have their own).
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.config import settings
from app.errors import UnknownSource
from app.services.backends import BackendHit
from app.services.live_search import LiveSearch
from app.services.registry import (
    LIVE_FRESHNESS,
    LIVE_SEARCH_SOURCE,
    KnowledgeSource,
    KnowledgeSourceRegistry,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class ResultKind(str, Enum):
    EVIDENCE = "evidence"
    ERROR = "error"


@dataclass(frozen=True)
class RetrievalResult:
    """
    One normalised retrieval hit, labelled with where it came from and
    how fresh that source is.
    """

    text: str
    source: str
    freshness: str
    metadata: dict[str, Any] = field(default_factory=dict)
    origin: str | None = None
    kind: ResultKind = ResultKind.EVIDENCE

    @property
    def is_error(self) -> bool:
        return self.kind is ResultKind.ERROR


def error_result(source: str, message: str) -> RetrievalResult:
    """Build the sentinel error result for a failed retrieval."""
    return RetrievalResult(
        text=message,
        source=source,
        freshness="n/a",
        kind=ResultKind.ERROR,
    )


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class RetrievalDispatcher:
    """Routes retrieval requests to registry-resolved backends."""

    def __init__(
        self,
        registry: KnowledgeSourceRegistry,
        live_search: LiveSearch | None = None,
        default_max_results: int | None = None,
        dedupe: bool | None = None,
    ) -> None:
        self.registry = registry
        self._live_search = live_search
        self._default_max_results = (
            default_max_results or settings.retrieval_max_results
        )
        self._dedupe = settings.dedupe_results if dedupe is None else dedupe

    async def retrieve(
        self,
        source_identifier: str,
        query_text: str,
        max_results: int | None = None,
    ) -> list[RetrievalResult]:
        """
        Query one knowledge source.

        Never raises for unknown sources or backend failures; those come
        back as a single error-kind result carrying the identifier.
        """
        limit = max_results or self._default_max_results

        try:
            source = self._resolve(source_identifier)
        except UnknownSource:
            logger.warning(
                "Retrieval against unknown source '%s'", source_identifier,
            )
            available = ", ".join(self.registry.identifiers()) or "none"
            return [error_result(
                source_identifier,
                f"Unknown source '{source_identifier}'. "
                f"Available sources: {available}.",
            )]

        logger.info(
            "Dispatching query to '%s' (max_results=%d): '%s'",
            source.identifier, limit, query_text[:80],
        )

        try:
            if source.is_live:
                results = await self._retrieve_live(source, query_text, limit)
            else:
                results = await self._retrieve_backend(source, query_text, limit)
        except Exception as e:
            logger.warning(
                "Retrieval from '%s' failed: %s", source.identifier, e,
            )
            return [error_result(
                source.identifier,
                f"Source '{source.identifier}' is unavailable: {e}",
            )]

        if self._dedupe:
            results = _dedupe(results)

        logger.info(
            "Source '%s' returned %d results", source.identifier, len(results),
        )
        return results

    # -----------------------------------------------------------------------
    # Internal Helpers
    # -----------------------------------------------------------------------

    def _resolve(self, identifier: str) -> KnowledgeSource:
        if identifier == LIVE_SEARCH_SOURCE and identifier not in self.registry:
            return KnowledgeSource(
                identifier=LIVE_SEARCH_SOURCE,
                description="Live web search",
                freshness=LIVE_FRESHNESS,
            )
        return self.registry.resolve(identifier)

    async def _retrieve_live(
        self, source: KnowledgeSource, query_text: str, limit: int,
    ) -> list[RetrievalResult]:
        if self._live_search is None:
            return [error_result(
                source.identifier,
                f"Live search is not configured; source '{source.identifier}' "
                "cannot be queried.",
            )]

        hits = await self._live_search.search(query_text, limit)
        return [
            RetrievalResult(
                text=f"{hit.title}\n{hit.snippet}".strip() if hit.title else hit.snippet,
                source=source.identifier,
                freshness=LIVE_FRESHNESS,
                metadata={"title": hit.title} if hit.title else {},
                origin=hit.url,
            )
            for hit in hits[:limit]
        ]

    async def _retrieve_backend(
        self, source: KnowledgeSource, query_text: str, limit: int,
    ) -> list[RetrievalResult]:
        hits: list[BackendHit] = await source.backend.query(query_text, limit)
        return [
            RetrievalResult(
                text=hit.payload,
                source=source.identifier,
                freshness=source.freshness,
                metadata=dict(hit.metadata),
                origin=hit.origin,
            )
            for hit in hits[:limit]
        ]


def _dedupe(results: list[RetrievalResult]) -> list[RetrievalResult]:
    """Drop results whose text repeats an earlier one (first wins)."""
    seen: set[str] = set()
    unique = []
    for result in results:
        key = result.text.strip()
        if key in seen:
            continue
        seen.add(key)
        unique.append(result)
    return unique
