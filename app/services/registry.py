# =============================================================================
# Knowledge Source Registry — Static Catalog of Retrieval Backends
# =============================================================================
#
# The registry maps a source identifier (e.g. "pricing_db") to the backend
# that answers queries for it, plus the human-readable description and
# freshness label the model sees when choosing where to search.
#
# DESIGN DECISION: Explicitly constructed object, not a module singleton.
# Each reasoning loop receives its registry (via the tool catalog and the
# dispatcher), so tests can build a tiny registry with fake backends and
# production can swap in a freshly loaded one without touching a global.
#
# DESIGN DECISION: Written once at startup, read-only afterwards.
# Reads are plain dict lookups and need no locking. Hot reload means
# building a NEW registry and replacing the reference whole
# (see app/api/deps.py), never mutating one that a run is using.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from app.errors import UnknownSource
from app.services.backends import KnowledgeBackend

logger = logging.getLogger(__name__)

# Pseudo-source answered by the live-search capability. It is valid even
# when not registered, so the dispatcher can always route to it.
LIVE_SEARCH_SOURCE = "web_search"

LIVE_FRESHNESS = "real-time"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KnowledgeSource:
    """
    A named retrieval backend and its freshness metadata.

    A source without a backend is a live-search source: the dispatcher
    answers it through the live-search capability instead.
    """

    identifier: str
    description: str
    freshness: str
    backend: KnowledgeBackend | None = None

    @property
    def is_live(self) -> bool:
        return self.backend is None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class KnowledgeSourceRegistry:
    """In-memory catalog of knowledge sources, keyed by identifier."""

    def __init__(self, sources: list[KnowledgeSource] | None = None) -> None:
        self._sources: dict[str, KnowledgeSource] = {}
        for source in sources or []:
            self.register(source)

    def register(self, source: KnowledgeSource) -> None:
        """
        Add or replace a source by identifier (last write wins).

        Re-registering keeps the original position in describe_all(),
        so the model sees a stable source ordering.
        """
        if source.identifier in self._sources:
            logger.info("Replacing knowledge source '%s'", source.identifier)
        else:
            logger.info(
                "Registered knowledge source '%s' (%s)",
                source.identifier, source.freshness,
            )
        self._sources[source.identifier] = source

    def resolve(self, identifier: str) -> KnowledgeSource:
        """Return the source for `identifier` or raise UnknownSource."""
        try:
            return self._sources[identifier]
        except KeyError:
            raise UnknownSource(identifier) from None

    def describe_all(self) -> Iterator[tuple[str, str, str]]:
        """Yield (identifier, description, freshness) for every source."""
        for source in self._sources.values():
            yield source.identifier, source.description, source.freshness

    def identifiers(self) -> list[str]:
        return list(self._sources)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._sources

    def __len__(self) -> int:
        return len(self._sources)
