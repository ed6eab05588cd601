# =============================================================================
# Knowledge Backends — Pluggable Similarity Query Protocol
# =============================================================================
#
# A backend answers `query(text, max_results)` with an ordered list of
# (payload, metadata) hits. The dispatcher treats an empty list as a valid
# if impoverished answer; it never retries here (retry policy belongs to
# the backend client itself).
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Any class with an async `query()` works, which keeps fakes in tests
# trivial and matches the LLMProvider pattern in llm.py.
#
# DESIGN DECISION: Async interface, sync clients wrapped.
# ChromaDB's Python client is synchronous. We call it through
# asyncio.to_thread() so one slow collection cannot stall the event loop
# that other reasoning loops share.
#
# ARCHITECTURE:
#   KnowledgeBackend (Protocol)
#   ├── ChromaKnowledgeBackend — one ChromaDB collection per source
#   │   ├── add_documents()    — sync, for seeding/tests
#   │   └── query()            — async via asyncio.to_thread()
#   └── StaticKnowledgeBackend — in-memory documents, keyword overlap
#       └── query()            — async, no I/O
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import chromadb

from app.config import settings

logger = logging.getLogger(__name__)

# Maps text to an embedding vector. When absent, ChromaDB's collection
# embedding function is used.
Embedder = Callable[[str], list[float]]


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class BackendHit:
    """A single hit from a backend query."""

    payload: str
    metadata: dict[str, Any] = field(default_factory=dict)
    origin: str | None = None  # URL or document id, when the backend knows it


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class KnowledgeBackend(Protocol):
    """Protocol defining the backend query interface."""

    async def query(self, text: str, max_results: int) -> list[BackendHit]:
        """
        Return at most `max_results` hits for `text`, best first.

        An empty list is a valid answer. Exceptions are allowed to
        propagate; the dispatcher converts them into error results.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: ChromaDB
# ---------------------------------------------------------------------------


class ChromaKnowledgeBackend:
    """
    ChromaDB-backed knowledge source.

    DESIGN DECISION: One collection per knowledge source.
    Sources have different refresh cadences and owners; separate
    collections let the (out-of-scope) refresh job rebuild one source
    without touching the others.
    """

    def __init__(
        self,
        collection_name: str,
        client: Any | None = None,
        embed: Embedder | None = None,
    ) -> None:
        self._client = client or get_chroma_client()
        self._embed = embed
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        self.collection_name = collection_name

    def add_documents(
        self,
        contents: list[str],
        metadatas: list[dict] | None = None,
        ids: list[str] | None = None,
    ) -> list[str]:
        """
        Store documents in the collection. Upserts on matching IDs.

        ChromaDB rejects an empty metadata dict, so documents whose
        metadata sanitises to nothing are stored with None instead, and the
        metadatas argument is left out when no document carries any.
        """
        sanitised = [
            _sanitise_chroma_metadata(m) or None
            for m in (metadatas or [{} for _ in contents])
        ]
        ids = ids or [
            f"{self.collection_name}_{i}" for i in range(len(contents))
        ]

        kwargs: dict[str, Any] = {"ids": ids, "documents": contents}
        if any(m is not None for m in sanitised):
            kwargs["metadatas"] = sanitised
        if self._embed is not None:
            kwargs["embeddings"] = [self._embed(c) for c in contents]

        self._collection.upsert(**kwargs)

        logger.info(
            "Stored %d documents in collection '%s'",
            len(ids), self.collection_name,
        )
        return ids

    async def query(self, text: str, max_results: int) -> list[BackendHit]:
        """Similarity search, run in a worker thread."""

        def _sync_query() -> list[BackendHit]:
            kwargs: dict[str, Any] = {
                "n_results": max_results,
                "include": ["documents", "metadatas", "distances"],
            }
            if self._embed is not None:
                kwargs["query_embeddings"] = [self._embed(text)]
            else:
                kwargs["query_texts"] = [text]

            results = self._collection.query(**kwargs)

            hits: list[BackendHit] = []
            if not (results and results["ids"] and results["ids"][0]):
                return hits

            for i, chroma_id in enumerate(results["ids"][0]):
                raw_metadata = (
                    results["metadatas"][0][i] if results["metadatas"] else None
                )
                metadata = dict(raw_metadata or {})
                if results["distances"]:
                    # Cosine distance is in [0, 2]; convert to similarity
                    metadata["similarity"] = round(
                        1.0 - results["distances"][0][i], 4,
                    )
                content = (
                    results["documents"][0][i] if results["documents"] else ""
                )
                origin = metadata.pop("origin", None) or chroma_id
                hits.append(BackendHit(
                    payload=content or "",
                    metadata=metadata,
                    origin=str(origin),
                ))
            return hits

        return await asyncio.to_thread(_sync_query)


# ---------------------------------------------------------------------------
# Implementation 2: Static in-memory documents
# ---------------------------------------------------------------------------


class StaticKnowledgeBackend:
    """
    In-memory backend scoring documents by query-term overlap.

    Backs sources whose documents are listed inline in the knowledge
    config file. No embeddings, no I/O.
    """

    def __init__(self, documents: list[BackendHit]) -> None:
        self._documents = list(documents)

    async def query(self, text: str, max_results: int) -> list[BackendHit]:
        terms = _tokenize(text)
        if not terms:
            return []

        scored = []
        for position, doc in enumerate(self._documents):
            overlap = len(terms & _tokenize(doc.payload))
            if overlap:
                # Ties keep document order
                scored.append((-overlap, position, doc))

        scored.sort(key=lambda item: (item[0], item[1]))
        return [doc for _, _, doc in scored[:max_results]]


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_client: Any | None = None


def get_chroma_client() -> Any:
    """
    Return the shared ChromaDB client (lazy singleton).

    - chroma_url set  → HttpClient (Docker / remote deployment)
    - chroma_path set → PersistentClient (local disk)
    - neither         → in-process ephemeral Client
    """
    global _client
    if _client is None:
        if settings.chroma_url:
            _client = chromadb.HttpClient(host=settings.chroma_url)
        elif settings.chroma_path:
            _client = chromadb.PersistentClient(path=settings.chroma_path)
        else:
            _client = chromadb.Client()
    return _client


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------

_WORD_RE = re.compile(r"[a-z0-9$]+(?:[.'][a-z0-9]+)*")

_STOPWORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "do", "does", "for",
    "from", "how", "in", "is", "it", "of", "on", "or", "our", "the", "to",
    "was", "what", "when", "which", "who", "with", "current", "currently",
})


def _tokenize(text: str) -> set[str]:
    return {
        word for word in _WORD_RE.findall(text.lower())
        if word not in _STOPWORDS
    }


def _sanitise_chroma_metadata(metadata: dict) -> dict:
    """
    Sanitise metadata for ChromaDB compatibility.

    ChromaDB requires all metadata values to be str, int, float, or bool:
    - list → comma-separated string
    - None → dropped
    """
    sanitised = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, list):
            sanitised[key] = ",".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            sanitised[key] = value
        else:
            sanitised[key] = str(value)
    return sanitised
