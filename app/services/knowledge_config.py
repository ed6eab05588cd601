# =============================================================================
# Knowledge Configuration — Sources and Specialists as Data
# =============================================================================
#
# The registry's sources and each specialist's allowed-source subset are
# supplied as data, not discovered at runtime. They live in a JSON file
# (settings.knowledge_config_path) shaped like:
#
#   {
#     "sources": [
#       {"id": "pricing_db", "description": "...", "freshness": "updated hourly",
#        "backend": "static", "documents": [{"text": "...", "metadata": {...}}]},
#       {"id": "policy_db", "description": "...", "freshness": "updated weekly",
#        "backend": "chroma", "collection": "policy_db"},
#       {"id": "web_search", "description": "...", "freshness": "real-time",
#        "backend": "live"}
#     ],
#     "specialists": [
#       {"id": "pricing_specialist", "role": "...", "allowed_sources": ["pricing_db"]}
#     ]
#   }
#
# DESIGN DECISION: Pydantic models validate the file at startup.
# A typo in a source id, or a specialist pointing at a source that does
# not exist, fails loudly as ConfigurationError before any request runs.
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from app.agents.specialists import SpecialistProfile, SpecialistSet
from app.errors import ConfigurationError
from app.services.backends import (
    BackendHit,
    ChromaKnowledgeBackend,
    Embedder,
    StaticKnowledgeBackend,
)
from app.services.registry import KnowledgeSource, KnowledgeSourceRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# File Schema
# ---------------------------------------------------------------------------


class DocumentConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str = Field(..., min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)
    origin: str | None = None


class SourceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    description: str
    freshness: str
    backend: Literal["static", "chroma", "live"] = "static"
    collection: str | None = None
    documents: list[DocumentConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_backend_fields(self) -> SourceConfig:
        if self.backend == "live" and self.documents:
            raise ValueError(f"live source '{self.id}' cannot list documents")
        return self


class SpecialistConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    role: str
    description: str = ""
    allowed_sources: list[str] = Field(..., min_length=1)


class KnowledgeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sources: list[SourceConfig] = Field(..., min_length=1)
    specialists: list[SpecialistConfig] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Loaded Result
# ---------------------------------------------------------------------------


@dataclass
class KnowledgeBase:
    """The registry and specialist set built from one config file."""

    registry: KnowledgeSourceRegistry
    specialists: SpecialistSet


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_knowledge_config(path: str | Path) -> KnowledgeConfig:
    """Read and validate a knowledge config file."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Knowledge config not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Knowledge config is not valid JSON: {e}") from e

    try:
        return KnowledgeConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid knowledge config {path}: {e}") from e


def build_knowledge_base(
    config: KnowledgeConfig,
    chroma_client: Any | None = None,
    embed: Embedder | None = None,
) -> KnowledgeBase:
    """
    Build the registry and specialist set described by `config`.

    Chroma-backed sources that list documents inline are seeded with them
    (upsert, so rebuilding is idempotent).
    """
    registry = KnowledgeSourceRegistry()
    for source in config.sources:
        registry.register(KnowledgeSource(
            identifier=source.id,
            description=source.description,
            freshness=source.freshness,
            backend=_build_backend(source, chroma_client, embed),
        ))

    profiles = [
        SpecialistProfile(
            identifier=specialist.id,
            role=specialist.role,
            allowed_sources=frozenset(specialist.allowed_sources),
            description=specialist.description,
        )
        for specialist in config.specialists
    ]
    specialists = SpecialistSet(profiles, registry)

    logger.info(
        "Knowledge base ready: %d source(s), %d specialist(s)",
        len(registry), len(specialists),
    )
    return KnowledgeBase(registry=registry, specialists=specialists)


def load_knowledge_base(path: str | Path) -> KnowledgeBase:
    return build_knowledge_base(load_knowledge_config(path))


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _build_backend(
    source: SourceConfig,
    chroma_client: Any | None,
    embed: Embedder | None,
) -> StaticKnowledgeBackend | ChromaKnowledgeBackend | None:
    if source.backend == "live":
        return None

    if source.backend == "chroma":
        try:
            backend = ChromaKnowledgeBackend(
                collection_name=source.collection or source.id,
                client=chroma_client,
                embed=embed,
            )
            if source.documents:
                backend.add_documents(
                    contents=[doc.text for doc in source.documents],
                    metadatas=[
                        {**doc.metadata, "origin": doc.origin}
                        for doc in source.documents
                    ],
                )
        except Exception as e:
            raise ConfigurationError(
                f"Could not build chroma source '{source.id}': {e}"
            ) from e
        return backend

    return StaticKnowledgeBackend([
        BackendHit(payload=doc.text, metadata=dict(doc.metadata), origin=doc.origin)
        for doc in source.documents
    ])
