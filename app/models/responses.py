# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API.
# Internal run objects (conversation turns, backend handles) are never
# serialised; responses carry the answer plus the provenance needed to
# check it: which sources were hit, how fresh they were, and how the
# question was split across specialists.
# =============================================================================

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class EvidenceItem(BaseModel):
    """One retrieved result that the agent saw while answering."""

    source: str = Field(description="Knowledge source identifier")
    freshness: str = Field(description="Freshness label of the source at query time")
    text: str = Field(description="Retrieved passage")
    origin: str | None = Field(default=None, description="URL or document id")
    metadata: dict = Field(default_factory=dict)
    is_error: bool = Field(
        default=False,
        description="True when the retrieval failed (unknown source, outage)",
    )


class AskResponse(BaseModel):
    """Response for POST /ask — a single reasoning-loop run."""

    question: str
    answer: str
    state: str = Field(description="'done', or 'exhausted' for a best-effort answer")
    iterations: int = Field(description="Model decision calls made")
    tool_calls: int = Field(description="Tool calls executed")
    evidence: list[EvidenceItem] = Field(default_factory=list)


class PlanEntryResponse(BaseModel):
    specialist: str
    question: str


class SpecialistAnswerResponse(BaseModel):
    """One specialist's contribution to an orchestrated answer."""

    specialist: str
    question: str
    answer: str
    state: str | None = Field(description="Loop state, or null if the specialist failed")
    iterations: int = 0
    evidence: list[EvidenceItem] = Field(default_factory=list)


class OrchestratedAskResponse(BaseModel):
    """Response for POST /ask/orchestrated — plan, delegate, synthesize."""

    question: str
    answer: str
    plan: list[PlanEntryResponse]
    specialist_answers: list[SpecialistAnswerResponse]
    warnings: list[str] = Field(default_factory=list)


class SourceInfo(BaseModel):
    """A knowledge source as listed by GET /sources."""

    id: str
    description: str
    freshness: str


class SpecialistInfo(BaseModel):
    """A specialist as listed by GET /specialists."""

    id: str
    description: str
    allowed_sources: list[str]
