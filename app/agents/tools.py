# =============================================================================
# Tool Catalog — Capabilities Exposed to the Reasoning Loop
# =============================================================================
#
# Three tools are declared to the model:
#
#   search_knowledge(source, query)
#       Query one knowledge source. `source` is an enum built from the
#       registry (or a specialist's allowed subset of it).
#   evaluate_sufficiency(have_enough, missing?, confidence)
#       The model's self-assessment of gathered evidence. Acknowledged by
#       the loop; the decision to stop stays with the model.
#   validate_answer(draft_answer, potential_issues, needs_more_search)
#       The model's check of a draft before finalising. Acknowledged too.
#
# DESIGN DECISION: Each argument schema is a Pydantic model, declared once.
# The same model produces the JSON Schema sent to the LLM and validates
# the arguments the LLM sends back. `extra="forbid"` makes unknown fields
# a SchemaViolation instead of a silent pass-through.
#
# DESIGN DECISION: The source enum is enforced at validation time, not
# just advertised. A specialist's catalog rejects any source outside its
# allowed set BEFORE the dispatcher is called, so restricted specialists
# cannot reach other sources even if the model ignores the enum.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from app.agents.conversation import ToolCall
from app.errors import ConfigurationError, SchemaViolation, UnsupportedTool
from app.services.registry import KnowledgeSourceRegistry

logger = logging.getLogger(__name__)

SEARCH_KNOWLEDGE = "search_knowledge"
EVALUATE_SUFFICIENCY = "evaluate_sufficiency"
VALIDATE_ANSWER = "validate_answer"


# ---------------------------------------------------------------------------
# Argument Schemas
# ---------------------------------------------------------------------------


class SearchKnowledgeArgs(BaseModel):
    """Arguments for search_knowledge."""

    model_config = ConfigDict(extra="forbid")

    source: str = Field(..., description="Identifier of the knowledge source to query")
    query: str = Field(..., min_length=1, description="Search query for that source")

    @field_validator("source")
    @classmethod
    def _source_in_catalog(cls, value: str, info: ValidationInfo) -> str:
        allowed = (info.context or {}).get("sources")
        if allowed is not None and value not in allowed:
            raise ValueError(
                f"'{value}' is not available; source must be one of: "
                f"{', '.join(allowed)}"
            )
        return value


class EvaluateSufficiencyArgs(BaseModel):
    """Arguments for evaluate_sufficiency."""

    model_config = ConfigDict(extra="forbid")

    have_enough: bool = Field(..., description="Whether the evidence gathered so far answers the question")
    missing: str | None = Field(default=None, description="What information is still missing, if any")
    confidence: Literal["low", "medium", "high"] = Field(..., description="Confidence in the evidence gathered so far")


class ValidateAnswerArgs(BaseModel):
    """Arguments for validate_answer."""

    model_config = ConfigDict(extra="forbid")

    draft_answer: str = Field(..., description="The answer you intend to give")
    potential_issues: list[str] = Field(..., description="Possible problems: stale data, conflicts between sources, gaps")
    needs_more_search: bool = Field(..., description="Whether another search is needed before answering")


# ---------------------------------------------------------------------------
# Tool Specs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolSpec:
    """A tool as declared to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]
    args_model: type[BaseModel]


class ToolCatalog:
    """
    The set of tools one reasoning loop may call.

    Built from a registry, optionally restricted to a subset of its sources
    (specialists). Immutable once built.
    """

    def __init__(
        self,
        registry: KnowledgeSourceRegistry,
        allowed_sources: Iterable[str] | None = None,
        include_validation: bool = True,
    ) -> None:
        allowed = set(allowed_sources) if allowed_sources is not None else None
        descriptions = [
            (identifier, description, freshness)
            for identifier, description, freshness in registry.describe_all()
            if allowed is None or identifier in allowed
        ]
        if not descriptions:
            raise ConfigurationError("Tool catalog has no knowledge sources to search")

        self.sources: tuple[str, ...] = tuple(d[0] for d in descriptions)

        specs = [
            _search_spec(descriptions),
            ToolSpec(
                name=EVALUATE_SUFFICIENCY,
                description=(
                    "Record your judgement of whether the evidence gathered so far "
                    "is enough to answer the question. If it is not, search again; "
                    "if it is, give your final answer."
                ),
                input_schema=EvaluateSufficiencyArgs.model_json_schema(),
                args_model=EvaluateSufficiencyArgs,
            ),
        ]
        if include_validation:
            specs.append(ToolSpec(
                name=VALIDATE_ANSWER,
                description=(
                    "Check a draft answer before finalising it: list potential "
                    "issues such as stale or conflicting sources, and say whether "
                    "more searching is needed."
                ),
                input_schema=ValidateAnswerArgs.model_json_schema(),
                args_model=ValidateAnswerArgs,
            ))
        self._specs = {spec.name: spec for spec in specs}

    @property
    def specs(self) -> list[ToolSpec]:
        return list(self._specs.values())

    @property
    def names(self) -> list[str]:
        return list(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def validate(self, call: ToolCall) -> BaseModel:
        """
        Validate a tool call's arguments against its declared schema.

        Raises:
            UnsupportedTool: the tool name is not in this catalog.
            SchemaViolation: the arguments do not match the schema.
        """
        spec = self._specs.get(call.name)
        if spec is None:
            raise UnsupportedTool(call.name)

        if not isinstance(call.arguments, dict):
            raise SchemaViolation(call.name, "arguments must be a JSON object")

        try:
            return spec.args_model.model_validate(
                call.arguments, context={"sources": self.sources},
            )
        except ValidationError as e:
            raise SchemaViolation(call.name, _summarise_errors(e)) from e


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _search_spec(descriptions: list[tuple[str, str, str]]) -> ToolSpec:
    """Build the search_knowledge spec with the source enum filled in."""
    schema = SearchKnowledgeArgs.model_json_schema()
    schema["properties"]["source"]["enum"] = [d[0] for d in descriptions]

    source_lines = "\n".join(
        f"- {identifier}: {description} (freshness: {freshness})"
        for identifier, description, freshness in descriptions
    )
    return ToolSpec(
        name=SEARCH_KNOWLEDGE,
        description=(
            "Search one knowledge source and return matching passages labelled "
            "with their source and freshness. Available sources:\n"
            f"{source_lines}"
        ),
        input_schema=schema,
        args_model=SearchKnowledgeArgs,
    )


def _summarise_errors(error: ValidationError) -> str:
    """One line per validation error: 'field: message'."""
    parts = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "arguments"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)
