# =============================================================================
# Test Fakes — Scripted LLM, Recording Dispatcher, Sample Registry
# =============================================================================
#
# Lets the reasoning loop and orchestrator run end to end without API keys,
# databases, or network access.
# =============================================================================

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from app.agents.conversation import (
    Conversation,
    Decision,
    FinalAnswer,
    ToolCall,
    ToolRequests,
    Turn,
)
from app.agents.specialists import SpecialistProfile, SpecialistSet
from app.services.backends import BackendHit, StaticKnowledgeBackend
from app.services.dispatcher import RetrievalDispatcher, RetrievalResult
from app.services.llm import LLMResponse
from app.services.registry import KnowledgeSource, KnowledgeSourceRegistry


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def search(source: str, query: str, call_id: str = "call_1") -> ToolCall:
    return ToolCall(
        id=call_id,
        name="search_knowledge",
        arguments={"source": source, "query": query},
    )


def tool_requests(*calls: ToolCall, text: str = "") -> ToolRequests:
    return ToolRequests(calls=tuple(calls), text=text)


# ---------------------------------------------------------------------------
# Scripted LLM
# ---------------------------------------------------------------------------


@dataclass
class DecideCall:
    """Snapshot of one decide() call."""

    system: str
    turns: tuple[Turn, ...]
    tool_names: list[str]
    source_enum: list[str]
    tool_choice: str


@dataclass
class ScriptedLLM:
    """
    LLMProvider fake.

    `decisions` is either a list consumed in order, or a callable
    (conversation, call_index) -> Decision for concurrent runs.
    `completions` works the same way for complete().
    """

    decisions: list[Decision] | Callable[[Conversation, int], Decision] = field(
        default_factory=list,
    )
    completions: list[str] | Callable[[list[dict], str | None], str] = field(
        default_factory=list,
    )
    decide_calls: list[DecideCall] = field(default_factory=list)
    complete_calls: list[dict[str, Any]] = field(default_factory=list)

    async def decide(self, conversation, tools, system=None, tool_choice="auto"):
        search_spec = next((t for t in tools if t.name == "search_knowledge"), None)
        self.decide_calls.append(DecideCall(
            system=system if system is not None else conversation.system,
            turns=conversation.turns,
            tool_names=[t.name for t in tools],
            source_enum=(
                search_spec.input_schema["properties"]["source"]["enum"]
                if search_spec else []
            ),
            tool_choice=tool_choice,
        ))
        if callable(self.decisions):
            return self.decisions(conversation, len(self.decide_calls) - 1)
        if not self.decisions:
            raise AssertionError("ScriptedLLM ran out of decisions")
        return self.decisions.pop(0)

    async def complete(self, messages, system=None, temperature=None, max_tokens=None):
        self.complete_calls.append({"messages": messages, "system": system})
        if callable(self.completions):
            content = self.completions(messages, system)
        else:
            if not self.completions:
                raise AssertionError("ScriptedLLM ran out of completions")
            content = self.completions.pop(0)
        return LLMResponse(
            content=content, model="scripted", input_tokens=0, output_tokens=0,
        )


# ---------------------------------------------------------------------------
# Recording Dispatcher
# ---------------------------------------------------------------------------


class RecordingDispatcher(RetrievalDispatcher):
    """Dispatcher that records every (source, query) it is asked for."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.calls: list[tuple[str, str]] = []

    async def retrieve(self, source_identifier, query_text, max_results=None):
        self.calls.append((source_identifier, query_text))
        return await super().retrieve(source_identifier, query_text, max_results)


class FailingBackend:
    """Backend that is always down."""

    async def query(self, text: str, max_results: int) -> list[BackendHit]:
        raise ConnectionError("backend unreachable")


# ---------------------------------------------------------------------------
# Sample Knowledge
# ---------------------------------------------------------------------------


def make_registry() -> KnowledgeSourceRegistry:
    return KnowledgeSourceRegistry([
        KnowledgeSource(
            identifier="pricing_db",
            description="Plan prices and limits",
            freshness="updated hourly",
            backend=StaticKnowledgeBackend([
                BackendHit(
                    payload="Pro Plan: $39/month, effective 2026-01",
                    metadata={"version": "2026.1", "effective_date": "2026-01"},
                    origin="pricing-api/plans/pro",
                ),
                BackendHit(payload="Starter Plan: $12/month"),
            ]),
        ),
        KnowledgeSource(
            identifier="hr_db",
            description="Org chart and roles",
            freshness="updated daily",
            backend=StaticKnowledgeBackend([
                BackendHit(
                    payload="Head of Engineering: Marcus Rivera since 2025-12-01",
                    metadata={"updated_at": "2025-12-01"},
                ),
            ]),
        ),
        KnowledgeSource(
            identifier="policy_db",
            description="Returns and refunds",
            freshness="updated weekly",
            backend=StaticKnowledgeBackend([
                BackendHit(payload="Return policy: 60 days with receipt"),
            ]),
        ),
    ])


def make_specialists(registry: KnowledgeSourceRegistry) -> SpecialistSet:
    return SpecialistSet(
        [
            SpecialistProfile(
                identifier="pricing_specialist",
                role="You are the pricing specialist.",
                allowed_sources=frozenset({"pricing_db"}),
            ),
            SpecialistProfile(
                identifier="people_specialist",
                role="You are the people specialist.",
                allowed_sources=frozenset({"hr_db"}),
            ),
        ],
        registry,
    )


def evidence_texts(results: list[RetrievalResult]) -> list[str]:
    return [r.text for r in results]


def final(text: str) -> FinalAnswer:
    return FinalAnswer(text=text)
