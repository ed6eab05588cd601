# =============================================================================
# Multi-Agent Orchestrator — Plan, Delegate, Synthesize
# =============================================================================
#
# For questions that span several knowledge domains ("What does the Pro
# Plan cost, and who runs Engineering?"), the orchestrator:
#
# 1. PLAN: one model call decomposes the question into
#    (specialist, sub-question) pairs, referencing known specialists only.
# 2. DELEGATE: one fresh reasoning loop per pair, restricted to that
#    specialist's allowed sources and framed by its role. Runs concurrently.
# 3. SYNTHESIZE: one closing model call merges the tagged specialist
#    answers into a single response. No tools.
#
# GRAPH TOPOLOGY:
#   START ──▶ plan ──▶ delegate ──▶ synthesize ──▶ END
#
# DESIGN DECISION: Linear LangGraph graph, fan-out inside the node.
# Delegations have no ordering dependency, so the delegate node gathers
# them with asyncio.gather(). The graph edge into synthesize is the join:
# synthesis never starts before every delegate has reached DONE or
# EXHAUSTED (each one is bounded by its own iteration budget).
#
# DESIGN DECISION: Unknown specialists are dropped, never substituted.
# A plan entry naming a specialist we don't have is logged and recorded as
# a warning; the rest of the plan proceeds. If nothing survives, the whole
# question goes to a general loop over every source.
#
# DESIGN DECISION: A failed delegation does not fail the answer.
# The exception is logged, recorded as a warning, and the specialist's
# slot is marked failed so synthesis can state the gap.
#
# DESIGN DECISION: Graph compiled once at module level.
# Compilation is not free, and an Orchestrator is built per request. The
# per-request Orchestrator travels in the graph state instead, so the
# nodes are plain module functions over one shared compiled graph.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Awaitable
from dataclasses import dataclass, field

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from app.agents.reasoning import (
    AGENT_RULES,
    AGENT_SYSTEM,
    INSUFFICIENT_ANSWER,
    LoopRun,
    LoopState,
    ReasoningLoop,
)
from app.agents.specialists import SpecialistSet
from app.agents.tools import ToolCatalog
from app.errors import UnknownSpecialist
from app.services.dispatcher import RetrievalDispatcher
from app.services.llm import LLMProvider
from app.services.registry import KnowledgeSourceRegistry

logger = logging.getLogger(__name__)

GENERAL_AGENT = "general"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanEntry:
    specialist: str
    question: str


@dataclass
class SubQuestionPlan:
    """Ordered sub-questions, each addressed to a known specialist."""

    entries: list[PlanEntry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def specialists(self) -> list[str]:
        return list(dict.fromkeys(entry.specialist for entry in self.entries))


@dataclass
class SpecialistAnswer:
    """One specialist's answer to its sub-question."""

    specialist: str
    question: str
    answer: str
    run: LoopRun | None = None  # None when the delegation failed

    @property
    def failed(self) -> bool:
        return self.run is None


@dataclass
class OrchestratedAnswer:
    answer: str
    plan: SubQuestionPlan
    specialist_answers: list[SpecialistAnswer]
    warnings: list[str]


class OrchestratorState(TypedDict, total=False):
    """State that flows through the orchestration graph."""

    question: str
    plan: SubQuestionPlan
    specialist_answers: list[SpecialistAnswer]
    answer: str
    warnings: list[str]

    # Not JSON-serialisable. Safe as long as no checkpointer is configured
    # on the graph (current: no checkpointer).
    orchestrator: Orchestrator


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_PLANNER_SYSTEM = """You split a user's question into sub-questions for \
specialist agents. Each specialist can only search its own knowledge sources.

Available specialists:
{specialists}

Respond with ONLY valid JSON (no markdown, no explanation):
{{
  "sub_questions": [
    {{"specialist": "<specialist identifier>", "question": "<self-contained sub-question>"}}
  ]
}}

Guidelines:
- Use only the specialist identifiers listed above.
- One sub-question per distinct piece of information needed.
- A question that needs only one specialist gets exactly one sub-question.
- Each sub-question must make sense on its own, without the original."""

_SYNTHESIS_SYSTEM = """You combine answers from specialist agents into one \
coherent response to the user's original question.

Rules:
- Use ONLY the specialist answers provided; do not add outside facts.
- Keep each fact's source and freshness citation.
- If specialists conflict, prefer the most recently updated source and say so.
- If a specialist failed or found nothing, state plainly which part of the \
question could not be answered. Never fill the gap with a guess."""


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    """Decomposes a question, delegates to specialists, synthesizes."""

    def __init__(
        self,
        llm: LLMProvider,
        registry: KnowledgeSourceRegistry,
        specialists: SpecialistSet,
        dispatcher: RetrievalDispatcher,
        max_iterations: int | None = None,
    ) -> None:
        self._llm = llm
        self._registry = registry
        self._specialists = specialists
        self._dispatcher = dispatcher
        self._max_iterations = max_iterations

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def answer(self, question: str) -> OrchestratedAnswer:
        """Run plan → delegate → synthesize for one question."""
        logger.info("Orchestrating question: '%s'", question[:80])

        result = await graph.ainvoke({
            "question": question,
            "warnings": [],
            "orchestrator": self,
        })

        logger.info(
            "Orchestration complete: %d specialist answer(s), %d warning(s)",
            len(result.get("specialist_answers", [])),
            len(result.get("warnings", [])),
        )
        return OrchestratedAnswer(
            answer=result.get("answer", INSUFFICIENT_ANSWER),
            plan=result["plan"],
            specialist_answers=result.get("specialist_answers", []),
            warnings=result.get("warnings", []),
        )

    async def plan(self, question: str) -> SubQuestionPlan:
        """
        Decompose `question` into sub-questions for known specialists.

        Entries naming an unknown specialist are dropped with a warning.
        An unparseable response yields an empty plan with a warning.
        """
        specialist_lines = "\n".join(
            f"- {identifier}: {description} (sources: {', '.join(sources)})"
            for identifier, description, sources in self._specialists.describe_all()
        )
        response = await self._llm.complete(
            messages=[{"role": "user", "content": f"Question: {question}"}],
            system=_PLANNER_SYSTEM.format(specialists=specialist_lines),
            temperature=0.0,
            max_tokens=1024,
        )

        plan = SubQuestionPlan()
        try:
            raw_entries = _parse_plan_json(response.content)
        except (json.JSONDecodeError, ValueError) as e:
            message = f"Planner returned an unparseable plan: {e}"
            logger.warning(message)
            plan.warnings.append(message)
            return plan

        for raw in raw_entries:
            specialist = raw.get("specialist") if isinstance(raw, dict) else None
            sub_question = raw.get("question") if isinstance(raw, dict) else None
            if not isinstance(specialist, str) or not isinstance(sub_question, str) \
                    or not sub_question.strip():
                message = f"Dropped malformed plan entry: {raw!r}"
                logger.warning(message)
                plan.warnings.append(message)
                continue
            if specialist not in self._specialists:
                message = (
                    f"Dropped sub-question for {UnknownSpecialist(specialist)}: "
                    f"'{sub_question}'"
                )
                logger.warning(message)
                plan.warnings.append(message)
                continue
            plan.entries.append(PlanEntry(specialist, sub_question.strip()))

        logger.info(
            "Plan: %d sub-question(s) for %s",
            len(plan.entries), plan.specialists,
        )
        return plan

    async def delegate(self, specialist_identifier: str, sub_question: str) -> LoopRun:
        """
        Run a fresh reasoning loop for one specialist.

        Raises:
            UnknownSpecialist: the identifier is not a known specialist.
        """
        profile = self._specialists.get(specialist_identifier)
        catalog = ToolCatalog(self._registry, allowed_sources=profile.allowed_sources)
        loop = ReasoningLoop(
            question=sub_question,
            llm=self._llm,
            catalog=catalog,
            dispatcher=self._dispatcher,
            system=f"{profile.role}\n\n{AGENT_RULES}",
            max_iterations=self._max_iterations,
            name=profile.identifier,
        )
        return await loop.run()

    async def synthesize(
        self,
        question: str,
        answers: list[SpecialistAnswer],
    ) -> str:
        """Merge tagged specialist answers into one response (no tools)."""
        if not answers or all(a.failed for a in answers):
            logger.warning("No specialist answers to synthesize")
            return INSUFFICIENT_ANSWER

        sections = []
        for answer in answers:
            status = "FAILED" if answer.failed else answer.run.state.value
            sections.append(
                f"[{answer.specialist}] ({status})\n"
                f"Sub-question: {answer.question}\n"
                f"Answer: {answer.answer}"
            )
        user_message = (
            f"Original question: {question}\n\n"
            f"Specialist answers ({len(answers)} total):\n\n"
            + "\n\n---\n\n".join(sections)
        )

        response = await self._llm.complete(
            messages=[{"role": "user", "content": user_message}],
            system=_SYNTHESIS_SYSTEM,
        )
        return response.content.strip() or INSUFFICIENT_ANSWER

    # -----------------------------------------------------------------------
    # Internal Helpers
    # -----------------------------------------------------------------------

    async def _run_general(self, question: str) -> LoopRun:
        loop = ReasoningLoop(
            question=question,
            llm=self._llm,
            catalog=ToolCatalog(self._registry),
            dispatcher=self._dispatcher,
            system=AGENT_SYSTEM,
            max_iterations=self._max_iterations,
            name=GENERAL_AGENT,
        )
        return await loop.run()

    async def _safe_run(
        self,
        specialist: str,
        question: str,
        run: Awaitable[LoopRun],
        warnings: list[str],
    ) -> SpecialistAnswer:
        """Await one delegation, absorbing its failure into a warning."""
        try:
            result: LoopRun = await run
        except Exception as e:
            message = f"Specialist '{specialist}' failed: {e}"
            logger.warning(message)
            warnings.append(message)
            return SpecialistAnswer(
                specialist=specialist,
                question=question,
                answer=f"No answer: the specialist failed ({e}).",
            )

        if result.state is LoopState.EXHAUSTED:
            warnings.append(
                f"Specialist '{specialist}' hit its iteration budget; "
                "its answer is best-effort"
            )
        return SpecialistAnswer(
            specialist=specialist, question=question,
            answer=result.answer, run=result,
        )


def _parse_plan_json(raw: str) -> list:
    """Extract the sub_questions list, tolerating markdown code fences."""
    text = raw.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
        if not match:
            raise
        data = json.loads(match.group(1))

    if not isinstance(data, dict) or not isinstance(data.get("sub_questions"), list):
        raise ValueError("expected an object with a 'sub_questions' list")
    return data["sub_questions"]


# ---------------------------------------------------------------------------
# Graph Nodes
# ---------------------------------------------------------------------------

async def plan_node(state: OrchestratorState) -> dict:
    orchestrator: Orchestrator = state["orchestrator"]
    plan = await orchestrator.plan(state["question"])
    return {
        "plan": plan,
        "warnings": [*state.get("warnings", []), *plan.warnings],
    }


async def delegate_node(state: OrchestratorState) -> dict:
    """Run every plan entry concurrently, or a general agent for an empty plan."""
    orchestrator: Orchestrator = state["orchestrator"]
    plan: SubQuestionPlan = state["plan"]
    warnings = list(state.get("warnings", []))

    if not plan.entries:
        message = "Plan is empty; delegating the whole question to a general agent"
        logger.warning(message)
        warnings.append(message)
        answer = await orchestrator._safe_run(
            GENERAL_AGENT, state["question"],
            orchestrator._run_general(state["question"]), warnings,
        )
        return {"specialist_answers": [answer], "warnings": warnings}

    answers = await asyncio.gather(*(
        orchestrator._safe_run(
            entry.specialist, entry.question,
            orchestrator.delegate(entry.specialist, entry.question), warnings,
        )
        for entry in plan.entries
    ))
    return {"specialist_answers": list(answers), "warnings": warnings}


async def synthesize_node(state: OrchestratorState) -> dict:
    orchestrator: Orchestrator = state["orchestrator"]
    answer = await orchestrator.synthesize(
        state["question"], state.get("specialist_answers", []),
    )
    return {"answer": answer}


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------
# START → plan → delegate → synthesize → END

_builder = StateGraph(OrchestratorState)

_builder.add_node("plan", plan_node)
_builder.add_node("delegate", delegate_node)
_builder.add_node("synthesize", synthesize_node)

_builder.add_edge(START, "plan")
_builder.add_edge("plan", "delegate")
_builder.add_edge("delegate", "synthesize")
_builder.add_edge("synthesize", END)

graph = _builder.compile()
