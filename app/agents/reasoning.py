# =============================================================================
# Agent Reasoning Loop — Bounded Tool-Calling State Machine
# =============================================================================
#
# The loop answers one question by letting the model decide, round after
# round, which knowledge source to search and when it has seen enough:
#
#   PLANNING ──FinalAnswer──────────────────────────────▶ DONE
#      │  ▲
#      │  └──────── tool results appended ─────┐
#      ▼                                       │
#   ToolRequests ──▶ EXECUTING_TOOLS ──────────┘
#
#   PLANNING with the budget spent ──forced answer──▶ EXHAUSTED
#
# The loop's job is purely mechanical:
# 1. Bound the rounds: at most max_iterations decision calls, plus one
#    forced final call with tools withheld.
# 2. Enforce schema validity: every call is validated by the catalog
#    before anything is dispatched.
# 3. Guarantee one tool result per tool call, in order. The conversation
#    raises ProtocolViolation otherwise.
#
# DESIGN DECISION: The model judges sufficiency, not the loop.
# evaluate_sufficiency and validate_answer are acknowledged with a small
# status payload. Whether to stop is expressed by the model's next
# decision (answer vs. more tool calls). Source relevance is open-ended,
# so hard-coding a stopping rule here would be wrong for some source set.
#
# DESIGN DECISION: Explicit step() over a LangGraph subgraph.
# The state machine is four states and two transitions; a plain async
# method keeps the budget and termination rules in one readable place.
# Callers that want to observe progress drive step() themselves; run()
# drives it to a terminal state.
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum

from typing_extensions import assert_never

from app.agents.conversation import (
    AssistantTurn,
    Conversation,
    EvidencePool,
    FinalAnswer,
    ToolCall,
    ToolRequests,
    ToolResult,
    ToolResultTurn,
)
from app.agents.tools import (
    EvaluateSufficiencyArgs,
    SearchKnowledgeArgs,
    ToolCatalog,
    ValidateAnswerArgs,
)
from app.config import settings
from app.errors import SchemaViolation, UnsupportedTool
from app.services.dispatcher import RetrievalDispatcher, RetrievalResult
from app.services.freshness import most_recent_first
from app.services.llm import LLMProvider

logger = logging.getLogger(__name__)

UNSUPPORTED_TOOL_CONTENT = "unsupported tool"

INSUFFICIENT_ANSWER = (
    "I could not find sufficient information in the available knowledge "
    "sources to answer this question reliably."
)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

AGENT_RULES = """You answer questions using knowledge sources that change \
over time. Your own training data may be stale; retrieved evidence wins.

How to work:
- Use search_knowledge to query the source most likely to hold the answer. \
Query another source if the first one is empty, errors, or is off-topic.
- Use evaluate_sufficiency to record whether the evidence is enough.
- Use validate_answer to check a draft for stale or conflicting facts.
- When sources conflict, prefer the most recently updated source: a newer \
effective date wins, then the fresher update cadence.
- In the final answer, cite the source and its freshness for each fact.
- If the evidence does not answer the question, say plainly that \
insufficient information was found. Never guess or invent figures."""

AGENT_SYSTEM = (
    "You are a retrieval agent for a company knowledge base.\n\n" + AGENT_RULES
)

FORCED_ANSWER_INSTRUCTION = """The search budget is used up. Do not call any \
more tools. Answer now using only the evidence gathered so far. If it is not \
enough to answer, say explicitly that insufficient information was found."""


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class LoopState(str, Enum):
    PLANNING = "planning"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (LoopState.DONE, LoopState.EXHAUSTED)


@dataclass
class LoopRun:
    """Outcome of one reasoning-loop run."""

    answer: str
    state: LoopState
    iterations: int        # Model decision calls, including a forced one
    evidence: EvidencePool
    tool_calls: int        # Tool calls answered with a result


# ---------------------------------------------------------------------------
# Reasoning Loop
# ---------------------------------------------------------------------------


class ReasoningLoop:
    """
    One run of the reasoning loop for one question.

    Instances are single-use: the conversation and evidence pool belong to
    this run alone and are discarded with it.
    """

    def __init__(
        self,
        question: str,
        llm: LLMProvider,
        catalog: ToolCatalog,
        dispatcher: RetrievalDispatcher,
        system: str = AGENT_SYSTEM,
        max_iterations: int | None = None,
        max_results: int | None = None,
        name: str = "agent",
    ) -> None:
        self.question = question
        self.name = name
        self._llm = llm
        self._catalog = catalog
        self._dispatcher = dispatcher
        self._max_iterations = max_iterations or settings.max_iterations
        self._max_results = max_results

        self._conversation = Conversation(system=system, question=question)
        self._pending: tuple[ToolCall, ...] = ()

        self.state = LoopState.PLANNING
        self.iterations = 0
        self.tool_calls = 0
        self.evidence = EvidencePool()
        self.answer: str | None = None

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def run(self) -> LoopRun:
        """Drive the state machine to DONE or EXHAUSTED."""
        logger.info(
            "[%s] Reasoning loop start: max_iterations=%d, question='%s'",
            self.name, self._max_iterations, self.question[:80],
        )
        while not self.state.is_terminal:
            await self.step()

        logger.info(
            "[%s] Reasoning loop %s after %d iteration(s), %d tool call(s), "
            "%d result(s)",
            self.name, self.state.value, self.iterations,
            self.tool_calls, len(self.evidence),
        )
        return LoopRun(
            answer=self.answer or INSUFFICIENT_ANSWER,
            state=self.state,
            iterations=self.iterations,
            evidence=self.evidence,
            tool_calls=self.tool_calls,
        )

    async def step(self) -> LoopState:
        """Perform one transition and return the new state."""
        if self.state is LoopState.PLANNING:
            if self.iterations >= self._max_iterations:
                await self._force_answer()
            else:
                await self._plan()
        elif self.state is LoopState.EXECUTING_TOOLS:
            await self._execute_pending()
        return self.state

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    async def _plan(self) -> None:
        self.iterations += 1
        decision = await self._llm.decide(self._conversation, self._catalog.specs)

        if isinstance(decision, FinalAnswer):
            self.answer = decision.text.strip() or INSUFFICIENT_ANSWER
            self.state = LoopState.DONE
            logger.info(
                "[%s] Iteration %d: final answer", self.name, self.iterations,
            )
        elif isinstance(decision, ToolRequests):
            self._conversation.append(
                AssistantTurn(content=decision.text, tool_calls=decision.calls)
            )
            self._pending = decision.calls
            self.state = LoopState.EXECUTING_TOOLS
            logger.info(
                "[%s] Iteration %d: %d tool call(s) requested: %s",
                self.name, self.iterations, len(decision.calls),
                [call.name for call in decision.calls],
            )
        else:
            assert_never(decision)

    async def _execute_pending(self) -> None:
        results = []
        for call in self._pending:
            results.append(await self._execute(call))

        self._conversation.append(ToolResultTurn(results=tuple(results)))
        self.tool_calls += len(results)
        self._pending = ()
        self.state = LoopState.PLANNING

    async def _force_answer(self) -> None:
        """Budget spent: one last call with tools withheld."""
        self.iterations += 1
        logger.info(
            "[%s] Iteration budget exhausted; forcing a final answer from "
            "%d usable result(s)",
            self.name, len(self.evidence.usable),
        )

        system = "\n\n".join([
            self._conversation.system,
            FORCED_ANSWER_INSTRUCTION,
            "Evidence gathered, most recent first:\n"
            + (format_evidence(most_recent_first(self.evidence.usable)) or "(none)"),
        ])
        decision = await self._llm.decide(
            self._conversation,
            self._catalog.specs,
            system=system,
            tool_choice="none",
        )

        if isinstance(decision, FinalAnswer):
            text = decision.text
        elif isinstance(decision, ToolRequests):
            # Tools were withheld; keep whatever prose came with the calls
            text = decision.text
        else:
            assert_never(decision)

        self.answer = text.strip() or INSUFFICIENT_ANSWER
        self.state = LoopState.EXHAUSTED

    # -----------------------------------------------------------------------
    # Tool Execution
    # -----------------------------------------------------------------------

    async def _execute(self, call: ToolCall) -> ToolResult:
        """Execute one tool call. Always returns a result, never raises."""
        try:
            args = self._catalog.validate(call)
        except UnsupportedTool:
            logger.warning("[%s] Unsupported tool requested: %s", self.name, call.name)
            return ToolResult(
                call_id=call.id, name=call.name,
                content=UNSUPPORTED_TOOL_CONTENT, is_error=True,
            )
        except SchemaViolation as e:
            logger.warning("[%s] %s", self.name, e)
            return ToolResult(
                call_id=call.id, name=call.name, content=str(e), is_error=True,
            )

        if isinstance(args, SearchKnowledgeArgs):
            results = await self._dispatcher.retrieve(
                args.source, args.query, self._max_results,
            )
            self.evidence.extend(results)
            return ToolResult(
                call_id=call.id,
                name=call.name,
                content=_format_search(args, results),
                is_error=bool(results) and all(r.is_error for r in results),
            )

        if isinstance(args, EvaluateSufficiencyArgs):
            logger.info(
                "[%s] Sufficiency: have_enough=%s, confidence=%s, missing=%s",
                self.name, args.have_enough, args.confidence, args.missing,
            )
            status = self._status()
            status["next"] = (
                "Give your final answer."
                if args.have_enough
                else "Search for the missing information, or answer stating what is missing."
            )
            return ToolResult(call_id=call.id, name=call.name, content=json.dumps(status))

        if isinstance(args, ValidateAnswerArgs):
            logger.info(
                "[%s] Draft validation: %d issue(s), needs_more_search=%s",
                self.name, len(args.potential_issues), args.needs_more_search,
            )
            status = self._status()
            status["issues_recorded"] = len(args.potential_issues)
            return ToolResult(call_id=call.id, name=call.name, content=json.dumps(status))

        # The catalog only yields the argument models handled above
        raise AssertionError(f"No handler for tool {call.name}")

    def _status(self) -> dict:
        return {
            "status": "acknowledged",
            "evidence_count": len(self.evidence.usable),
            "sources_queried": self.evidence.sources_queried(),
            "iteration": self.iterations,
            "max_iterations": self._max_iterations,
        }


# ---------------------------------------------------------------------------
# Formatting Helpers
# ---------------------------------------------------------------------------


def format_evidence(results: list[RetrievalResult]) -> str:
    """
    Format results with explicit source and freshness labels.

    Example output:
        [1] source: pricing_db | freshness: updated hourly | effective_date: 2026-01
        Pro Plan: $39/month
    """
    sections = []
    for i, result in enumerate(results, 1):
        labels = [f"source: {result.source}", f"freshness: {result.freshness}"]
        labels.extend(
            f"{key}: {value}"
            for key, value in result.metadata.items()
            if key != "similarity"
        )
        if result.origin:
            labels.append(f"origin: {result.origin}")
        sections.append(f"[{i}] " + " | ".join(labels) + f"\n{result.text}")
    return "\n\n".join(sections)


def _format_search(args: SearchKnowledgeArgs, results: list[RetrievalResult]) -> str:
    if not results:
        return f"No results found in {args.source} for '{args.query}'."

    errors = [r for r in results if r.is_error]
    evidence = [r for r in results if not r.is_error]

    parts = [f"ERROR: {r.text}" for r in errors]
    if evidence:
        parts.append(
            f"Found {len(evidence)} result(s) in {args.source}:\n\n"
            + format_evidence(evidence)
        )
    return "\n\n".join(parts)
