# =============================================================================
# Conversation State & Evidence Pool — Per-Run, Append-Only
# =============================================================================
#
# Each reasoning-loop run owns exactly one Conversation and one EvidencePool.
# Neither is shared between runs, so concurrent specialists can never see
# each other's evidence.
#
# The conversation also enforces the model-capability protocol: every
# assistant turn that requests tools must be followed by exactly one
# tool-result turn carrying one result per call, in the same order. A
# mismatch is a ProtocolViolation, fatal for the run: the model
# APIs reject a conversation with missing or reordered results.
#
# The model's decision is a closed tagged variant:
#   Decision = FinalAnswer | ToolRequests
# so the loop can handle it exhaustively (see reasoning.py).
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from app.errors import ProtocolViolation
from app.services.dispatcher import RetrievalResult


# ---------------------------------------------------------------------------
# Tool Calls & Model Decisions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    # Raw arguments as the model sent them; validated before dispatch.
    # Not necessarily a dict: malformed JSON arrives as a string.
    arguments: Any


@dataclass(frozen=True)
class FinalAnswer:
    """The model stopped with a free-text answer."""

    text: str


@dataclass(frozen=True)
class ToolRequests:
    """The model asked for one or more tool calls."""

    calls: tuple[ToolCall, ...]
    text: str = ""  # Any reasoning text emitted alongside the calls


Decision = Union[FinalAnswer, ToolRequests]


@dataclass(frozen=True)
class ToolResult:
    """The result reported back to the model for one ToolCall."""

    call_id: str
    name: str
    content: str
    is_error: bool = False


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserTurn:
    content: str


@dataclass(frozen=True)
class AssistantTurn:
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(frozen=True)
class ToolResultTurn:
    results: tuple[ToolResult, ...]


Turn = Union[UserTurn, AssistantTurn, ToolResultTurn]


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class Conversation:
    """Ordered, append-only turns plus the run's system framing."""

    def __init__(self, system: str, question: str | None = None) -> None:
        self.system = system
        self._turns: list[Turn] = []
        if question is not None:
            self.append(UserTurn(question))

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def append(self, turn: Turn) -> None:
        """Append a turn, enforcing the call/result pairing protocol."""
        pending = self.pending_calls()

        if isinstance(turn, ToolResultTurn):
            if not pending:
                raise ProtocolViolation(
                    "Tool results appended without a preceding tool request"
                )
            expected = [call.id for call in pending]
            received = [result.call_id for result in turn.results]
            if expected != received:
                raise ProtocolViolation(
                    f"Tool results {received} do not match tool calls {expected}"
                )
        elif pending:
            raise ProtocolViolation(
                f"{len(pending)} tool call(s) are still awaiting results"
            )

        self._turns.append(turn)

    def pending_calls(self) -> tuple[ToolCall, ...]:
        """Tool calls from the last turn that have no results yet."""
        if self._turns and isinstance(self._turns[-1], AssistantTurn):
            return self._turns[-1].tool_calls
        return ()

    def __len__(self) -> int:
        return len(self._turns)


# ---------------------------------------------------------------------------
# Evidence Pool
# ---------------------------------------------------------------------------


@dataclass
class EvidencePool:
    """Every RetrievalResult gathered in one run, in arrival order."""

    results: list[RetrievalResult] = field(default_factory=list)

    def extend(self, results: list[RetrievalResult]) -> None:
        self.results.extend(results)

    @property
    def usable(self) -> list[RetrievalResult]:
        """Results that carry evidence rather than an error."""
        return [r for r in self.results if not r.is_error]

    def sources_queried(self) -> list[str]:
        """Distinct source identifiers, in first-seen order."""
        return list(dict.fromkeys(r.source for r in self.results))

    def __len__(self) -> int:
        return len(self.results)
