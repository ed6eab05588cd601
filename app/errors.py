# =============================================================================
# Error Taxonomy — Local, Recoverable Failures
# =============================================================================
#
# Every failure in the retrieval engine is local to one tool call, one
# specialist delegation, or one run. These exceptions mark WHERE a failure
# was detected; the component that owns recovery catches them:
#
#   UnknownSource      → Dispatcher turns it into an error RetrievalResult
#   SchemaViolation    → Reasoning loop reports an error tool result
#   UnsupportedTool    → Reasoning loop reports "unsupported tool"
#   ProtocolViolation  → fatal to the run; Orchestrator absorbs it
#   UnknownSpecialist  → Orchestrator drops the sub-question with a warning
#   ConfigurationError → raised at startup, surfaced as HTTP 503
#
# Iteration exhaustion is deliberately NOT an exception. It is a terminal
# loop state (LoopState.EXHAUSTED) with a best-effort answer.
# =============================================================================

from __future__ import annotations


class RetrievalEngineError(Exception):
    """Base class for all retrieval engine errors."""


class UnknownSource(RetrievalEngineError):
    """A query named a knowledge source that is not in the registry."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Unknown knowledge source '{identifier}'")
        self.identifier = identifier


class SchemaViolation(RetrievalEngineError):
    """A tool call's arguments failed validation against its schema."""

    def __init__(self, tool_name: str, detail: str) -> None:
        super().__init__(f"Invalid arguments for {tool_name}: {detail}")
        self.tool_name = tool_name
        self.detail = detail


class UnsupportedTool(RetrievalEngineError):
    """The model requested a tool name that is not in the catalog."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unsupported tool '{tool_name}'")
        self.tool_name = tool_name


class ProtocolViolation(RetrievalEngineError):
    """Tool results do not match the tool calls they answer."""


class UnknownSpecialist(RetrievalEngineError):
    """A sub-question plan referenced a specialist that does not exist."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Unknown specialist '{identifier}'")
        self.identifier = identifier


class ConfigurationError(RetrievalEngineError):
    """The knowledge configuration is invalid."""
