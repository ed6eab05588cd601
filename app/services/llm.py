# =============================================================================
# Multi-Provider LLM Abstraction — The Model Capability
# =============================================================================
#
# The reasoning loop treats the language model as a black box with two
# calls:
#
#   decide(conversation, tools)  → FinalAnswer | ToolRequests
#       One decision step of the loop. The model sees the whole
#       conversation plus the declared tools and either answers or asks
#       for tool calls.
#   complete(messages, system)   → LLMResponse
#       Plain text completion, used by the orchestrator for planning and
#       synthesis (no tools).
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Any class with the right methods works, which makes scripted fake
# providers in tests trivial.
#
# DESIGN DECISION: Native SDKs over LangChain wrappers.
# Tool-calling wire formats differ between Anthropic and OpenAI in ways
# that matter for the call/result protocol (content blocks vs. role="tool"
# messages). Translating them ourselves keeps that pairing visible.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — tool_use / tool_result content blocks
#   ├── OpenAICompatibleProvider — tool_calls / role="tool" messages
#   ├── get_llm_provider()       — Singleton factory, reads from config
#   └── create_provider_from_id() — Non-singleton factory (per-request override)
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from app.agents.conversation import (
    AssistantTurn,
    Conversation,
    Decision,
    FinalAnswer,
    ToolCall,
    ToolRequests,
    ToolResultTurn,
    UserTurn,
)
from app.agents.tools import ToolSpec
from app.config import settings

logger = logging.getLogger(__name__)

ToolChoice = Literal["auto", "none"]


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """Standardised text completion from any provider."""

    content: str           # The generated text
    model: str             # Model identifier (e.g., "claude-sonnet-4-6")
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """Protocol defining the model capability."""

    async def decide(
        self,
        conversation: Conversation,
        tools: list[ToolSpec],
        system: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> Decision:
        """
        Ask the model for its next step.

        Args:
            conversation: The run's full conversation state.
            tools: Tools declared to the model.
            system: System framing; defaults to conversation.system.
            tool_choice: "none" withholds tool use (forced final answer).

        Returns:
            FinalAnswer or ToolRequests.
        """
        ...

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a plain text completion (no tools)."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native SDK.

    KEY API DIFFERENCES:
    - System prompt is a top-level `system=` kwarg, not a message.
    - Tool requests arrive as `tool_use` content blocks; results go back
      as `tool_result` blocks inside a single user message.
    - A conversation containing tool blocks must still declare the tools,
      so the forced final answer sends them with tool_choice "none".
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def decide(
        self,
        conversation: Conversation,
        tools: list[ToolSpec],
        system: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> Decision:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": to_anthropic_messages(conversation),
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }
        framing = system if system is not None else conversation.system
        if framing:
            kwargs["system"] = framing
        if tools:
            kwargs["tools"] = [
                {
                    "name": spec.name,
                    "description": spec.description,
                    "input_schema": spec.input_schema,
                }
                for spec in tools
            ]
            kwargs["tool_choice"] = {"type": tool_choice}

        response = await self._client.messages.create(**kwargs)

        logger.debug(
            "Anthropic decision: stop_reason=%s, tokens=%d+%d",
            response.stop_reason,
            response.usage.input_tokens, response.usage.output_tokens,
        )

        text_parts = []
        calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(
                    id=block.id, name=block.name, arguments=block.input,
                ))

        text = "\n".join(text_parts).strip()
        if calls:
            return ToolRequests(calls=tuple(calls), text=text)
        return FinalAnswer(text=text)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": (
                temperature if temperature is not None else self._temperature
            ),
        }
        if system:
            kwargs["system"] = system

        response = await self._client.messages.create(**kwargs)

        content = ""
        for block in response.content:
            if block.type == "text":
                content = block.text
                break

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible (DeepSeek, Qwen, GLM-5, etc.)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    OpenAI-compatible provider for any API that follows the OpenAI spec.

    KEY API DIFFERENCES:
    - System prompt is the first message with role "system".
    - Tool requests arrive as `message.tool_calls` with JSON-encoded
      arguments; each result goes back as its own role="tool" message.

    Switching providers is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_API_KEY=your-key
        LLM_MODEL=deepseek-chat
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict[str, Any] = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def decide(
        self,
        conversation: Conversation,
        tools: list[ToolSpec],
        system: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> Decision:
        framing = system if system is not None else conversation.system
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": to_openai_messages(conversation, framing),
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }
        if tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": spec.name,
                        "description": spec.description,
                        "parameters": spec.input_schema,
                    },
                }
                for spec in tools
            ]
            kwargs["tool_choice"] = tool_choice

        response = await self._client.chat.completions.create(**kwargs)
        message = response.choices[0].message
        text = (message.content or "").strip()

        raw_calls = message.tool_calls or []
        if not raw_calls:
            return FinalAnswer(text=text)

        calls = []
        for raw in raw_calls:
            try:
                arguments: Any = json.loads(raw.function.arguments or "{}")
            except json.JSONDecodeError:
                # Left as a string; the catalog reports a SchemaViolation
                logger.warning(
                    "Tool call %s sent non-JSON arguments", raw.function.name,
                )
                arguments = raw.function.arguments
            calls.append(ToolCall(
                id=raw.id, name=raw.function.name, arguments=arguments,
            ))
        return ToolRequests(calls=tuple(calls), text=text)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=all_messages,
            max_tokens=max_tokens or self._max_tokens,
            temperature=(
                temperature if temperature is not None else self._temperature
            ),
        )

        content = response.choices[0].message.content or ""

        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        return LLMResponse(
            content=content,
            model=response.model or self._model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )


# ---------------------------------------------------------------------------
# Conversation Translation
# ---------------------------------------------------------------------------


def to_anthropic_messages(conversation: Conversation) -> list[dict[str, Any]]:
    """Translate conversation turns into Anthropic Messages API format."""
    messages: list[dict[str, Any]] = []
    for turn in conversation.turns:
        if isinstance(turn, UserTurn):
            messages.append({"role": "user", "content": turn.content})
        elif isinstance(turn, AssistantTurn):
            blocks: list[dict[str, Any]] = []
            if turn.content:
                blocks.append({"type": "text", "text": turn.content})
            for call in turn.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments if isinstance(call.arguments, dict) else {},
                })
            messages.append({"role": "assistant", "content": blocks})
        elif isinstance(turn, ToolResultTurn):
            messages.append({
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": result.call_id,
                        "content": result.content,
                        "is_error": result.is_error,
                    }
                    for result in turn.results
                ],
            })
    return messages


def to_openai_messages(
    conversation: Conversation,
    system: str | None = None,
) -> list[dict[str, Any]]:
    """Translate conversation turns into OpenAI chat-completions format."""
    messages: list[dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})

    for turn in conversation.turns:
        if isinstance(turn, UserTurn):
            messages.append({"role": "user", "content": turn.content})
        elif isinstance(turn, AssistantTurn):
            message: dict[str, Any] = {
                "role": "assistant",
                "content": turn.content or None,
            }
            if turn.tool_calls:
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": (
                                json.dumps(call.arguments)
                                if isinstance(call.arguments, dict)
                                else str(call.arguments)
                            ),
                        },
                    }
                    for call in turn.tool_calls
                ]
            messages.append(message)
        elif isinstance(turn, ToolResultTurn):
            for result in turn.results:
                messages.append({
                    "role": "tool",
                    "tool_call_id": result.call_id,
                    "content": result.content,
                })
    return messages


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

# Lazy singleton, built on first use
_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Factory that returns the configured LLM provider.

    Reads `llm_provider` from settings:
    - "anthropic" → AnthropicProvider (Claude)
    - "openai_compatible" → OpenAICompatibleProvider (DeepSeek, Qwen, etc.)
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "openai_compatible":
            _provider = OpenAICompatibleProvider()
        else:
            _provider = AnthropicProvider()
    return _provider


# ---------------------------------------------------------------------------
# Non-Singleton Factory — Per-request provider override
# ---------------------------------------------------------------------------

_KNOWN_PROVIDER_TYPES = {"anthropic", "openai_compatible"}


def _parse_provider_id(
    provider_id: str,
) -> tuple[str, str, str | None]:
    """
    Parse a provider_id string into (provider_type, model, base_url).

    Formats supported:
        "anthropic/claude-sonnet-4-6"
            → ("anthropic", "claude-sonnet-4-6", None)
        "openai_compatible/deepseek-chat@https://api.deepseek.com/v1"
            → ("openai_compatible", "deepseek-chat", "https://api.deepseek.com/v1")

    Raises:
        ValueError: If the format is unrecognisable or provider type unknown.
    """
    if "/" not in provider_id:
        raise ValueError(
            f"Invalid provider_id '{provider_id}'. "
            "Expected format: 'provider_type/model' or "
            "'provider_type/model@base_url'"
        )

    provider_type, rest = provider_id.split("/", 1)

    base_url: str | None = None
    if "@" in rest:
        model, base_url = rest.split("@", 1)
    else:
        model = rest

    if provider_type not in _KNOWN_PROVIDER_TYPES:
        raise ValueError(
            f"Unknown provider type '{provider_type}'. "
            f"Supported types: {sorted(_KNOWN_PROVIDER_TYPES)}"
        )

    return provider_type, model, base_url


def create_provider_from_id(
    provider_id: str,
    api_key: str | None = None,
    allow_base_url: bool = True,
) -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Create a fresh, non-singleton LLM provider from a provider ID string.

    With allow_base_url=False, an ID carrying '@base_url' is rejected. The
    provider falls back to the server-side API key, which must never be
    sent to an endpoint chosen by the caller.

    Raises:
        ValueError: If provider_id is invalid, names a base URL that is not
            allowed, or the API key is missing.
    """
    provider_type, model, base_url = _parse_provider_id(provider_id)

    if base_url is not None and not allow_base_url:
        raise ValueError(
            f"Invalid provider_id '{provider_type}/{model}@...': "
            "a provider override cannot set a base URL"
        )

    if provider_type == "anthropic":
        return AnthropicProvider(api_key=api_key, model=model)

    return OpenAICompatibleProvider(
        api_key=api_key, model=model, base_url=base_url,
    )
