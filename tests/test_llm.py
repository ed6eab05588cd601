# =============================================================================
# Unit Tests — LLM Providers (tool calling, message translation, factories)
# =============================================================================
#
# Providers are built without calling their constructors so no API key or
# network is needed; the SDK client is replaced by an AsyncMock returning
# SDK-shaped objects.
# =============================================================================

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from app.agents.conversation import (
    AssistantTurn,
    Conversation,
    FinalAnswer,
    ToolRequests,
    ToolResult,
    ToolResultTurn,
)
from app.agents.tools import ToolCatalog
from app.services.llm import (
    AnthropicProvider,
    OpenAICompatibleProvider,
    _parse_provider_id,
    to_anthropic_messages,
    to_openai_messages,
)
from tests.fakes import _run, make_registry, search


def _conversation_with_results() -> Conversation:
    conversation = Conversation(system="sys", question="Pro price?")
    conversation.append(AssistantTurn(
        content="Let me check pricing.",
        tool_calls=(search("pricing_db", "Pro Plan", "toolu_1"),),
    ))
    conversation.append(ToolResultTurn(results=(
        ToolResult(call_id="toolu_1", name="search_knowledge", content="Pro $39"),
    )))
    return conversation


def _anthropic(response) -> AnthropicProvider:
    provider = object.__new__(AnthropicProvider)
    provider._client = SimpleNamespace(
        messages=SimpleNamespace(create=AsyncMock(return_value=response)),
    )
    provider._model = "claude-test"
    provider._temperature = 0.1
    provider._max_tokens = 1024
    return provider


def _openai(response) -> OpenAICompatibleProvider:
    provider = object.__new__(OpenAICompatibleProvider)
    provider._client = SimpleNamespace(
        chat=SimpleNamespace(
            completions=SimpleNamespace(create=AsyncMock(return_value=response)),
        ),
    )
    provider._model = "gpt-test"
    provider._temperature = 0.1
    provider._max_tokens = 1024
    return provider


def _anthropic_response(*blocks):
    return SimpleNamespace(
        content=list(blocks),
        stop_reason="tool_use",
        model="claude-test",
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )


def _openai_response(content=None, tool_calls=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(
            content=content, tool_calls=tool_calls,
        ))],
        model="gpt-test",
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5),
    )


# ---------------------------------------------------------------------------
# Test: Conversation Translation
# ---------------------------------------------------------------------------


class TestAnthropicMessages:

    def test_tool_use_and_result_blocks(self):
        messages = to_anthropic_messages(_conversation_with_results())

        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assistant_blocks = messages[1]["content"]
        assert assistant_blocks[0] == {"type": "text", "text": "Let me check pricing."}
        assert assistant_blocks[1]["type"] == "tool_use"
        assert assistant_blocks[1]["id"] == "toolu_1"
        assert assistant_blocks[1]["input"] == {"source": "pricing_db", "query": "Pro Plan"}

        result_block = messages[2]["content"][0]
        assert result_block["type"] == "tool_result"
        assert result_block["tool_use_id"] == "toolu_1"
        assert result_block["content"] == "Pro $39"


class TestOpenAIMessages:

    def test_system_first_and_tool_messages(self):
        messages = to_openai_messages(_conversation_with_results(), "sys")

        assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool"]
        call = messages[2]["tool_calls"][0]
        assert call["id"] == "toolu_1"
        assert json.loads(call["function"]["arguments"]) == {
            "source": "pricing_db", "query": "Pro Plan",
        }
        assert messages[3]["tool_call_id"] == "toolu_1"


# ---------------------------------------------------------------------------
# Test: Decisions
# ---------------------------------------------------------------------------


class TestAnthropicDecide:

    def test_tool_use_becomes_tool_requests(self):
        provider = _anthropic(_anthropic_response(
            SimpleNamespace(type="text", text="Checking."),
            SimpleNamespace(
                type="tool_use", id="toolu_9", name="search_knowledge",
                input={"source": "pricing_db", "query": "Pro"},
            ),
        ))
        conversation = Conversation(system="sys", question="Pro price?")
        decision = _run(provider.decide(conversation, ToolCatalog(make_registry()).specs))

        assert isinstance(decision, ToolRequests)
        assert decision.text == "Checking."
        assert decision.calls[0].id == "toolu_9"
        assert decision.calls[0].arguments == {"source": "pricing_db", "query": "Pro"}

        kwargs = provider._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "sys"
        assert kwargs["tool_choice"] == {"type": "auto"}
        assert [t["name"] for t in kwargs["tools"]][0] == "search_knowledge"

    def test_text_only_is_final_answer(self):
        provider = _anthropic(_anthropic_response(
            SimpleNamespace(type="text", text="The Pro Plan is $39/month."),
        ))
        conversation = Conversation(system="sys", question="Pro price?")
        decision = _run(provider.decide(
            conversation, ToolCatalog(make_registry()).specs,
            system="forced", tool_choice="none",
        ))

        assert decision == FinalAnswer(text="The Pro Plan is $39/month.")
        kwargs = provider._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "forced"
        assert kwargs["tool_choice"] == {"type": "none"}


class TestOpenAIDecide:

    def test_tool_calls_parsed(self):
        provider = _openai(_openai_response(tool_calls=[SimpleNamespace(
            id="call_1",
            function=SimpleNamespace(
                name="search_knowledge",
                arguments='{"source": "hr_db", "query": "CTO"}',
            ),
        )]))
        conversation = Conversation(system="sys", question="Who is CTO?")
        decision = _run(provider.decide(conversation, ToolCatalog(make_registry()).specs))

        assert isinstance(decision, ToolRequests)
        assert decision.calls[0].arguments == {"source": "hr_db", "query": "CTO"}
        kwargs = provider._client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["tool_choice"] == "auto"

    def test_invalid_json_arguments_kept_raw(self):
        provider = _openai(_openai_response(tool_calls=[SimpleNamespace(
            id="call_1",
            function=SimpleNamespace(name="search_knowledge", arguments='{"source": '),
        )]))
        conversation = Conversation(system="sys", question="q")
        decision = _run(provider.decide(conversation, ToolCatalog(make_registry()).specs))

        assert decision.calls[0].arguments == '{"source": '

    def test_plain_message_is_final_answer(self):
        provider = _openai(_openai_response(content="  $39/month  "))
        conversation = Conversation(system="sys", question="q")
        decision = _run(provider.decide(conversation, []))

        assert decision == FinalAnswer(text="$39/month")
        kwargs = provider._client.chat.completions.create.call_args.kwargs
        assert "tools" not in kwargs


# ---------------------------------------------------------------------------
# Test: Provider ID Parsing
# ---------------------------------------------------------------------------


class TestParseProviderId:
    """Tests for _parse_provider_id() — the pure parsing function."""

    def test_anthropic_simple(self):
        ptype, model, base_url = _parse_provider_id("anthropic/claude-sonnet-4-6")
        assert ptype == "anthropic"
        assert model == "claude-sonnet-4-6"
        assert base_url is None

    def test_openai_compatible_with_url(self):
        ptype, model, base_url = _parse_provider_id(
            "openai_compatible/deepseek-chat@https://api.deepseek.com/v1",
        )
        assert ptype == "openai_compatible"
        assert model == "deepseek-chat"
        assert base_url == "https://api.deepseek.com/v1"

    def test_invalid_no_slash(self):
        with pytest.raises(ValueError, match="Invalid provider_id"):
            _parse_provider_id("no-slash-here")

    def test_unknown_provider_type(self):
        with pytest.raises(ValueError, match="Unknown provider type"):
            _parse_provider_id("gemini/gemini-pro")


class TestCreateProviderFromId:

    def test_anthropic_without_key_raises(self):
        from app.services import llm

        with patch.object(
            llm.settings, "llm_api_key", None
        ), patch.object(
            llm.settings, "anthropic_api_key", ""
        ), pytest.raises(ValueError, match="API key"):
            llm.create_provider_from_id("anthropic/claude-sonnet-4-6")

    def test_openai_compatible_without_key_raises(self):
        from app.services import llm

        with patch.object(
            llm.settings, "llm_api_key", None
        ), patch.object(
            llm.settings, "openai_api_key", ""
        ), pytest.raises(ValueError, match="API key"):
            llm.create_provider_from_id("openai_compatible/gpt-4o")

    def test_base_url_rejected_when_not_allowed(self):
        from app.services import llm

        with patch.object(llm, "OpenAICompatibleProvider") as provider_cls, pytest.raises(
            ValueError, match="cannot set a base URL",
        ):
            llm.create_provider_from_id(
                "openai_compatible/gpt-4o@http://attacker.invalid/v1",
                allow_base_url=False,
            )
        provider_cls.assert_not_called()

    def test_base_url_passed_through_when_allowed(self):
        from app.services import llm

        with patch.object(llm, "OpenAICompatibleProvider") as provider_cls:
            llm.create_provider_from_id(
                "openai_compatible/deepseek-chat@https://api.deepseek.com/v1",
            )
        provider_cls.assert_called_once_with(
            api_key=None, model="deepseek-chat",
            base_url="https://api.deepseek.com/v1",
        )

    def test_model_only_override_allowed_without_base_url(self):
        from app.services import llm

        with patch.object(llm, "OpenAICompatibleProvider") as provider_cls:
            llm.create_provider_from_id("openai_compatible/gpt-4o", allow_base_url=False)
        provider_cls.assert_called_once_with(api_key=None, model="gpt-4o", base_url=None)
