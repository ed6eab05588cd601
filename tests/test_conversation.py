# =============================================================================
# Unit Tests — Conversation Protocol & Evidence Pool
# =============================================================================

import pytest

from app.agents.conversation import (
    AssistantTurn,
    Conversation,
    EvidencePool,
    ToolResult,
    ToolResultTurn,
    UserTurn,
)
from app.errors import ProtocolViolation
from app.services.dispatcher import RetrievalResult, error_result
from tests.fakes import search


def _results(*call_ids):
    return ToolResultTurn(results=tuple(
        ToolResult(call_id=cid, name="search_knowledge", content="ok")
        for cid in call_ids
    ))


class TestConversation:

    def test_question_becomes_first_turn(self):
        conversation = Conversation(system="sys", question="What is the Pro price?")
        assert conversation.turns == (UserTurn("What is the Pro price?"),)

    def test_matching_results_accepted(self):
        conversation = Conversation(system="sys", question="q")
        conversation.append(AssistantTurn(tool_calls=(
            search("pricing_db", "pro", "a"), search("hr_db", "cto", "b"),
        )))
        assert [c.id for c in conversation.pending_calls()] == ["a", "b"]

        conversation.append(_results("a", "b"))
        assert conversation.pending_calls() == ()
        assert len(conversation) == 3

    def test_results_without_request_rejected(self):
        conversation = Conversation(system="sys", question="q")
        with pytest.raises(ProtocolViolation):
            conversation.append(_results("a"))

    def test_missing_result_rejected(self):
        conversation = Conversation(system="sys", question="q")
        conversation.append(AssistantTurn(tool_calls=(
            search("pricing_db", "pro", "a"), search("hr_db", "cto", "b"),
        )))
        with pytest.raises(ProtocolViolation):
            conversation.append(_results("a"))

    def test_reordered_results_rejected(self):
        conversation = Conversation(system="sys", question="q")
        conversation.append(AssistantTurn(tool_calls=(
            search("pricing_db", "pro", "a"), search("hr_db", "cto", "b"),
        )))
        with pytest.raises(ProtocolViolation):
            conversation.append(_results("b", "a"))

    def test_new_turn_while_calls_pending_rejected(self):
        conversation = Conversation(system="sys", question="q")
        conversation.append(AssistantTurn(tool_calls=(search("pricing_db", "pro"),)))
        with pytest.raises(ProtocolViolation, match="awaiting results"):
            conversation.append(UserTurn("hello?"))


class TestEvidencePool:

    def test_usable_excludes_errors(self):
        pool = EvidencePool()
        pool.extend([
            RetrievalResult(text="Pro $39", source="pricing_db", freshness="updated hourly"),
            error_result("crm_db", "Unknown source 'crm_db'"),
        ])
        assert len(pool) == 2
        assert [r.text for r in pool.usable] == ["Pro $39"]

    def test_sources_queried_in_first_seen_order(self):
        pool = EvidencePool()
        pool.extend([
            RetrievalResult(text="a", source="hr_db", freshness="updated daily"),
            RetrievalResult(text="b", source="pricing_db", freshness="updated hourly"),
            RetrievalResult(text="c", source="hr_db", freshness="updated daily"),
        ])
        assert pool.sources_queried() == ["hr_db", "pricing_db"]
