# =============================================================================
# Agents Package — Agentic Retrieval
# =============================================================================
#   - conversation.py: per-run conversation state, tool calls, evidence pool
#   - tools.py: tool catalog with Pydantic argument schemas
#   - reasoning.py: bounded tool-calling state machine (one run per question)
#   - specialists.py: specialist profiles with restricted source sets
#   - orchestrator.py: LangGraph plan → delegate → synthesize graph
#
# Loop: PLANNING → EXECUTING_TOOLS → PLANNING ... → DONE | EXHAUSTED
# =============================================================================
