# =============================================================================
# Agentic Retrieval Engine
# =============================================================================
# Answers questions by letting a language model choose which knowledge
# source to query, judge when the evidence is enough, and, for questions
# that span domains, delegate sub-questions to specialist agents whose
# answers are synthesized into one response.
#
# Package structure:
#   app/
#   ├── api/          → FastAPI route handlers (ask, catalog)
#   ├── agents/       → Reasoning loop, tool catalog, conversation state,
#   │                    specialists, LangGraph orchestrator
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Registry, dispatcher, backends (ChromaDB, static),
#   │                    live search, freshness, LLM providers, config loader
#   └── errors.py     → Error taxonomy
# =============================================================================
