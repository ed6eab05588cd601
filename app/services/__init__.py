# =============================================================================
# Services Package — Retrieval and Model Collaborators
# =============================================================================
#   - registry.py: knowledge source catalog
#   - backends.py: backend query protocol (ChromaDB, static documents)
#   - live_search.py: live web search over HTTP (httpx)
#   - dispatcher.py: routes (source, query) to a backend, normalises results
#   - freshness.py: recency tie-break between conflicting results
#   - llm.py: multi-provider LLM abstraction with tool calling
#   - knowledge_config.py: loads sources and specialists from JSON
# =============================================================================
