# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - ask.py: single-agent and orchestrated question answering
#   - catalog.py: knowledge source and specialist listings
#   - deps.py: dependency wiring (knowledge base, dispatcher, LLM)
# =============================================================================
